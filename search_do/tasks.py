#!/usr/bin/env python3
"""
Index maintenance tasks.

    search-do clear myapp.models:Article
    search-do reindex myapp.models:Article --include comments
"""

import argparse
import importlib
import logging
import sys
from typing import Iterable, List, Optional

from sqlalchemy.orm import selectinload

from .core.config import settings
from .core.exceptions import ConfigurationError, SearchDoError
from .database import SessionLocal

logger = logging.getLogger(__name__)


def load_model(path: str) -> type:
    """Resolve "package.module:Model" (or "package.module.Model") to a searchable class."""
    module_name, sep, class_name = path.partition(":")
    if not sep:
        module_name, _, class_name = path.rpartition(".")
    if not module_name or not class_name:
        raise ConfigurationError(f"Expected module:Model, got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import {module_name}: {e}") from e

    model_class = getattr(module, class_name, None)
    if model_class is None:
        raise ConfigurationError(f"{module_name} has no attribute {class_name}")
    if not hasattr(model_class, "__search_config__"):
        raise ConfigurationError(f"{class_name} is not searchable")
    return model_class


def clear_index(model_class: type) -> int:
    """Delete every document of the model's index node."""
    logger.info(f"Clearing index of {model_class.__name__}")
    return model_class.search_index.clear_index()


def reindex(model_class: type, session, includes: Iterable[str] = ()) -> int:
    """
    Rebuild the index entry of every record of the model.

    Args:
        model_class: Searchable model
        session: SQLAlchemy session to load the records from
        includes: Relationship names to eager-load with the records
    """
    options = [selectinload(getattr(model_class, name)) for name in includes]
    logger.info(f"Reindexing {model_class.__name__}" + (f" including {', '.join(includes)}" if options else ""))
    return model_class.search_index.reindex_all(session=session, options=options)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="search-do", description="Maintain the fulltext index of searchable models")
    commands = parser.add_subparsers(dest="command", required=True)

    clear = commands.add_parser("clear", help="delete every document of a model's index")
    clear.add_argument("model", help="searchable model as module:Model")

    rebuild = commands.add_parser("reindex", help="index every record of a model")
    rebuild.add_argument("model", help="searchable model as module:Model")
    rebuild.add_argument("--include", action="append", default=[], metavar="RELATION",
                         help="relationship to eager-load, may be repeated")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        model_class = load_model(args.model)
        if args.command == "clear":
            total = clear_index(model_class)
            print(f"Deleted {total} documents from the {model_class.__name__} index")
        else:
            with SessionLocal() as session:
                total = reindex(model_class, session, args.include)
            print(f"Reindexed {total} {model_class.__name__} records")
    except SearchDoError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
