"""
Search coordinator: the index and query operations of one searchable model.

The coordinator keeps the index in step with the records (add, update,
remove, reindex, clear) and answers fulltext queries, either as raw index
documents, record ids, a count, or records loaded through a SQLAlchemy
session or a caller-supplied finder.
"""

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import inspect as sa_inspect, select

from ..schemas.index import IndexDocument, SearchCondition
from .condition_builder import ConditionBuilder
from .dirty_tracking import is_mapped_class
from .document_builder import DocumentBuilder
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

VALID_FULLTEXT_OPTIONS = frozenset(("limit", "offset", "order", "attributes", "raw_matches", "find", "count"))
VALID_FIND_OPTIONS = frozenset(("order_by", "where", "options"))
IGNORED_FIND_OPTIONS = frozenset(("limit", "offset"))

UPDATE_ACTIONS = ("add", "update", "remove")


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def self_and_descendants(cls: type) -> List[type]:
    """The class and every subclass below it, mapped ones through their mappers."""
    if is_mapped_class(cls):
        return [mapper.class_ for mapper in sa_inspect(cls).self_and_descendants]
    classes = [cls]
    for subclass in cls.__subclasses__():
        classes.extend(self_and_descendants(subclass))
    return classes


class SearchCoordinator:
    """Index maintenance and fulltext search for one model class."""

    def __init__(self, config, model_class: type):
        self.config = config
        self.model_class = model_class
        self.documents = DocumentBuilder(config)

        self.conditions = ConditionBuilder()
        self._id_type = self._resolve_id_type()

    @property
    def backend(self):
        return self.config.backend

    @property
    def tracker(self):
        return self.config.tracker

    @property
    def name(self) -> str:
        return self.model_class.__name__

    def _resolve_id_type(self) -> Optional[type]:
        if not is_mapped_class(self.model_class):
            return None
        column = sa_inspect(self.model_class).primary_key[0]
        try:
            return column.type.python_type
        except NotImplementedError:
            return None

    def _coerce_id(self, value: Optional[str]) -> Any:
        if value is None:
            return None
        if self._id_type is int or (self._id_type is None and value.isdigit()):
            try:
                return int(value)
            except ValueError:
                return value
        return value

    def _timed(self, message: str, operation: Callable[[], Any]) -> Any:
        started = time.perf_counter()
        result = operation()
        logger.debug(f"{message} ({time.perf_counter() - started:f}s)")
        return result

    # Query side

    def build_condition(self, query: str = "", **options) -> SearchCondition:
        """SearchCondition for a query, scoped to this class of the hierarchy."""
        scope = self.scope_expression()
        return self.conditions.build(query, options, scope=[scope] if scope else ())

    def scope_expression(self) -> Optional[str]:
        """
        Attribute filter limiting matches to this class and its subclasses.

        The root class searches the whole index and gets None.
        """
        if self.model_class is self.config.root_class:
            return None
        names = list(dict.fromkeys(cls.__name__ for cls in self_and_descendants(self.model_class)))
        if len(names) == 1:
            return f"@uri STRBW /{names[0]}/"
        return f"@uri STRRX ^/({'|'.join(names)})/"

    def _validate(self, options: Dict[str, Any]) -> None:
        unknown = set(options) - VALID_FULLTEXT_OPTIONS
        if unknown:
            raise ConfigurationError(
                f"Unknown fulltext option(s): {', '.join(sorted(unknown))}. "
                f"Valid options are: {', '.join(sorted(VALID_FULLTEXT_OPTIONS))}"
            )
        if options.get("raw_matches") and options.get("count"):
            raise ConfigurationError("raw_matches and count cannot be combined")

    def raw_matches(self, query: str = "", **options) -> List[IndexDocument]:
        """Matching index documents in index order."""
        options.pop("raw_matches", None)
        options.pop("count", None)
        options.pop("find", None)
        cond = self.build_condition(query, **options)

        started = time.perf_counter()
        matches = self.backend.search(cond)
        logger.debug(
            f"{self.name} search for '{query}' ({time.perf_counter() - started:f}s) Condition: {cond}"
        )
        return matches

    def matched_ids(self, query: str = "", **options) -> List[Any]:
        """Record ids of the matching documents in index order."""
        return [self._coerce_id(document.db_id) for document in self.raw_matches(query, **options)]

    def count(self, query: str = "", **options) -> int:
        """Number of matching documents."""
        options.pop("raw_matches", None)
        options.pop("find", None)
        options["count"] = True
        cond = self.build_condition(query, **options)

        started = time.perf_counter()
        total = self.backend.count(cond)
        logger.debug(
            f"{self.name} count for '{query}' ({time.perf_counter() - started:f}s) Condition: {cond}"
        )
        return total

    def search(self, query: str = "", session=None, finder: Optional[Callable[[List[Any]], Any]] = None,
               **options) -> Any:
        """
        Run a fulltext search.

        Args:
            query: Free-text query
            session: SQLAlchemy session used to load the matching records
            finder: Callable turning a list of ids into records, for models
                that are not mapped by SQLAlchemy
            **options: limit, offset, order, attributes, raw_matches,
                count, find

        Returns:
            The count when count=True, index documents when
            raw_matches=True, records when a session or finder is given,
            otherwise the matching ids
        """
        self._validate(options)
        find = options.pop("find", None)

        if options.get("count"):
            return self.count(query, **options)
        if options.pop("raw_matches", False):
            return self.raw_matches(query, **options)

        ids = self.matched_ids(query, **options)
        if finder is not None:
            return finder(ids) if ids else []
        if session is not None:
            return self.find_by_ids(session, ids, find)
        return ids

    def find_fulltext(self, query: str, session, newest_first: bool = True, **find) -> List[Any]:
        """Records matching the query, most recently updated first in the index."""
        options = {"order": "@mdate NUMD"} if newest_first else {}
        ids = self.matched_ids(query, **options)
        return self.find_by_ids(session, ids, find)

    def _order_clause(self, order: Any):
        if not isinstance(order, str):
            return order
        name, _, direction = order.strip().partition(" ")
        column = getattr(self.model_class, name)
        return column.desc() if direction.strip().upper() == "DESC" else column.asc()

    def find_by_ids(self, session, ids: Sequence[Any], find: Optional[Dict[str, Any]] = None) -> List[Any]:
        """
        Load records by id through a SQLAlchemy session.

        Records come back in the order of ``ids`` unless ``find`` carries an
        ``order_by``. ``limit`` and ``offset`` in ``find`` are ignored since
        pagination happens in the index.
        """
        if not ids:
            return []

        find = {k: v for k, v in (find or {}).items() if k not in IGNORED_FIND_OPTIONS}
        unknown = set(find) - VALID_FIND_OPTIONS
        if unknown:
            raise ConfigurationError(f"Unknown find option(s): {', '.join(sorted(unknown))}")

        pk = getattr(self.model_class, self.config.id_attribute)
        stmt = select(self.model_class).where(pk.in_(list(ids)))
        for clause in _as_list(find.get("where")):
            stmt = stmt.where(clause)
        loader_options = _as_list(find.get("options"))
        if loader_options:
            stmt = stmt.options(*loader_options)
        order_by = _as_list(find.get("order_by"))
        if order_by:
            stmt = stmt.order_by(*[self._order_clause(o) for o in order_by])

        records = list(session.scalars(stmt).unique())
        if not order_by:
            position = {record_id: i for i, record_id in enumerate(ids)}
            records.sort(key=lambda record: position.get(self.config.record_id(record), len(position)))
        return records

    # Index side

    def build_document(self, record: Any) -> IndexDocument:
        return self.documents.build(record)

    def document_for(self, record: Any) -> Optional[IndexDocument]:
        """Current index document of a record, if any."""
        return self.backend.find_by_db_id(self.config.record_id(record))

    def needs_update(self, record: Any, field_name: Optional[str] = None) -> bool:
        return self.tracker.needs_update(record, field_name)

    def clear_changed(self, record: Any) -> None:
        self.tracker.clear_changed(record)

    def add_document(self, record_id: Any, document: IndexDocument) -> None:
        self._timed(f"{self.name} [#{record_id}] Adding to index", lambda: self.backend.add(document))

    def remove_document(self, record_id: Any) -> bool:
        return self._timed(f"{self.name} [#{record_id}] Removing from index",
                           lambda: self.backend.remove(record_id))

    def replace_document(self, record_id: Any, document: IndexDocument) -> None:
        """
        Remove the record's current document, then add the new one.

        The two steps are separate requests. If the second fails the record
        stays unindexed until it is updated again or the model is reindexed.
        """
        self.remove_document(record_id)
        self.add_document(record_id, document)

    def apply(self, action: str, record_id: Any, document: Optional[IndexDocument] = None) -> None:
        """Apply a deferred index operation recorded during a flush."""
        if action == "add":
            self.add_document(record_id, document)
        elif action == "update":
            self.replace_document(record_id, document)
        elif action == "remove":
            self.remove_document(record_id)
        else:
            raise ValueError(f"Unknown index action {action!r}, expected one of {UPDATE_ACTIONS}")

    def add_to_index(self, record: Any) -> None:
        self.add_document(self.config.record_id(record), self.build_document(record))

    def remove_from_index(self, record: Any) -> bool:
        return self.remove_document(self.config.record_id(record))

    def update_index(self, record: Any, force: bool = False) -> bool:
        """
        Replace the record's index document when an observed field changed.

        Returns:
            True when the index was updated
        """
        if not (force or self.needs_update(record)):
            return False
        self.replace_document(self.config.record_id(record), self.build_document(record))
        return True

    def reindex_all(self, session=None, records: Optional[Iterable[Any]] = None,
                    options: Optional[Sequence[Any]] = None) -> int:
        """
        Rebuild the index entry of every record.

        Args:
            session: SQLAlchemy session to load the records from
            records: Records to index instead of loading them
            options: Loader options for the query, e.g. selectinload()

        Returns:
            Number of records indexed
        """
        if records is None:
            if session is None:
                raise ConfigurationError(f"reindex_all for {self.name} needs a session or records")
            stmt = select(self.model_class)
            if options:
                stmt = stmt.options(*options)
            records = session.scalars(stmt).unique()

        total = 0
        for record in records:
            self.update_index(record, force=True)
            total += 1

        logger.info(f"Reindexed {total} {self.name} records on node {self.backend.node_name}")
        return total

    def clear_index(self) -> int:
        return self._timed(f"{self.name} Deleting all index", self.backend.clear)

    # Lifecycle hooks for persistence layers without SQLAlchemy events

    def after_create(self, record: Any) -> None:
        self.add_to_index(record)

    def after_update(self, record: Any) -> None:
        self.update_index(record)

    def after_destroy(self, record: Any) -> None:
        self.remove_from_index(record)

    def after_save(self, record: Any) -> None:
        self.clear_changed(record)
