"""
Translation of a query string and search options into a SearchCondition.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from ..schemas.index import COUNT_ONLY, DEFAULT_MAX, DEFAULT_SKIP, SearchCondition
from .exceptions import ConfigurationError
from .tokenizer import tokenize_query

logger = logging.getLogger(__name__)

VALID_CONDITION_OPTIONS = frozenset(("limit", "offset", "order", "attributes", "count"))

# relational column -> index attribute used for ordering
ORDER_COLUMNS = {
    "updated_at": "@mdate",
    "updated_on": "@mdate",
    "created_at": "@cdate",
    "created_on": "@cdate",
    "id": "db_id",
}
ORDER_DIRECTIONS = {"ASC": "NUMA", "DESC": "NUMD"}

_ORDER_RE = re.compile(
    r"\A\s*(%s)(?:\s+(ASC|DESC))?\s*\Z" % "|".join(ORDER_COLUMNS),
    re.IGNORECASE,
)


def translate_order(order: Optional[str]) -> Optional[str]:
    """
    Map relational ordering shorthand onto index order expressions.

    "updated_at DESC" becomes "@mdate NUMD", "id" becomes "db_id NUMD".
    Anything else is taken to be an index expression already.
    """
    if not order:
        return None
    match = _ORDER_RE.match(order)
    if match is None:
        return order
    column, direction = match.groups()
    return f"{ORDER_COLUMNS[column.lower()]} {ORDER_DIRECTIONS[(direction or 'DESC').upper()]}"


def attribute_expressions(attributes: Any) -> List[str]:
    """Flatten the attributes option into a list of non-blank filter expressions."""
    if attributes is None:
        return []
    if isinstance(attributes, str):
        attributes = [attributes]
    return [str(a) for a in attributes if a is not None and str(a).strip()]


class ConditionBuilder:
    """
    Builds search conditions.

    Scope expressions passed to build() follow the caller's attribute
    filters; subtype coordinators use them to limit searches to their part
    of the hierarchy.
    """

    def build(self, query: str = "", options: Optional[Dict[str, Any]] = None,
              scope: Iterable[str] = ()) -> SearchCondition:
        options = dict(options or {})
        unknown = set(options) - VALID_CONDITION_OPTIONS
        if unknown:
            raise ConfigurationError(
                f"Unknown search option(s): {', '.join(sorted(unknown))}. "
                f"Valid options are: {', '.join(sorted(VALID_CONDITION_OPTIONS))}"
            )

        limit = options.get("limit")
        offset = options.get("offset")

        cond = SearchCondition(
            phrase=tokenize_query(query or ""),
            max=COUNT_ONLY if options.get("count") else (DEFAULT_MAX if limit is None else int(limit)),
            skip=DEFAULT_SKIP if offset is None else int(offset),
            order=translate_order(options.get("order")),
        )
        for expression in attribute_expressions(options.get("attributes")) + list(scope):
            cond.add_attr(expression)

        return cond
