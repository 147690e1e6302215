"""
Projection of a record into an index document.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from ..schemas.index import IndexDocument
from .search_config import AttributeSource, SearchConfig

logger = logging.getLogger(__name__)

# Attribute names with built-in meaning on the index node; stored as "@name"
SYSTEM_ATTRIBUTES = frozenset((
    "uri", "digest", "cdate", "mdate", "adate", "title", "author",
    "type", "lang", "genre", "size", "weight", "misc",
))


def attribute_name(attribute: str) -> str:
    """Index-side name of a stored attribute."""
    attribute = str(attribute)
    return f"@{attribute}" if attribute in SYSTEM_ATTRIBUTES else attribute


def format_value(value: Any) -> str:
    """String form of an attribute value as the index expects it."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.replace(microsecond=0).isoformat()
    return str(value)


def read_value(record: Any, name: str, source: AttributeSource = None) -> Any:
    """Value of a field, method or callable source on a record."""
    if callable(source):
        return source(record)
    value = getattr(record, source or name)
    if callable(value):
        value = value()
    return value


class DocumentBuilder:
    """Builds IndexDocuments for records of one searchable model hierarchy."""

    def __init__(self, config: SearchConfig):
        self.config = config

    def build(self, record: Any) -> IndexDocument:
        config = self.config
        record_id = config.record_id(record)
        concrete = type(record)
        root = config.root_class

        doc = IndexDocument()
        doc.add_attr("db_id", str(record_id))
        if concrete is not root:
            doc.add_attr("type_base", root.__name__)
        doc.add_attr("@uri", f"/{concrete.__name__}/{record_id}")

        for attribute, source in config.attributes_to_store.items():
            value = read_value(record, attribute, source)
            doc.add_attr(attribute_name(attribute), format_value(value))

        for field_name in config.searchable_fields:
            doc.add_text(format_value(read_value(record, field_name)))

        return doc
