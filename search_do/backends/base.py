"""
Index backend interface.

A backend talks to one logical index node. It keeps no per-record state:
records are identified by the db_id attribute of their documents.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ..schemas.index import IndexDocument, SearchCondition

logger = logging.getLogger(__name__)

# every record document has a "/Type/id" uri
RECORD_DOCUMENTS_EXPRESSION = "@uri STRBW /"


def db_id_expression(record_id: Any) -> str:
    """Attribute expression matching the document of one record."""
    if isinstance(record_id, int) and not isinstance(record_id, bool):
        return f"db_id NUMEQ {record_id}"
    return f"db_id STREQ {record_id}"


class IndexBackend(ABC):
    """Operations against one index node."""

    name: str = ""

    def __init__(self, node_name: str):
        self.node_name = node_name

    @abstractmethod
    def add(self, document: IndexDocument) -> None:
        """Insert a document, replacing any document with the same @uri."""

    @abstractmethod
    def delete(self, document: IndexDocument) -> None:
        """Delete a document previously returned by search()."""

    @abstractmethod
    def search(self, condition: SearchCondition) -> List[IndexDocument]:
        """Ordered matches; an empty list when the node has nothing to report."""

    @abstractmethod
    def count(self, condition: SearchCondition) -> int:
        """Number of matches without fetching the documents."""

    def find_by_db_id(self, record_id: Any) -> Optional[IndexDocument]:
        cond = SearchCondition(max=1)
        cond.add_attr(db_id_expression(record_id))
        matches = self.search(cond)
        return matches[0] if matches else None

    def remove(self, record_id: Any) -> bool:
        """
        Remove the document of a record.

        Returns:
            False when the record had no document in the index
        """
        document = self.find_by_db_id(record_id)
        if document is None:
            return False
        self.delete(document)
        return True

    def index(self) -> List[IndexDocument]:
        """Every record document on the node."""
        cond = SearchCondition(max=None)
        cond.add_attr(RECORD_DOCUMENTS_EXPRESSION)
        return self.search(cond)

    def clear(self) -> int:
        documents = self.index()
        for document in documents:
            self.delete(document)
        logger.info(f"Deleted {len(documents)} documents from node {self.node_name}")
        return len(documents)

    def close(self) -> None:
        """Release transport resources."""
