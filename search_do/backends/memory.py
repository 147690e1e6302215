"""
In-process index backend.

Keeps documents in a dict and evaluates conditions with the same phrase,
attribute and order syntax as the Hyper Estraier node. Meant for
development and tests; there is no persistence and no real ranking.
"""

import logging
import re
from datetime import datetime
from itertools import count as counter
from typing import Callable, Dict, List, Optional, Set

from ..core.exceptions import ConfigurationError
from ..schemas.index import IndexDocument, SearchCondition
from .base import IndexBackend

logger = logging.getLogger(__name__)

_OPERATOR_SPLIT_RE = re.compile(r" (AND|OR|ANDNOT) ")
_EXPRESSION_RE = re.compile(r"\A\s*(\S+)\s+(!?)([A-Z]+?)(I?)(?:\s+(.*?))?\s*\Z")
_ORDER_RE = re.compile(r"\A\s*(\S+)(?:\s+(STRA|STRD|NUMA|NUMD))?\s*\Z")
UNIVERSAL_PHRASE = "[UVSET]"


def numeric(value: Optional[str]) -> float:
    """Numeric reading of an attribute value; ISO date-times become epoch seconds."""
    if value is None:
        return 0.0
    try:
        return float(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.strip()).timestamp()
    except ValueError:
        return 0.0


def _numbers(operand: str) -> List[float]:
    return [numeric(part) for part in operand.split()]


STRING_OPERATORS: Dict[str, Callable[[str, str], bool]] = {
    "STREQ": lambda value, operand: value == operand,
    "STRNE": lambda value, operand: value != operand,
    "STRINC": lambda value, operand: operand in value,
    "STRBW": lambda value, operand: value.startswith(operand),
    "STREW": lambda value, operand: value.endswith(operand),
    "STRRX": lambda value, operand: re.search(operand, value) is not None,
}

NUMERIC_OPERATORS: Dict[str, Callable[[float, List[float]], bool]] = {
    "NUMEQ": lambda value, operand: value == operand[0],
    "NUMNE": lambda value, operand: value != operand[0],
    "NUMGT": lambda value, operand: value > operand[0],
    "NUMGE": lambda value, operand: value >= operand[0],
    "NUMLT": lambda value, operand: value < operand[0],
    "NUMLE": lambda value, operand: value <= operand[0],
    "NUMBT": lambda value, operand: operand[0] <= value <= operand[-1],
}


def attribute_matcher(expression: str) -> Callable[[IndexDocument], bool]:
    """Compile one "name OPERATOR operand" expression into a predicate."""
    match = _EXPRESSION_RE.match(expression)
    if match is None:
        raise ConfigurationError(f"Malformed attribute expression: {expression!r}")
    name, negate, operator, ignore_case, operand = match.groups()
    operand = operand or ""

    if operator in STRING_OPERATORS:
        compare = STRING_OPERATORS[operator]

        def matches(document: IndexDocument) -> bool:
            value = document.attr(name)
            if value is None:
                return False
            left, right = (value.lower(), operand.lower()) if ignore_case else (value, operand)
            return compare(left, right)
    elif operator in NUMERIC_OPERATORS:
        compare_num = NUMERIC_OPERATORS[operator]
        numbers = _numbers(operand) or [0.0]

        def matches(document: IndexDocument) -> bool:
            value = document.attr(name)
            if value is None:
                return False
            return compare_num(numeric(value), numbers)
    else:
        raise ConfigurationError(f"Unsupported attribute operator {operator!r} in {expression!r}")

    if negate:
        return lambda document: document.attr(name) is not None and not matches(document)
    return matches


class MemoryIndexBackend(IndexBackend):
    """Index backend holding documents in process memory."""

    name = "memory"

    def __init__(self, node_name: str = "memory", **_connection):
        super().__init__(node_name)
        self.documents: Dict[str, IndexDocument] = {}
        self._ids = counter(1)

    def add(self, document: IndexDocument) -> None:
        stored = document.model_copy(deep=True)
        existing = self.documents.get(stored.uri)
        internal_id = existing.internal_id if existing is not None else str(next(self._ids))
        stored.attrs["@id"] = internal_id
        self.documents[stored.uri] = stored
        logger.debug(f"Stored {stored.uri} as #{internal_id} on {self.node_name}")

    def delete(self, document: IndexDocument) -> None:
        for uri, stored in list(self.documents.items()):
            if stored.internal_id == document.internal_id or (
                document.internal_id is None and uri == document.uri
            ):
                del self.documents[uri]
                return

    def _term_hits(self, term: str) -> Dict[str, int]:
        term = term.strip().lower()
        if term.endswith("*"):
            term = term[:-1]
        hits = {}
        for uri, document in self.documents.items():
            occurrences = " ".join(document.texts).lower().count(term)
            if occurrences:
                hits[uri] = occurrences
        return hits

    def _phrase_hits(self, phrase: str) -> Dict[str, int]:
        if not phrase.strip() or phrase.strip() == UNIVERSAL_PHRASE:
            return {uri: 0 for uri in self.documents}

        parts = _OPERATOR_SPLIT_RE.split(phrase)
        scores = self._term_hits(parts[0])
        for operator, term in zip(parts[1::2], parts[2::2]):
            hits = self._term_hits(term)
            if operator == "AND":
                scores = {uri: scores[uri] + hits[uri] for uri in scores if uri in hits}
            elif operator == "OR":
                for uri, score in hits.items():
                    scores[uri] = scores.get(uri, 0) + score
            else:
                scores = {uri: score for uri, score in scores.items() if uri not in hits}
        return scores

    def _matches(self, condition: SearchCondition) -> List[IndexDocument]:
        scores = self._phrase_hits(condition.phrase)
        predicates = [attribute_matcher(expression) for expression in condition.attrs]

        matched = [
            self.documents[uri] for uri in self.documents
            if uri in scores and all(predicate(self.documents[uri]) for predicate in predicates)
        ]

        if condition.order:
            match = _ORDER_RE.match(condition.order)
            if match is None:
                raise ConfigurationError(f"Malformed order expression: {condition.order!r}")
            name, direction = match.groups()
            direction = direction or "STRA"
            if direction.startswith("NUM"):
                key = lambda document: numeric(document.attr(name))
            else:
                key = lambda document: document.attr(name) or ""
            matched.sort(key=key, reverse=direction.endswith("D"))
        else:
            matched.sort(key=lambda document: scores[document.uri], reverse=True)
        return matched

    def search(self, condition: SearchCondition) -> List[IndexDocument]:
        matched = self._matches(condition)[condition.skip:]
        if condition.max is not None and condition.max >= 0:
            matched = matched[:condition.max]
        return [document.model_copy(deep=True) for document in matched]

    def count(self, condition: SearchCondition) -> int:
        return len(self._matches(condition))

    def reset(self) -> None:
        """Drop every document and restart internal ids."""
        self.documents.clear()
        self._ids = counter(1)

    def db_ids(self) -> Set[str]:
        return {document.db_id for document in self.documents.values()}
