"""
Free-text query normalization.

Turns what a user typed into the conjunctive phrase syntax of the index
node: quoted runs stay together, everything else is split on whitespace
(including the ideographic space U+3000) and the terms are joined with
AND unless the user placed an operator between them.
"""

import re
from typing import List, Optional, Tuple

MULTIBYTE_SPACE = "　"
PRESERVED_QUERY_WORDS = ("AND", "OR", "ANDNOT")
DEFAULT_OPERATOR = "AND"

_TOKEN_RE = re.compile(r"""'([^']*)'|"([^"]*)"|([^\s%s]+)""" % MULTIBYTE_SPACE)
_QUOTES_RE = re.compile(r"""\A['"]|['"]\Z""")


def _scan(query: str) -> List[Tuple[str, bool]]:
    """Split the query into (token, quoted) pairs, dropping blank tokens."""
    tokens = []
    for single, double, bare in _TOKEN_RE.findall(query):
        if bare:
            tokens.append((bare, False))
        else:
            text = single or double
            if text.strip():
                tokens.append((text, True))
    return tokens


def _operator(token: str) -> Optional[str]:
    upper = token.upper()
    return upper if upper in PRESERVED_QUERY_WORDS else None


def tokenize_query(query: str) -> str:
    """
    Normalize a raw query into an explicit boolean phrase.

    Args:
        query: Text as typed by the user

    Returns:
        Terms joined with " AND ", or with the operator the user wrote
        between them. Operator words are recognized in any case and
        emitted in upper case; operators with no term on one side are
        dropped.

    An explicit AND, OR or ANDNOT stays an operator rather than being
    joined as a term, so normalizing the output again returns it unchanged.
    """
    if not query:
        return ""

    parts: List[str] = []
    pending: Optional[str] = None

    for token, quoted in _scan(query):
        op = None if quoted else _operator(token)
        if op is not None:
            pending = op
            continue

        term = _QUOTES_RE.sub("", token)
        if not term.strip():
            continue

        if parts:
            parts.append(pending or DEFAULT_OPERATOR)
        parts.append(term)
        pending = None

    return " ".join(parts)
