"""
Wire format helpers for the Hyper Estraier node API.

Documents travel as "drafts" (attribute lines, a blank line, text lines);
search requests are form-encoded conditions; search responses are blocks
of lines separated by a border string chosen by the node.
"""

import re
import logging
from typing import Dict, List, Optional, Tuple

from ..schemas.index import IndexDocument, SearchCondition

logger = logging.getLogger(__name__)

UNBOUNDED_MAX = 1 << 30
DEFAULT_AUXILIARY = 32
DEFAULT_WWIDTH = 480
DEFAULT_HWIDTH = 96
DEFAULT_AWIDTH = 96

_WHITESPACE_RE = re.compile(r"[ \t\r\n\v\f]+")


def normalize_space(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def dump_draft(document: IndexDocument) -> str:
    """Serialize a document into draft format."""
    lines = []
    for name in sorted(document.attrs):
        key = normalize_space(name)
        if not key:
            continue
        lines.append(f"{key}={normalize_space(document.attrs[name])}")
    lines.append("")
    for text in document.texts:
        text = normalize_space(text)
        if text:
            lines.append(text)
    return "\n".join(lines) + "\n"


def condition_form(condition: SearchCondition, depth: int = 0) -> Dict[str, str]:
    """Form fields of a search request for a condition."""
    form: Dict[str, str] = {}
    form["phrase"] = condition.phrase
    for position, expression in enumerate(condition.attrs, start=1):
        form[f"attr{position}"] = expression
    if condition.order:
        form["order"] = condition.order
    if condition.max is None or condition.max < 0:
        form["max"] = str(UNBOUNDED_MAX)
    else:
        form["max"] = str(condition.max)
    if condition.options > 0:
        form["options"] = str(condition.options)
    form["auxiliary"] = str(DEFAULT_AUXILIARY)
    if depth > 0:
        form["depth"] = str(depth)
    form["wwidth"] = str(DEFAULT_WWIDTH)
    form["hwidth"] = str(DEFAULT_HWIDTH)
    form["awidth"] = str(DEFAULT_AWIDTH)
    if condition.skip > 0:
        form["skip"] = str(condition.skip)
    return form


def _result_document(lines: List[str]) -> Optional[IndexDocument]:
    document = IndexDocument()
    position = 0
    while position < len(lines):
        line = lines[position].strip()
        position += 1
        if not line:
            break
        if line.startswith("%"):
            continue
        key, sep, value = line.partition("=")
        if sep:
            document.add_attr(key, value)
    if document.uri is None:
        return None
    snippet = "".join(f"{line}\n" for line in lines[position:])
    document.snippet = snippet
    return document


def parse_search_result(body: str) -> Optional[Tuple[List[IndexDocument], Dict[str, str]]]:
    """
    Parse a search response.

    Returns:
        (documents, hints), or None when the body is empty or was cut off
        before the closing border
    """
    lines = body.split("\n")
    if not lines or not lines[0]:
        return None

    border = lines[0]
    hints: Dict[str, str] = {}
    documents: List[IndexDocument] = []
    finished = False
    position = 1

    # meta block
    while position < len(lines):
        line = lines[position]
        position += 1
        if line.startswith(border):
            finished = line[len(border):] == ":END"
            break
        key, sep, value = line.partition("\t")
        if sep:
            hints[key] = value

    # one block per document
    block: List[str] = []
    while not finished and position < len(lines):
        line = lines[position]
        position += 1
        if line.startswith(border):
            if block:
                document = _result_document(block)
                if document is not None:
                    documents.append(document)
            block = []
            finished = line[len(border):] == ":END"
        else:
            block.append(line)

    if not finished:
        return None
    return documents, hints
