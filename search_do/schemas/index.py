from pydantic import BaseModel, Field
from typing import List, Optional, Dict


# Condition option flags understood by the index node
USUAL = 1 << 1
SIMPLE = 1 << 10

DEFAULT_MAX = 100
DEFAULT_SKIP = 0
COUNT_ONLY = -1


class IndexDocument(BaseModel):
    """Schema for one indexed record: text blocks plus string attributes"""
    texts: List[str] = Field(default_factory=list)
    attrs: Dict[str, str] = Field(default_factory=dict)
    snippet: Optional[str] = None

    def add_text(self, text: Optional[str]) -> None:
        self.texts.append("" if text is None else str(text))

    def add_attr(self, name: str, value: Optional[str]) -> None:
        self.attrs[name] = "" if value is None else str(value)

    def attr(self, name: str) -> Optional[str]:
        return self.attrs.get(name)

    @property
    def db_id(self) -> Optional[str]:
        return self.attrs.get("db_id")

    @property
    def uri(self) -> Optional[str]:
        return self.attrs.get("@uri")

    @property
    def internal_id(self) -> Optional[str]:
        """Identifier assigned by the backend, present on search results only."""
        return self.attrs.get("@id")


class SearchCondition(BaseModel):
    """Schema for a backend-neutral search request"""
    phrase: str = ""
    attrs: List[str] = Field(default_factory=list)
    max: Optional[int] = DEFAULT_MAX  # None means unbounded
    skip: int = DEFAULT_SKIP
    order: Optional[str] = None
    options: int = SIMPLE | USUAL

    @property
    def count_only(self) -> bool:
        return self.max == COUNT_ONLY

    def add_attr(self, expression: str) -> None:
        self.attrs.append(expression)

    def __str__(self) -> str:
        return "phrase: %s, attrs: %s, max: %s, options: %s, order: %s, skip: %s" % (
            self.phrase, ", ".join(self.attrs), self.max, self.options, self.order, self.skip
        )
