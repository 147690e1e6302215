from .core.exceptions import SearchDoError, ConfigurationError, BackendError, BackendUnavailableError
from .core.searchable import searchable
from .core.tokenizer import tokenize_query
from .schemas.index import IndexDocument, SearchCondition

__version__ = "0.2.0"

__all__ = [
    "searchable",
    "tokenize_query",
    "IndexDocument",
    "SearchCondition",
    "SearchDoError",
    "ConfigurationError",
    "BackendError",
    "BackendUnavailableError",
]
