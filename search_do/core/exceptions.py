"""
Exceptions raised by the indexing and search layers.

Configuration problems surface when a model is set up or a search is
built; backend problems surface from the call that talked to the index
node. Neither is retried or converted into an empty result here.
"""

from typing import Optional


class SearchDoError(Exception):
    """Base class for every error raised by search_do."""
    pass


class ConfigurationError(SearchDoError):
    """
    Exception raised for invalid setup or call options.

    Raised for:
    - Unknown search options or conflicting result modes
    - Unsupported backend selection
    - Field or accessor names that do not exist on the model
    """
    pass


class BackendError(SearchDoError):
    """
    Exception raised when the index node rejects a request.

    Carries the HTTP status code when one is available.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackendUnavailableError(BackendError):
    """
    Exception raised when the index node cannot be reached.

    Covers connection failures, timeouts and rejected credentials. The
    caller decides whether to retry; a full reindex repairs any index
    entries missed while the node was unavailable.
    """
    pass
