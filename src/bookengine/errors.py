"""Exception hierarchy for bookengine.

Provider errors are transient and absorbed by the search and recommendation
pipelines. Catalog errors are systemic and always propagate.
"""

from typing import Any, Optional


class BookEngineError(Exception):
    """Base exception for bookengine errors."""

    pass


class CatalogUnavailableError(BookEngineError):
    """Raised when the catalog store cannot be reached or queried."""

    pass


class ProviderError(BookEngineError):
    """Raised when an external search provider fails."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ProviderRateLimitError(ProviderError):
    """Raised when an external provider rate limits us."""

    pass


class BookNotFoundError(BookEngineError):
    """Raised when no canonical book exists for an identifier."""

    def __init__(self, identifier: str):
        super().__init__(f"No canonical book found for '{identifier}'")
        self.identifier = identifier


class RecommendationPersistenceError(BookEngineError):
    """Raised when recommendations were computed but could not be stored.

    The computed list is still valid and is attached so callers can hand it
    back while surfacing the failed cache write.
    """

    def __init__(self, book_id: str, recommendations: list[Any], cause: Exception):
        super().__init__(f"Failed to persist recommendations for {book_id}: {cause}")
        self.book_id = book_id
        self.recommendations = recommendations
        self.__cause__ = cause
