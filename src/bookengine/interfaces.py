"""Protocol definitions for the collaborators consumed by bookengine.

The search orchestrator and recommendation engine only talk to the catalog,
the external providers and the persistence layer through these interfaces.
The SQLite-backed implementations live in ``bookengine.db`` and the HTTP
providers in ``bookengine.api``; tests substitute in-memory fakes.
"""

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from .db.schemas import BookRecord, RecommendationRecord
    from .search.schemas import ClusterMapping, SearchResult, TitleAuthorKey


class CatalogSearch(Protocol):
    """Relevance-ranked full text search over the primary catalog."""

    def search(self, query: str, limit: int) -> "list[SearchResult]":
        """Return up to ``limit`` hits in deterministic relevance order."""
        ...


class BookRecordFetcher(Protocol):
    """Batch hydration of full book records."""

    def fetch_by_ids(self, ids: Sequence[str]) -> "list[BookRecord]":
        """Return the records that exist for ``ids``, in no particular order."""
        ...


class ClusterLookup(Protocol):
    """Batch lookups backing the two deduplication passes."""

    def fetch_cluster_mappings(self, ids: Sequence[str]) -> "Mapping[str, ClusterMapping]":
        """Map edition id to its resolved cluster membership."""
        ...

    def fetch_title_author_keys(self, ids: Sequence[str]) -> "Mapping[str, TitleAuthorKey]":
        """Map book id to its normalized title/author signature."""
        ...


class CanonicalBookLookup(Protocol):
    """Resolves a slug, internal id or ISBN to the canonical catalog book."""

    def resolve(self, identifier: str) -> "Optional[BookRecord]":
        ...


class SearchProvider(Protocol):
    """External best-effort book search."""

    name: str

    async def search(
        self,
        query: str,
        order_by: str,
        start_index: int,
        limit: int,
    ) -> "list[BookRecord]":
        ...


class CandidatePersistence(Protocol):
    """Stores candidates discovered through external providers."""

    def persist(self, candidates: "Sequence[BookRecord]", tag: str) -> int:
        """Persist candidates under ``tag`` and return how many were written."""
        ...


class RecommendationPersistence(Protocol):
    """Stores computed recommendation sets."""

    def persist_recommendations(
        self,
        source_book: "BookRecord",
        records: "Sequence[RecommendationRecord]",
    ) -> None:
        ...

    def update_cached_recommendation_ids(self, book_id: str, ids: Sequence[str]) -> None:
        ...
