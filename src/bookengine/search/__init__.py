"""Catalog search: deduplication, pagination and provider fallback."""

from .schemas import (
    ClusterMapping,
    CoverSource,
    MatchType,
    ResolutionPreference,
    SearchPage,
    SearchRequest,
    SearchResult,
    TitleAuthorKey,
)
from .keys import CandidateKeyResolver, resolve_candidate_key
from .dedupe import ResultDeduplicator
from .paging import SearchPageAssembler, Window, window
from .pagination import SearchPaginationOrchestrator, TAG_NEW, TAG_REFRESH

__all__ = [
    "ClusterMapping",
    "CoverSource",
    "MatchType",
    "ResolutionPreference",
    "SearchPage",
    "SearchRequest",
    "SearchResult",
    "TitleAuthorKey",
    "CandidateKeyResolver",
    "resolve_candidate_key",
    "ResultDeduplicator",
    "SearchPageAssembler",
    "Window",
    "window",
    "SearchPaginationOrchestrator",
    "TAG_NEW",
    "TAG_REFRESH",
]
