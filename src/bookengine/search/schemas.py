"""Value types for catalog search and pagination."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..db.schemas import BookRecord
from .queries import normalize_order_by, normalize_query


class MatchType(str, Enum):
    """How a catalog row matched the query."""

    ISBN = "isbn"
    TITLE = "title"
    AUTHOR = "author"
    SUBJECT = "subject"
    FULLTEXT = "fulltext"
    EXTERNAL = "external"


class CoverSource(str, Enum):
    """Cover source preference filter."""

    ANY = "any"
    S3 = "s3"
    OPENLIBRARY = "openlibrary"
    GOOGLE_BOOKS = "google_books"
    UNDEFINED = "undefined"

    @classmethod
    def parse(cls, value: Optional[str]) -> "CoverSource":
        if not value:
            return cls.ANY
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.ANY


class ResolutionPreference(str, Enum):
    """Cover resolution preference filter."""

    ANY = "any"
    HIGH_ONLY = "high_only"
    HIGH_FIRST = "high_first"
    LARGE = "large"
    MEDIUM = "medium"
    SMALL = "small"
    ORIGINAL = "original"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ResolutionPreference":
        if not value:
            return cls.ANY
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.ANY


@dataclass(frozen=True)
class SearchResult:
    """One catalog row returned by relevance search."""

    book_id: str
    relevance_score: float
    match_type: MatchType = MatchType.FULLTEXT
    edition_count: int = 1
    cluster_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.edition_count < 1:
            object.__setattr__(self, "edition_count", 1)


@dataclass(frozen=True)
class ClusterMapping:
    """Resolved cluster membership for one edition."""

    primary_id: Optional[str]
    cluster_id: Optional[str]
    edition_count: int = 1
    has_explicit_primary: bool = False


@dataclass(frozen=True)
class TitleAuthorKey:
    """Normalized ``title::authors`` signature."""

    normalized_key: Optional[str]

    @property
    def is_empty(self) -> bool:
        return not self.normalized_key or not self.normalized_key.strip()


@dataclass(frozen=True)
class SearchRequest:
    """Normalized input to a paginated search.

    Blank queries become the ``*`` wildcard, unknown orderings fall back to
    ``newest`` and negative offsets are clamped to zero.
    """

    query: str
    start_index: int = 0
    max_results: int = 0
    order_by: str = "newest"
    cover_source: CoverSource = CoverSource.ANY
    resolution_preference: ResolutionPreference = ResolutionPreference.ANY
    published_year: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "query", normalize_query(self.query))
        object.__setattr__(self, "start_index", max(0, int(self.start_index or 0)))
        object.__setattr__(self, "max_results", int(self.max_results or 0))
        object.__setattr__(self, "order_by", normalize_order_by(self.order_by))
        if not isinstance(self.cover_source, CoverSource):
            object.__setattr__(self, "cover_source", CoverSource.parse(self.cover_source))
        if not isinstance(self.resolution_preference, ResolutionPreference):
            object.__setattr__(
                self,
                "resolution_preference",
                ResolutionPreference.parse(self.resolution_preference),
            )

    @property
    def is_wildcard(self) -> bool:
        return self.query == "*"


@dataclass(frozen=True)
class SearchPage:
    """One assembled page of search results."""

    query: str
    start_index: int
    max_results: int
    total_requested: int
    total_unique: int
    page_items: list[BookRecord] = field(default_factory=list)
    unique_results: list[BookRecord] = field(default_factory=list)
    has_more: bool = False
    next_start_index: int = 0
    prefetched_count: int = 0
    order_by: str = "newest"
    cover_source: CoverSource = CoverSource.ANY
    resolution_preference: ResolutionPreference = ResolutionPreference.ANY
