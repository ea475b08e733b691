"""Pydantic schemas for book records exchanged across the engine.

A ``BookRecord`` is the immutable view of a book whether it came from the
local catalog or from an external provider. Derived copies are made with
``model_copy(update=...)``; records are never mutated in place.
"""

import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_YEAR_PATTERN = re.compile(r"^(\d{4})")


class BookSource(str, Enum):
    """Where a book record was obtained."""

    CATALOG = "catalog"
    OPENLIBRARY = "openlibrary"
    GOOGLE_BOOKS = "google_books"


def sanitize_isbn(value: Optional[str]) -> Optional[str]:
    """Strip an ISBN down to its digits (and a trailing check ``X``)."""
    if value is None:
        return None
    cleaned = re.sub(r"[^0-9Xx]", "", str(value)).upper()
    return cleaned or None


class BookRecord(BaseModel):
    """Full, immutable book record."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Catalog id or provider-scoped id")
    slug: Optional[str] = None
    title: Optional[str] = None
    subtitle: Optional[str] = None
    authors: list[str] = Field(default_factory=list)

    # Identifiers
    isbn13: Optional[str] = None
    isbn10: Optional[str] = None

    # Metadata
    description: Optional[str] = None
    page_count: Optional[int] = Field(None, ge=0)
    publisher: Optional[str] = None
    language: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    published_date: Optional[date] = None

    # Cover
    cover_url: Optional[str] = None
    cover_s3_key: Optional[str] = None
    cover_width: Optional[int] = None
    cover_height: Optional[int] = None
    cover_high_resolution: bool = False
    cover_grayscale: bool = False

    # Ratings
    average_rating: Optional[float] = None
    ratings_count: Optional[int] = None

    # Provenance
    source: BookSource = BookSource.CATALOG
    in_catalog: bool = False

    cached_recommendation_ids: list[str] = Field(default_factory=list)
    qualifiers: dict[str, str] = Field(default_factory=dict)

    @field_validator("isbn13", "isbn10", mode="before")
    @classmethod
    def clean_isbn(cls, v: Optional[str]) -> Optional[str]:
        """Clean ISBN values (strip hyphens, spaces and quote wrappers)."""
        return sanitize_isbn(v)

    @field_validator("published_date", mode="before")
    @classmethod
    def parse_published_date(cls, v):
        """Accept full dates, ``YYYY-MM`` and bare years from providers."""
        if v is None or isinstance(v, date):
            return v
        text = str(v).strip()
        if not text:
            return None
        parts = text.split("-")
        try:
            if len(parts) >= 3:
                return date(int(parts[0]), int(parts[1]), int(parts[2][:2]))
            if len(parts) == 2:
                return date(int(parts[0]), int(parts[1]), 1)
        except ValueError:
            pass
        match = _YEAR_PATTERN.match(text)
        if match:
            return date(int(match.group(1)), 1, 1)
        return None

    @property
    def first_author(self) -> Optional[str]:
        """First non-blank author name, if any."""
        for author in self.authors:
            if author and author.strip():
                return author.strip()
        return None

    @property
    def published_year(self) -> Optional[int]:
        return self.published_date.year if self.published_date else None

    def with_qualifiers(self, qualifiers: dict[str, str]) -> "BookRecord":
        """Return a copy with extra search qualifiers merged in."""
        if not qualifiers:
            return self
        merged = dict(self.qualifiers)
        merged.update(qualifiers)
        return self.model_copy(update={"qualifiers": merged})


class RecommendationRecord(BaseModel):
    """A scored recommendation ready to be stored."""

    model_config = ConfigDict(frozen=True)

    source_book_id: str
    recommended_book_id: str
    score: float
    reasons: list[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
