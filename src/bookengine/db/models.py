"""SQLAlchemy ORM models for the local SQLite catalog.

Tables:
- books: Canonical book records
- work_clusters: Groups of editions believed to be the same work
- work_cluster_members: Edition membership in a cluster
- book_recommendations: Persisted scored recommendations per source book
"""

import json
from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .schemas import BookRecord, BookSource


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Book(Base):
    """Book model - one row per catalog edition."""

    __tablename__ = "books"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    slug: Mapped[Optional[str]] = mapped_column(String(255), unique=True, index=True)

    # Core fields
    title: Mapped[Optional[str]] = mapped_column(String(500), index=True)
    subtitle: Mapped[Optional[str]] = mapped_column(String(500))
    authors: Mapped[Optional[str]] = mapped_column(Text)  # JSON array

    # Identifiers
    isbn13: Mapped[Optional[str]] = mapped_column(String(13), index=True)
    isbn10: Mapped[Optional[str]] = mapped_column(String(10), index=True)

    # Metadata
    description: Mapped[Optional[str]] = mapped_column(Text)
    page_count: Mapped[Optional[int]] = mapped_column(Integer)
    publisher: Mapped[Optional[str]] = mapped_column(String(500))
    language: Mapped[Optional[str]] = mapped_column(String(10))
    categories: Mapped[Optional[str]] = mapped_column(Text)  # JSON array
    published_date: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date

    # Cover
    cover_url: Mapped[Optional[str]] = mapped_column(Text)
    cover_s3_key: Mapped[Optional[str]] = mapped_column(Text)
    cover_width: Mapped[Optional[int]] = mapped_column(Integer)
    cover_height: Mapped[Optional[int]] = mapped_column(Integer)
    cover_high_resolution: Mapped[bool] = mapped_column(Boolean, default=False)
    cover_grayscale: Mapped[bool] = mapped_column(Boolean, default=False)

    # Ratings
    average_rating: Mapped[Optional[float]] = mapped_column(Float)
    ratings_count: Mapped[Optional[int]] = mapped_column(Integer)

    # Recommendation cache
    cached_recommendation_ids: Mapped[Optional[str]] = mapped_column(Text)  # JSON array

    # Source tracking
    source: Mapped[str] = mapped_column(String(20), default=BookSource.CATALOG.value)
    ingest_tag: Mapped[Optional[str]] = mapped_column(String(50))

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso, onupdate=utc_now_iso)

    cluster_membership: Mapped[Optional["WorkClusterMember"]] = relationship(
        back_populates="book", uselist=False, cascade="all, delete-orphan"
    )

    def get_authors(self) -> list[str]:
        """Get authors as list."""
        if self.authors:
            return json.loads(self.authors)
        return []

    def set_authors(self, authors: list[str]) -> None:
        """Set authors from list."""
        self.authors = json.dumps(authors, ensure_ascii=False) if authors else None

    def get_categories(self) -> list[str]:
        """Get categories as list."""
        if self.categories:
            return json.loads(self.categories)
        return []

    def set_categories(self, categories: list[str]) -> None:
        """Set categories from list."""
        self.categories = json.dumps(categories, ensure_ascii=False) if categories else None

    def get_cached_recommendation_ids(self) -> list[str]:
        """Get cached recommendation ids as list."""
        if self.cached_recommendation_ids:
            return json.loads(self.cached_recommendation_ids)
        return []

    def set_cached_recommendation_ids(self, ids: list[str]) -> None:
        """Set cached recommendation ids from list."""
        self.cached_recommendation_ids = json.dumps(list(ids)) if ids else None

    def to_record(self) -> BookRecord:
        """Convert the row into an immutable ``BookRecord``."""
        published = None
        if self.published_date:
            try:
                published = date.fromisoformat(self.published_date)
            except ValueError:
                published = None
        return BookRecord(
            id=self.id,
            slug=self.slug,
            title=self.title,
            subtitle=self.subtitle,
            authors=self.get_authors(),
            isbn13=self.isbn13,
            isbn10=self.isbn10,
            description=self.description,
            page_count=self.page_count,
            publisher=self.publisher,
            language=self.language,
            categories=self.get_categories(),
            published_date=published,
            cover_url=self.cover_url,
            cover_s3_key=self.cover_s3_key,
            cover_width=self.cover_width,
            cover_height=self.cover_height,
            cover_high_resolution=bool(self.cover_high_resolution),
            cover_grayscale=bool(self.cover_grayscale),
            average_rating=self.average_rating,
            ratings_count=self.ratings_count,
            source=BookSource.CATALOG,
            in_catalog=True,
            cached_recommendation_ids=self.get_cached_recommendation_ids(),
        )

    def __repr__(self) -> str:
        return f"<Book(id={self.id!r}, title={self.title!r})>"


class WorkCluster(Base):
    """A work: a group of editions of the same underlying book."""

    __tablename__ = "work_clusters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    member_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    members: Mapped[list["WorkClusterMember"]] = relationship(
        back_populates="cluster", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<WorkCluster(id={self.id!r}, member_count={self.member_count})>"


class WorkClusterMember(Base):
    """Edition membership in a work cluster."""

    __tablename__ = "work_cluster_members"
    __table_args__ = (UniqueConstraint("book_id", name="uq_cluster_member_book"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cluster_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("work_clusters.id", ondelete="CASCADE"), index=True
    )
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    confidence: Mapped[Optional[float]] = mapped_column(Float)

    cluster: Mapped[WorkCluster] = relationship(back_populates="members")
    book: Mapped[Book] = relationship(back_populates="cluster_membership")


class BookRecommendation(Base):
    """A persisted scored recommendation."""

    __tablename__ = "book_recommendations"
    __table_args__ = (
        UniqueConstraint("source_book_id", "recommended_book_id", name="uq_recommendation_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), index=True
    )
    recommended_book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE")
    )
    score: Mapped[float] = mapped_column(Float, default=0.0)
    reasons: Mapped[Optional[str]] = mapped_column(Text)  # JSON array
    generated_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    def get_reasons(self) -> list[str]:
        """Get reasons as list."""
        if self.reasons:
            return json.loads(self.reasons)
        return []

    def set_reasons(self, reasons: list[str]) -> None:
        """Set reasons from list."""
        self.reasons = json.dumps(sorted(reasons)) if reasons else None
