"""Writes from the search and recommendation pipelines into the catalog.

Candidates found through external providers are upserted: an existing book
is matched by ISBN first, then by fuzzy title + author. Matches only gain
information (missing fields filled, longer descriptions, a cover where
there was none); nothing already stored is blanked out.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import BookNotFoundError, CatalogUnavailableError
from ..search.cover import has_renderable_cover
from .matching import fuzzy_match_score, normalize_string
from .models import Book, BookRecommendation, generate_uuid
from .schemas import BookRecord, RecommendationRecord
from .sqlite import Database, get_db

logger = logging.getLogger(__name__)

_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def slugify(title: Optional[str], authors: Sequence[str]) -> Optional[str]:
    """Build a URL slug from title and first author."""
    parts = [title or ""]
    if authors:
        parts.append(authors[0])
    slug = _SLUG_CHARS.sub("-", " ".join(parts).lower()).strip("-")
    return slug or None


class SqlBookPersistence:
    """Persistence for provider candidates and recommendation sets."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize persistence.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    # ========================================================================
    # Candidates
    # ========================================================================

    def persist(self, candidates: Sequence[BookRecord], tag: str) -> int:
        """Upsert provider candidates.

        Args:
            candidates: Records from external providers
            tag: Why they are being stored, kept on inserted rows

        Returns:
            Number of rows inserted or updated
        """
        written = 0
        try:
            with self.db.get_session() as session:
                for candidate in candidates:
                    if candidate is None:
                        continue
                    existing = self._find_existing(session, candidate)
                    if existing is None:
                        session.add(self._new_book(session, candidate, tag))
                        session.flush()
                        written += 1
                    elif self._apply_improvements(existing, candidate):
                        written += 1
        except SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Failed to persist candidates: {e}") from e

        logger.info("Persisted %d of %d candidates tagged '%s'", written, len(candidates), tag)
        return written

    def _find_existing(self, session: Session, candidate: BookRecord) -> Optional[Book]:
        isbns = [i for i in (candidate.isbn13, candidate.isbn10) if i]
        if isbns:
            book = session.execute(
                select(Book)
                .where(or_(Book.isbn13.in_(isbns), Book.isbn10.in_(isbns)))
                .order_by(Book.id)
            ).scalars().first()
            if book is not None:
                return book

        title = normalize_string(candidate.title)
        author = candidate.first_author
        if not title or not author:
            return None

        # Narrow to rows sharing the longest title word before fuzzy matching
        anchor = max(title.split(), key=len)
        rows = session.execute(
            select(Book).where(func.lower(Book.title).contains(anchor))
        ).scalars().all()

        best: Optional[Book] = None
        best_score = 0.0
        for book in rows:
            authors = book.get_authors()
            score = fuzzy_match_score(
                candidate.title, author, book.title, authors[0] if authors else None
            )
            if score is not None and score > best_score:
                best, best_score = book, score
        return best

    def _new_book(self, session: Session, candidate: BookRecord, tag: str) -> Book:
        slug = slugify(candidate.title, candidate.authors)
        if slug and session.execute(select(Book.id).where(Book.slug == slug)).first():
            slug = None

        book = Book(
            id=generate_uuid(),
            slug=slug,
            title=candidate.title,
            subtitle=candidate.subtitle,
            isbn13=candidate.isbn13 if candidate.isbn13 and len(candidate.isbn13) == 13 else None,
            isbn10=candidate.isbn10 if candidate.isbn10 and len(candidate.isbn10) == 10 else None,
            description=candidate.description,
            page_count=candidate.page_count,
            publisher=candidate.publisher,
            language=candidate.language,
            published_date=(
                candidate.published_date.isoformat() if candidate.published_date else None
            ),
            cover_url=candidate.cover_url,
            cover_width=candidate.cover_width,
            cover_height=candidate.cover_height,
            cover_high_resolution=candidate.cover_high_resolution,
            cover_grayscale=candidate.cover_grayscale,
            average_rating=candidate.average_rating,
            ratings_count=candidate.ratings_count,
            source=candidate.source.value,
            ingest_tag=tag,
        )
        book.set_authors(candidate.authors)
        book.set_categories(candidate.categories)
        return book

    def _apply_improvements(self, book: Book, candidate: BookRecord) -> bool:
        """Fill gaps in ``book`` from ``candidate``. Returns True if anything changed."""
        changed = False

        if len((candidate.description or "").strip()) > len((book.description or "").strip()):
            book.description = candidate.description
            changed = True
        if (candidate.page_count or 0) > 0 and not (book.page_count or 0) > 0:
            book.page_count = candidate.page_count
            changed = True
        if candidate.publisher and not (book.publisher or "").strip():
            book.publisher = candidate.publisher
            changed = True
        if candidate.language and not (book.language or "").strip():
            book.language = candidate.language
            changed = True
        if not book.categories and candidate.categories:
            book.set_categories(candidate.categories)
            changed = True
        if has_renderable_cover(candidate) and not has_renderable_cover(book.to_record()):
            book.cover_url = candidate.cover_url
            book.cover_width = candidate.cover_width
            book.cover_height = candidate.cover_height
            book.cover_high_resolution = candidate.cover_high_resolution
            book.cover_grayscale = candidate.cover_grayscale
            changed = True

        if changed:
            book.updated_at = datetime.now(timezone.utc).isoformat()
        return changed

    # ========================================================================
    # Recommendations
    # ========================================================================

    def persist_recommendations(
        self,
        source_book: BookRecord,
        records: Sequence[RecommendationRecord],
    ) -> None:
        """Replace the stored recommendations for a source book."""
        try:
            with self.db.get_session() as session:
                session.execute(
                    delete(BookRecommendation).where(
                        BookRecommendation.source_book_id == source_book.id
                    )
                )
                for record in records:
                    row = BookRecommendation(
                        source_book_id=source_book.id,
                        recommended_book_id=record.recommended_book_id,
                        score=record.score,
                        generated_at=record.generated_at.isoformat(),
                    )
                    row.set_reasons(record.reasons)
                    session.add(row)
        except SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Failed to persist recommendations: {e}") from e

        logger.debug("Stored %d recommendations for %s", len(records), source_book.id)

    def update_cached_recommendation_ids(self, book_id: str, ids: Sequence[str]) -> None:
        """Overwrite the cached recommendation ids on a book.

        Raises:
            BookNotFoundError: If the book does not exist
        """
        try:
            with self.db.get_session() as session:
                book = session.get(Book, book_id)
                if book is None:
                    raise BookNotFoundError(book_id)
                book.set_cached_recommendation_ids(list(ids))
        except SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Failed to cache recommendation ids: {e}") from e

    def get_recommendations(self, source_book_id: str) -> list[RecommendationRecord]:
        """Stored recommendations for a source book, best first."""
        try:
            with self.db.get_session() as session:
                rows = session.execute(
                    select(BookRecommendation)
                    .where(BookRecommendation.source_book_id == source_book_id)
                    .order_by(BookRecommendation.score.desc(), BookRecommendation.id)
                ).scalars().all()
                return [
                    RecommendationRecord(
                        source_book_id=row.source_book_id,
                        recommended_book_id=row.recommended_book_id,
                        score=row.score,
                        reasons=row.get_reasons(),
                        generated_at=datetime.fromisoformat(row.generated_at),
                    )
                    for row in rows
                ]
        except SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Failed to load recommendations: {e}") from e
