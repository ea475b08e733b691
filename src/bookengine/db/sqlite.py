"""SQLite database operations.

Handles database connection, session management, and catalog seeding.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional, Sequence

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .models import Base, Book, WorkCluster, WorkClusterMember
from .schemas import BookRecord


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     BOOKENGINE_DB_PATH via the loaded config.
        """
        if db_path is None:
            db_path = str(get_config().db_path)

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # In-memory databases share one connection so every session sees the same data
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Book Operations
    # ========================================================================

    def add_book(self, record: BookRecord, session: Optional[Session] = None) -> Book:
        """Insert a book row from a record, keeping the record's id."""

        def _add(s: Session) -> Book:
            db_book = Book(
                id=record.id,
                slug=record.slug,
                title=record.title,
                subtitle=record.subtitle,
                isbn13=record.isbn13,
                isbn10=record.isbn10,
                description=record.description,
                page_count=record.page_count,
                publisher=record.publisher,
                language=record.language,
                published_date=(
                    record.published_date.isoformat() if record.published_date else None
                ),
                cover_url=record.cover_url,
                cover_s3_key=record.cover_s3_key,
                cover_width=record.cover_width,
                cover_height=record.cover_height,
                cover_high_resolution=record.cover_high_resolution,
                cover_grayscale=record.cover_grayscale,
                average_rating=record.average_rating,
                ratings_count=record.ratings_count,
                source=record.source.value,
            )
            db_book.set_authors(record.authors)
            db_book.set_categories(record.categories)
            db_book.set_cached_recommendation_ids(record.cached_recommendation_ids)
            s.add(db_book)
            s.flush()
            return db_book

        if session:
            return _add(session)

        with self.get_session() as s:
            book = _add(s)
            s.expunge(book)
            return book

    def get_book(self, book_id: str, session: Optional[Session] = None) -> Optional[Book]:
        """Get a book by ID."""

        def _get(s: Session) -> Optional[Book]:
            return s.get(Book, book_id)

        if session:
            return _get(session)

        with self.get_session() as s:
            book = _get(s)
            if book:
                s.expunge(book)
            return book

    def add_cluster(
        self,
        book_ids: Sequence[str],
        primary_id: Optional[str] = None,
        confidences: Optional[dict[str, float]] = None,
    ) -> str:
        """Group existing books into a work cluster.

        Args:
            book_ids: Member edition ids
            primary_id: Edition explicitly flagged as the cluster's primary
            confidences: Optional membership confidence per edition id

        Returns:
            The new cluster id
        """
        confidences = confidences or {}
        with self.get_session() as s:
            cluster = WorkCluster(member_count=len(book_ids))
            s.add(cluster)
            s.flush()
            for book_id in book_ids:
                s.add(
                    WorkClusterMember(
                        cluster_id=cluster.id,
                        book_id=book_id,
                        is_primary=book_id == primary_id,
                        confidence=confidences.get(book_id),
                    )
                )
            return cluster.id

    def count_books(self) -> int:
        """Count rows in the books table."""
        with self.get_session() as s:
            return len(s.execute(select(Book.id)).all())


# Global database instance
_db: Optional[Database] = None


def get_db() -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database()
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
