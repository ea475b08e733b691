"""Pytest configuration and shared fixtures.

This module provides fixtures for testing bookengine: temporary SQLite
databases, a deterministic config, and in-memory fakes for the catalog,
cluster lookups, external providers and persistence.
"""

import asyncio
import os
import tempfile
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Generator, Optional

import pytest

from bookengine.config import Config, reset_config
from bookengine.db.schemas import BookRecord, BookSource
from bookengine.db.sqlite import Database, reset_db
from bookengine.search.schemas import ClusterMapping, SearchResult, TitleAuthorKey


# ============================================================================
# Helpers
# ============================================================================


def make_book(book_id: str, **fields) -> BookRecord:
    """Build a catalog book record with sensible defaults."""
    fields.setdefault("title", f"Book {book_id}")
    fields.setdefault("authors", ["Test Author"])
    fields.setdefault("in_catalog", True)
    return BookRecord(id=book_id, **fields)


def make_external(book_id: str, **fields) -> BookRecord:
    """Build a provider record."""
    fields.setdefault("source", BookSource.OPENLIBRARY)
    fields.setdefault("in_catalog", False)
    return make_book(book_id, **fields)


# ============================================================================
# Fakes
# ============================================================================


class FakeCatalog:
    """Catalog search and hydration over a fixed set of books."""

    def __init__(
        self,
        books: Sequence[BookRecord] = (),
        results: Optional[Mapping[str, Sequence[SearchResult]]] = None,
        fail_with: Optional[Exception] = None,
    ):
        self.books = {book.id: book for book in books}
        self.results = dict(results or {})
        self.fail_with = fail_with
        self.search_calls: list[tuple[str, int]] = []
        self.fetch_calls: list[list[str]] = []

    def search(self, query: str, limit: int) -> list[SearchResult]:
        self.search_calls.append((query, limit))
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.results.get(query, []))[:limit]

    def fetch_by_ids(self, ids: Sequence[str]) -> list[BookRecord]:
        self.fetch_calls.append(list(ids))
        return [self.books[i] for i in ids if i in self.books]

    def resolve(self, identifier: str) -> Optional[BookRecord]:
        if identifier in self.books:
            return self.books[identifier]
        for book in self.books.values():
            if identifier in (book.slug, book.isbn13, book.isbn10):
                return book
        return None


class FakeClusterLookup:
    """Cluster and title/author lookups from dictionaries."""

    def __init__(
        self,
        mappings: Optional[Mapping[str, ClusterMapping]] = None,
        keys: Optional[Mapping[str, str]] = None,
    ):
        self.mappings = dict(mappings or {})
        self.keys = dict(keys or {})
        self.key_calls: list[list[str]] = []

    def fetch_cluster_mappings(self, ids: Sequence[str]) -> dict[str, ClusterMapping]:
        return {i: self.mappings[i] for i in ids if i in self.mappings}

    def fetch_title_author_keys(self, ids: Sequence[str]) -> dict[str, TitleAuthorKey]:
        self.key_calls.append(list(ids))
        return {i: TitleAuthorKey(self.keys[i]) for i in ids if i in self.keys}


class FakeProvider:
    """Async search provider returning canned records."""

    def __init__(
        self,
        name: str,
        books: Sequence[BookRecord] = (),
        fail_with: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.name = name
        self.books = list(books)
        self.fail_with = fail_with
        self.delay = delay
        self.calls: list[tuple[str, str, int, int]] = []

    async def search(self, query: str, order_by: str, start_index: int, limit: int) -> list[BookRecord]:
        self.calls.append((query, order_by, start_index, limit))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return self.books[:limit]


class FakePersistence:
    """Records every persistence call."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.persisted: list[tuple[list[BookRecord], str]] = []
        self.recommendations: dict[str, list] = {}
        self.cached_ids: dict[str, list[str]] = {}

    def persist(self, candidates: Sequence[BookRecord], tag: str) -> int:
        if self.fail_with is not None:
            raise self.fail_with
        self.persisted.append((list(candidates), tag))
        return len(candidates)

    def persist_recommendations(self, source_book: BookRecord, records: Sequence) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.recommendations[source_book.id] = list(records)

    def update_cached_recommendation_ids(self, book_id: str, ids: Sequence[str]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.cached_ids[book_id] = list(ids)


# ============================================================================
# Config Fixtures
# ============================================================================


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """A config with small, deterministic paging bounds."""
    return Config(
        db_path=tmp_path / "catalog.db",
        default_search_limit=5,
        min_search_limit=1,
        max_search_limit=50,
        prefetch_multiplier=2,
        provider_timeout=0.5,
        similar_books_timeout=0.5,
        store_workers=2,
        external_fallback_enabled=True,
        google_books_api_key=None,
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a test database instance."""
    # Reset any global state
    reset_db()
    reset_config()

    os.environ["BOOKENGINE_DB_PATH"] = str(temp_db_path)

    database = Database(str(temp_db_path))
    database.create_tables()
    yield database

    # Cleanup
    database.engine.dispose()
    reset_db()
    reset_config()
    if "BOOKENGINE_DB_PATH" in os.environ:
        del os.environ["BOOKENGINE_DB_PATH"]
