"""Async adapters that expose the blocking HTTP clients as search providers."""

import asyncio
from typing import Optional, Protocol

from ..config import Config, get_config
from ..db.schemas import BookRecord
from .google_books import GoogleBooksClient
from .openlibrary import OpenLibraryClient


class BlockingSearchClient(Protocol):
    def search(self, query: str, order_by: str, start_index: int, limit: int) -> list[BookRecord]:
        ...


class AsyncProvider:
    """Runs a blocking client's ``search`` on a worker thread."""

    def __init__(self, client: BlockingSearchClient, name: str):
        self.client = client
        self.name = name

    async def search(
        self,
        query: str,
        order_by: str,
        start_index: int,
        limit: int,
    ) -> list[BookRecord]:
        return await asyncio.to_thread(self.client.search, query, order_by, start_index, limit)

    def __repr__(self) -> str:
        return f"<AsyncProvider(name={self.name!r})>"


def default_providers(config: Optional[Config] = None) -> tuple[AsyncProvider, AsyncProvider]:
    """Primary (Open Library) and secondary (Google Books) providers."""
    config = config or get_config()
    timeout = config.provider_timeout
    google = AsyncProvider(
        GoogleBooksClient(api_key=config.google_books_api_key, timeout=timeout),
        GoogleBooksClient.PROVIDER_NAME,
    )
    openlibrary = AsyncProvider(
        OpenLibraryClient(timeout=timeout),
        OpenLibraryClient.PROVIDER_NAME,
    )
    return openlibrary, google
