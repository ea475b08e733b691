"""Google Books volumes API client.

Works without a key at a low quota; set ``GOOGLE_BOOKS_API_KEY`` for more.
"""

import logging
from typing import Optional

import requests

from ..db.schemas import BookRecord, BookSource
from ..errors import ProviderError, ProviderRateLimitError

logger = logging.getLogger(__name__)

MAX_RESULTS_PER_CALL = 40


class GoogleBooksClient:
    """Client for the Google Books volumes endpoint."""

    BASE_URL = "https://www.googleapis.com/books/v1"
    PROVIDER_NAME = "google_books"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 10):
        self.api_key = api_key
        self.timeout = timeout
        self._session = requests.Session()

    def _get(self, url: str, params: Optional[dict] = None) -> dict:
        """Make GET request with error handling."""
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout:
            raise ProviderError("Request timed out", provider=self.PROVIDER_NAME)
        except requests.exceptions.HTTPError as e:
            if e.response.status_code == 429:
                raise ProviderRateLimitError(
                    "Rate limited by Google Books", provider=self.PROVIDER_NAME
                )
            raise ProviderError(
                f"HTTP error: {e.response.status_code}", provider=self.PROVIDER_NAME
            )
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Request failed: {e}", provider=self.PROVIDER_NAME)

    def search(
        self,
        query: str,
        order_by: str = "relevance",
        start_index: int = 0,
        limit: int = 10,
    ) -> list[BookRecord]:
        """Search volumes.

        Google Books understands ``intitle:``, ``inauthor:`` and ``isbn:``
        natively, so the query is passed through unchanged.
        """
        q = (query or "").strip()
        if not q or limit <= 0:
            return []

        params = {
            "q": q,
            "orderBy": "newest" if order_by == "newest" else "relevance",
            "startIndex": max(0, start_index),
            "maxResults": min(MAX_RESULTS_PER_CALL, limit),
            "printType": "books",
        }
        if self.api_key:
            params["key"] = self.api_key

        data = self._get(f"{self.BASE_URL}/volumes", params)

        results = []
        for item in data.get("items", []) or []:
            record = self._volume_to_record(item)
            if record:
                results.append(record)

        logger.debug("Google Books returned %d volumes for '%s'", len(results), q)
        return results

    def _volume_to_record(self, item: dict) -> Optional[BookRecord]:
        volume_id = item.get("id")
        info = item.get("volumeInfo") or {}
        title = info.get("title")
        if not volume_id or not title:
            return None

        isbn10 = None
        isbn13 = None
        for ident in info.get("industryIdentifiers", []) or []:
            kind = ident.get("type")
            if kind == "ISBN_13" and not isbn13:
                isbn13 = ident.get("identifier")
            elif kind == "ISBN_10" and not isbn10:
                isbn10 = ident.get("identifier")

        images = info.get("imageLinks") or {}
        cover_url = None
        for size in ("extraLarge", "large", "medium", "thumbnail", "smallThumbnail"):
            if images.get(size):
                cover_url = images[size].replace("http://", "https://", 1)
                break

        return BookRecord(
            id=volume_id,
            title=title,
            subtitle=info.get("subtitle"),
            authors=info.get("authors", []) or [],
            isbn13=isbn13,
            isbn10=isbn10,
            description=info.get("description"),
            page_count=info.get("pageCount"),
            publisher=info.get("publisher"),
            language=info.get("language"),
            categories=info.get("categories", []) or [],
            published_date=info.get("publishedDate"),
            cover_url=cover_url,
            average_rating=info.get("averageRating"),
            ratings_count=info.get("ratingsCount"),
            source=BookSource.GOOGLE_BOOKS,
        )
