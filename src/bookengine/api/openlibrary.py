"""Open Library API client used as a search fallback.

Open Library (openlibrary.org) provides free book metadata including
search by title/author/ISBN and cover images. No API key required.
"""

import logging
import time
from typing import Optional

import requests

from ..db.schemas import BookRecord, BookSource
from ..errors import ProviderError, ProviderRateLimitError
from ..search.queries import normalize_external_query

logger = logging.getLogger(__name__)

SEARCH_FIELDS = (
    "key,title,subtitle,author_name,first_publish_year,isbn,publisher,cover_i,"
    "number_of_pages_median,subject,language,ratings_average,ratings_count"
)

# Open Library supports fewer sorts than we expose; unknown ones fall back to relevance.
_SORTS = {
    "newest": "new",
    "title": "title",
    "rating": "rating",
}


class OpenLibraryClient:
    """Client for the Open Library search API."""

    BASE_URL = "https://openlibrary.org"
    COVERS_URL = "https://covers.openlibrary.org"
    PROVIDER_NAME = "openlibrary"

    def __init__(self, timeout: float = 10, min_request_interval: float = 0.5):
        """Initialize client.

        Args:
            timeout: Request timeout in seconds
            min_request_interval: Minimum spacing between requests in seconds
        """
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({
            "User-Agent": "bookengine/0.1 (book search fallback)"
        })
        self._last_request_time = 0.0
        self._min_request_interval = min_request_interval

    def _rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self._min_request_interval:
            time.sleep(self._min_request_interval - elapsed)
        self._last_request_time = time.time()

    def _get(self, url: str, params: Optional[dict] = None) -> dict:
        """Make GET request with error handling."""
        self._rate_limit()
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout:
            raise ProviderError("Request timed out", provider=self.PROVIDER_NAME)
        except requests.exceptions.HTTPError as e:
            if e.response.status_code == 429:
                raise ProviderRateLimitError(
                    "Rate limited by Open Library", provider=self.PROVIDER_NAME
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
        """Search Open Library.

        Args:
            query: Search query; ``intitle:``/``inauthor:``/``isbn:`` qualifiers are stripped
            order_by: Ordering hint
            start_index: Offset of the first result
            limit: Maximum results to return

        Returns:
            List of BookRecord objects
        """
        q = normalize_external_query(query)
        if not q or limit <= 0:
            return []

        params = {
            "q": q,
            "limit": limit,
            "offset": max(0, start_index),
            "fields": SEARCH_FIELDS,
        }
        sort = _SORTS.get(order_by)
        if sort:
            params["sort"] = sort

        data = self._get(f"{self.BASE_URL}/search.json", params)

        results = []
        for doc in data.get("docs", []):
            record = self._doc_to_record(doc)
            if record:
                results.append(record)

        logger.debug("Open Library returned %d docs for '%s'", len(results), q)
        return results[:limit]

    def _doc_to_record(self, doc: dict) -> Optional[BookRecord]:
        """Convert search document to BookRecord."""
        title = doc.get("title")
        key = doc.get("key", "")
        # Extract Open Library ID from key (e.g., "/works/OL123456W")
        olid = key.split("/")[-1] if key else None
        if not title or not olid:
            return None

        isbn10 = None
        isbn13 = None
        for i in doc.get("isbn", []):
            if len(i) == 10 and not isbn10:
                isbn10 = i
            elif len(i) == 13 and not isbn13:
                isbn13 = i
            if isbn10 and isbn13:
                break

        cover_id = doc.get("cover_i")
        cover_url = self.get_cover_url(cover_id) if cover_id else None

        publishers = doc.get("publisher", [])
        languages = doc.get("language", [])

        return BookRecord(
            id=olid,
            title=title,
            subtitle=doc.get("subtitle"),
            authors=doc.get("author_name", []),
            isbn13=isbn13,
            isbn10=isbn10,
            publisher=publishers[0] if publishers else None,
            page_count=doc.get("number_of_pages_median"),
            categories=doc.get("subject", [])[:20],
            language=languages[0] if languages else None,
            published_date=doc.get("first_publish_year"),
            cover_url=cover_url,
            average_rating=doc.get("ratings_average"),
            ratings_count=doc.get("ratings_count"),
            source=BookSource.OPENLIBRARY,
        )

    def get_cover_url(self, cover_id: int, size: str = "L") -> str:
        """Cover image URL for a search result cover id.

        Args:
            cover_id: Cover ID from search results
            size: Image size - S (small), M (medium), L (large)
        """
        return f"{self.COVERS_URL}/b/id/{cover_id}-{size}.jpg"
