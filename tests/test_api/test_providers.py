"""Tests for the external provider clients."""

from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests

from bookengine.api.google_books import GoogleBooksClient
from bookengine.api.openlibrary import OpenLibraryClient
from bookengine.api.providers import AsyncProvider
from bookengine.db.schemas import BookSource
from bookengine.errors import ProviderError, ProviderRateLimitError


def mock_response(payload: dict, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        error = requests.exceptions.HTTPError(response=response)
        response.raise_for_status.side_effect = error
    return response


OPENLIBRARY_DOC = {
    "key": "/works/OL893415W",
    "title": "Dune",
    "author_name": ["Frank Herbert"],
    "first_publish_year": 1965,
    "isbn": ["0441013597", "9780441013593"],
    "publisher": ["Ace Books"],
    "cover_i": 11481354,
    "number_of_pages_median": 412,
    "subject": ["Science fiction"],
    "language": ["eng"],
}


class TestOpenLibraryClient:
    """Tests for the Open Library client."""

    @pytest.fixture
    def client(self) -> OpenLibraryClient:
        return OpenLibraryClient(min_request_interval=0)

    def test_search_maps_documents(self, client: OpenLibraryClient):
        with patch.object(client._session, "get", return_value=mock_response({"docs": [OPENLIBRARY_DOC]})):
            results = client.search("dune", "relevance", 0, 5)

        assert len(results) == 1
        book = results[0]
        assert book.id == "OL893415W"
        assert book.isbn13 == "9780441013593"
        assert book.isbn10 == "0441013597"
        assert book.published_date == date(1965, 1, 1)
        assert book.cover_url == "https://covers.openlibrary.org/b/id/11481354-L.jpg"
        assert book.source == BookSource.OPENLIBRARY
        assert book.in_catalog is False

    def test_search_params(self, client: OpenLibraryClient):
        with patch.object(client._session, "get", return_value=mock_response({"docs": []})) as mock_get:
            client.search("isbn:9780441013593", "newest", 20, 10)

        params = mock_get.call_args.kwargs["params"]
        assert params["q"] == "9780441013593"
        assert params["sort"] == "new"
        assert params["offset"] == 20
        assert params["limit"] == 10

    def test_relevance_has_no_sort(self, client: OpenLibraryClient):
        with patch.object(client._session, "get", return_value=mock_response({"docs": []})) as mock_get:
            client.search("dune", "relevance", 0, 10)
        assert "sort" not in mock_get.call_args.kwargs["params"]

    def test_skips_documents_without_title(self, client: OpenLibraryClient):
        payload = {"docs": [{"key": "/works/OL1W"}, OPENLIBRARY_DOC]}
        with patch.object(client._session, "get", return_value=mock_response(payload)):
            assert [b.id for b in client.search("dune")] == ["OL893415W"]

    def test_blank_query_makes_no_request(self, client: OpenLibraryClient):
        with patch.object(client._session, "get") as mock_get:
            assert client.search("isbn:") == []
        mock_get.assert_not_called()

    def test_rate_limit(self, client: OpenLibraryClient):
        with patch.object(client._session, "get", return_value=mock_response({}, 429)):
            with pytest.raises(ProviderRateLimitError):
                client.search("dune")

    def test_timeout(self, client: OpenLibraryClient):
        with patch.object(client._session, "get", side_effect=requests.exceptions.Timeout()):
            with pytest.raises(ProviderError) as exc_info:
                client.search("dune")
        assert exc_info.value.provider == "openlibrary"


class TestGoogleBooksClient:
    """Tests for the Google Books client."""

    VOLUME = {
        "id": "B1hSG45JCX4C",
        "volumeInfo": {
            "title": "Dune",
            "authors": ["Frank Herbert"],
            "publishedDate": "2005-08-02",
            "description": "Set on the desert planet Arrakis.",
            "industryIdentifiers": [
                {"type": "ISBN_10", "identifier": "0441172717"},
                {"type": "ISBN_13", "identifier": "9780441172719"},
            ],
            "pageCount": 528,
            "categories": ["Fiction"],
            "language": "en",
            "imageLinks": {"thumbnail": "http://books.google.com/books/content?id=B1hSG45JCX4C"},
        },
    }

    def test_search_maps_volumes(self):
        client = GoogleBooksClient()
        with patch.object(client._session, "get", return_value=mock_response({"items": [self.VOLUME]})):
            results = client.search("dune", "newest", 0, 5)

        book = results[0]
        assert book.id == "B1hSG45JCX4C"
        assert book.isbn13 == "9780441172719"
        assert book.published_date == date(2005, 8, 2)
        assert book.cover_url.startswith("https://books.google.com/")
        assert book.source == BookSource.GOOGLE_BOOKS

    def test_params_and_key(self):
        client = GoogleBooksClient(api_key="secret")
        with patch.object(client._session, "get", return_value=mock_response({})) as mock_get:
            assert client.search("intitle:dune", "title", 5, 100) == []

        params = mock_get.call_args.kwargs["params"]
        assert params["q"] == "intitle:dune"
        assert params["orderBy"] == "relevance"
        assert params["startIndex"] == 5
        assert params["maxResults"] == 40
        assert params["key"] == "secret"

    def test_http_error(self):
        client = GoogleBooksClient()
        with patch.object(client._session, "get", return_value=mock_response({}, 503)):
            with pytest.raises(ProviderError):
                client.search("dune")


class TestAsyncProvider:
    """Tests for the async adapter."""

    @pytest.mark.asyncio
    async def test_runs_blocking_client(self):
        client = MagicMock()
        client.search.return_value = []
        provider = AsyncProvider(client, "openlibrary")

        assert await provider.search("dune", "newest", 0, 10) == []
        client.search.assert_called_once_with("dune", "newest", 0, 10)
        assert provider.name == "openlibrary"
