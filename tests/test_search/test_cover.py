"""Tests for cover ranking, preference filters and result ordering."""

from datetime import date

from bookengine.search.cover import (
    apply_cover_preferences,
    detect_cover_source,
    has_bad_aspect_ratio,
    is_renderable,
    rank_cover,
)
from bookengine.search.ordering import order_results
from bookengine.search.schemas import CoverSource, ResolutionPreference

from conftest import make_book

OL_COVER = "https://covers.openlibrary.org/b/id/1-L.jpg"


class TestRankCover:
    """Tests for cover quality tiers."""

    def test_no_cover(self):
        assert rank_cover(None, None) == 0
        assert rank_cover(None, "https://example.com/placeholder-book-cover.svg") == 0
        assert rank_cover(None, "null") == 0

    def test_stored_high_resolution(self):
        assert rank_cover("covers/abc.jpg", None, 600, 900) == 5

    def test_external_high_resolution(self):
        assert rank_cover(None, OL_COVER, 600, 900) == 4

    def test_stored_copy_or_display_size(self):
        assert rank_cover("covers/abc.jpg", None) == 3
        assert rank_cover(None, "https://bucket.s3.amazonaws.com/c.jpg") == 3
        assert rank_cover(None, OL_COVER, 200, 300) == 3

    def test_small_external(self):
        assert rank_cover(None, OL_COVER, 100, 150) == 2

    def test_grayscale(self):
        assert rank_cover(None, OL_COVER, 600, 900, grayscale=True) == 1

    def test_bad_aspect_ratio(self):
        assert has_bad_aspect_ratio(900, 600) is True
        assert has_bad_aspect_ratio(None, 600) is False
        assert rank_cover(None, OL_COVER, 900, 600) == 0

    def test_is_renderable(self):
        assert is_renderable(OL_COVER) is True
        assert is_renderable("  ") is False


class TestCoverPreferences:
    """Tests for cover source and resolution filters."""

    def test_detect_cover_source(self):
        assert detect_cover_source(make_book("a", cover_url=OL_COVER)) == CoverSource.OPENLIBRARY
        google = make_book("b", cover_url="https://books.google.com/books/content?id=x")
        assert detect_cover_source(google) == CoverSource.GOOGLE_BOOKS
        assert detect_cover_source(make_book("c", cover_s3_key="covers/c.jpg")) == CoverSource.S3
        assert detect_cover_source(make_book("d")) == CoverSource.UNDEFINED

    def test_filters(self):
        large = make_book("large", cover_url=OL_COVER, cover_width=600, cover_height=900)
        small = make_book("small", cover_url=OL_COVER, cover_width=100, cover_height=140)
        bare = make_book("bare")

        only_high = apply_cover_preferences(
            [large, small, bare], CoverSource.ANY, ResolutionPreference.HIGH_ONLY
        )
        assert [b.id for b in only_high] == ["large"]

        only_small = apply_cover_preferences(
            [large, small, bare], CoverSource.OPENLIBRARY, ResolutionPreference.SMALL
        )
        assert [b.id for b in only_small] == ["small"]

        assert len(apply_cover_preferences([large, small, bare], CoverSource.ANY, ResolutionPreference.ANY)) == 3

    def test_parse_unknown_values(self):
        assert CoverSource.parse("nonsense") == CoverSource.ANY
        assert ResolutionPreference.parse(None) == ResolutionPreference.ANY


class TestOrderResults:
    """Tests for deterministic result ordering."""

    def test_cover_quality_first(self):
        bare = make_book("bare", published_date=date(2024, 1, 1))
        covered = make_book("covered", cover_url=OL_COVER, published_date=date(1990, 1, 1))
        assert [b.id for b in order_results([bare, covered], "newest")] == ["covered", "bare"]

    def test_newest_with_undated_last(self):
        old = make_book("old", published_date=date(1965, 8, 1))
        new = make_book("new", published_date=date(2020, 1, 1))
        undated = make_book("undated")
        assert [b.id for b in order_results([undated, old, new], "newest")] == ["new", "old", "undated"]

    def test_relevance_keeps_insertion_order(self):
        books = [make_book(i) for i in ("c", "a", "b")]
        assert [b.id for b in order_results(books, "relevance")] == ["c", "a", "b"]

    def test_title_order(self):
        books = [make_book("1", title="Zed"), make_book("2", title="alpha")]
        assert [b.id for b in order_results(books, "title")] == ["2", "1"]

    def test_catalog_before_external_on_equal_cover(self):
        external = make_book("ext", in_catalog=False)
        local = make_book("local")
        assert [b.id for b in order_results([external, local], "relevance")] == ["local", "ext"]
