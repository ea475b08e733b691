"""Tests for the similar-books recommendation engine."""

import random

import pytest

from bookengine.discovery.recommendations import (
    RecommendationEngine,
    is_eligible,
    ranking_key,
)
from bookengine.discovery.scoring import Reason, ScoredBook
from bookengine.discovery.strategies import RecommendationStrategyChain
from bookengine.errors import (
    BookNotFoundError,
    CatalogUnavailableError,
    RecommendationPersistenceError,
)
from bookengine.search.schemas import SearchResult

from conftest import FakeCatalog, FakePersistence, FakeProvider, make_book, make_external

COVER = "https://covers.openlibrary.org/b/id/1-L.jpg"


@pytest.fixture
def engine_factory(config):
    created = []

    def factory(catalog, **kwargs):
        engine = RecommendationEngine(
            lookup=catalog,
            fetcher=catalog,
            strategies=RecommendationStrategyChain(catalog, catalog),
            config=config,
            **kwargs,
        )
        created.append(engine)
        return engine

    yield factory
    for engine in created:
        engine.close()


def author_catalog(source, others):
    """Catalog where an author search for the source's author returns ``others``."""
    books = [source, *others]
    results = {f"author:{source.authors[0]}": [SearchResult(b.id, 0.7) for b in books]}
    return FakeCatalog(books, results=results)


class TestEligibility:
    """Tests for candidate filtering."""

    def test_excludes_self(self):
        source = make_book("b1")
        assert not is_eligible(source, source)

    def test_language_must_match_when_source_has_one(self):
        source = make_book("b1", language="en")
        assert is_eligible(source, make_book("b2", language="en"))
        assert not is_eligible(source, make_book("b3", language="fr"))
        assert not is_eligible(source, make_book("b4"))

    def test_language_compared_without_padding(self):
        source = make_book("b1", language="en ")
        assert is_eligible(source, make_book("b2", language="en"))
        assert is_eligible(make_book("b3", language="en"), make_book("b4", language=" en"))

    def test_any_language_when_source_has_none(self):
        assert is_eligible(make_book("b1"), make_book("b3", language="fr"))

    def test_ranking_prefers_covers(self):
        covered = ScoredBook.of(make_book("c", cover_url=COVER), 1.0, Reason.TEXT)
        bare = ScoredBook.of(make_book("b"), 9.0, Reason.AUTHOR)
        assert sorted([bare, covered], key=ranking_key)[0] is covered


class TestDiscoveryPath:
    """Tests for computing fresh recommendations."""

    @pytest.mark.asyncio
    async def test_excludes_self_and_other_languages(self, engine_factory):
        source = make_book("B1", authors=["Jane Doe"], language="en")
        english = make_book("B2", authors=["Jane Doe"], language="en")
        french = make_book("B3", authors=["Jane Doe"], language="fr")
        engine = engine_factory(author_catalog(source, [english, french]))

        books = await engine.get_similar_books("B1")

        assert [b.id for b in books] == ["B2"]

    @pytest.mark.asyncio
    async def test_scores_accumulate_across_strategies(self, engine_factory):
        source = make_book("s", authors=["Jane Doe"], categories=["Fiction"])
        both = make_book("both", authors=["Jane Doe"], categories=["Fiction"])
        author_only = make_book("author_only", authors=["Jane Doe"])
        catalog = FakeCatalog(
            [source, both, author_only],
            results={
                "author:Jane Doe": [SearchResult("author_only", 0.9), SearchResult("both", 0.8)],
                "subject:Fiction": [SearchResult("both", 0.5)],
            },
        )
        engine = engine_factory(catalog)

        ranked = await engine.rank_candidates(source)

        assert [s.book_id for s in ranked] == ["both", "author_only"]
        assert ranked[0].score == pytest.approx(7.0)
        assert ranked[0].reason_names() == ["AUTHOR", "CATEGORY"]

    @pytest.mark.asyncio
    async def test_persists_limited_records_and_all_ids(self, engine_factory):
        source = make_book("s", authors=["Jane Doe"])
        others = [make_book(f"o{i}", authors=["Jane Doe"]) for i in range(4)]
        persistence = FakePersistence()
        engine = engine_factory(author_catalog(source, others), persistence=persistence)

        books = await engine.get_similar_books("s", count=2)

        assert [b.id for b in books] == ["o0", "o1"]
        records = persistence.recommendations["s"]
        assert [r.recommended_book_id for r in records] == ["o0", "o1"]
        assert records[0].reasons == ["AUTHOR"]
        assert persistence.cached_ids["s"] == ["o0", "o1", "o2", "o3"]

    @pytest.mark.asyncio
    async def test_persistence_failure_carries_results(self, engine_factory):
        source = make_book("s", authors=["Jane Doe"])
        other = make_book("o1", authors=["Jane Doe"])
        engine = engine_factory(
            author_catalog(source, [other]),
            persistence=FakePersistence(fail_with=RuntimeError("read-only database")),
        )

        with pytest.raises(RecommendationPersistenceError) as exc_info:
            await engine.get_similar_books("s")

        assert [b.id for b in exc_info.value.recommendations] == ["o1"]
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_no_candidates(self, engine_factory):
        source = make_book("s", authors=["Jane Doe"])
        persistence = FakePersistence()
        engine = engine_factory(FakeCatalog([source]), persistence=persistence)

        assert await engine.get_similar_books("s") == []
        assert persistence.recommendations == {}

    @pytest.mark.asyncio
    async def test_non_positive_count_uses_default(self, engine_factory):
        source = make_book("s", authors=["Jane Doe"])
        others = [make_book(f"o{i}", authors=["Jane Doe"]) for i in range(8)]
        engine = engine_factory(author_catalog(source, others))

        assert len(await engine.get_similar_books("s", count=0)) == 6


class TestCachePath:
    """Tests for serving cached recommendation ids."""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_discovery(self, engine_factory):
        source = make_book("s", authors=["Jane Doe"], cached_recommendation_ids=["c1", "c2", "c3"])
        cached = [make_book(i) for i in ("c1", "c2", "c3")]
        catalog = FakeCatalog([source, *cached])
        engine = engine_factory(catalog, rng=random.Random(7))

        books = await engine.get_similar_books("s", count=3)

        assert sorted(b.id for b in books) == ["c1", "c2", "c3"]
        assert catalog.search_calls == []
        assert len(catalog.fetch_calls) == 1

    @pytest.mark.asyncio
    async def test_cache_respects_count(self, engine_factory):
        source = make_book("s", cached_recommendation_ids=["c1", "c2", "c3"])
        catalog = FakeCatalog([source, *(make_book(i) for i in ("c1", "c2", "c3"))])
        engine = engine_factory(catalog, rng=random.Random(1))

        assert len(await engine.get_similar_books("s", count=2)) == 2

    @pytest.mark.asyncio
    async def test_stale_cache_falls_through_to_discovery(self, engine_factory):
        source = make_book("s", authors=["Jane Doe"], cached_recommendation_ids=["gone"])
        other = make_book("o1", authors=["Jane Doe"])
        engine = engine_factory(author_catalog(source, [other]))

        assert [b.id for b in await engine.get_similar_books("s")] == ["o1"]

    @pytest.mark.asyncio
    async def test_regenerate_ignores_cache(self, engine_factory):
        source = make_book("s", authors=["Jane Doe"], cached_recommendation_ids=["c1"])
        other = make_book("o1", authors=["Jane Doe"])
        catalog = author_catalog(source, [other, make_book("c1")])
        engine = engine_factory(catalog)

        books = await engine.regenerate_similar_books("s")

        assert [b.id for b in books] == ["o1", "c1"]
        assert catalog.search_calls


class TestUnknownBooks:
    """Tests for identifiers missing from the catalog."""

    @pytest.mark.asyncio
    async def test_unknown_returns_empty(self, engine_factory):
        assert await engine_factory(FakeCatalog()).get_similar_books("missing") == []

    @pytest.mark.asyncio
    async def test_blank_identifier(self, engine_factory):
        assert await engine_factory(FakeCatalog()).get_similar_books("  ") == []

    @pytest.mark.asyncio
    async def test_regenerate_unknown_raises(self, engine_factory):
        with pytest.raises(BookNotFoundError):
            await engine_factory(FakeCatalog()).regenerate_similar_books("missing")

    @pytest.mark.asyncio
    async def test_legacy_path_uses_external_source(self, engine_factory):
        external = make_external("OL9W", title="Dune", authors=["Frank Herbert"])
        local = make_book("b1", authors=["Frank Herbert"])
        catalog = FakeCatalog(
            [local], results={"author:Frank Herbert": [SearchResult("b1", 0.7)]}
        )
        provider = FakeProvider("openlibrary", [external])
        persistence = FakePersistence()
        engine = engine_factory(catalog, fallback_provider=provider, persistence=persistence)

        books = await engine.get_similar_books("9780441013593")

        assert [b.id for b in books] == ["b1"]
        assert provider.calls == [("9780441013593", "relevance", 0, 1)]
        assert persistence.recommendations == {}
        assert persistence.cached_ids == {}

    @pytest.mark.asyncio
    async def test_catalog_failure_propagates_from_strategies(self, engine_factory):
        source = make_book("s", authors=["Jane Doe"])
        catalog = FakeCatalog([source], fail_with=CatalogUnavailableError("down"))
        engine = engine_factory(catalog)

        with pytest.raises(CatalogUnavailableError):
            await engine.get_similar_books("s")
