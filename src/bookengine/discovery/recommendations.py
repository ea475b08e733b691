"""Content-based "similar books" recommendations.

Serves cached recommendation ids when the source book has them; otherwise
runs the author, category and text discovery strategies concurrently,
merges and ranks their candidates, and writes the new recommendation set
back through the persistence layer before returning.
"""

import asyncio
import logging
import random
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from ..config import Config, get_config
from ..db.schemas import BookRecord, RecommendationRecord
from ..errors import BookNotFoundError, CatalogUnavailableError, RecommendationPersistenceError
from ..interfaces import (
    BookRecordFetcher,
    CanonicalBookLookup,
    RecommendationPersistence,
    SearchProvider,
)
from ..search.cover import cover_rank
from ..workers import create_store_executor, run_blocking
from .scoring import ScoredBook
from .strategies import RecommendationStrategyChain

logger = logging.getLogger(__name__)

DEFAULT_RECOMMENDATION_COUNT = 6


def is_eligible(source: BookRecord, candidate: BookRecord) -> bool:
    """Exclude the source itself and, when it declares one, other languages."""
    if candidate is None or not candidate.id:
        return False
    if candidate.id == source.id:
        return False
    source_language = (source.language or "").strip()
    if not source_language:
        return True
    return (candidate.language or "").strip() == source_language


def ranking_key(scored: ScoredBook) -> tuple:
    """Books with a cover first, then higher score, then better cover."""
    rank = cover_rank(scored.book)
    return (0 if rank > 0 else 1, -scored.score, -rank)


class RecommendationEngine:
    """Ranks books similar to a given source book."""

    def __init__(
        self,
        lookup: CanonicalBookLookup,
        fetcher: BookRecordFetcher,
        strategies: RecommendationStrategyChain,
        persistence: Optional[RecommendationPersistence] = None,
        fallback_provider: Optional[SearchProvider] = None,
        config: Optional[Config] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize recommendation engine.

        Args:
            lookup: Resolves identifiers to canonical catalog books
            fetcher: Batch hydration of cached recommendation ids
            strategies: Author, category and text discovery
            persistence: Stores recommendation sets and cached ids
            fallback_provider: External lookup for books missing from the catalog
            config: Timeouts and fallback switch
            executor: Worker pool for blocking store calls
            rng: Random source for shuffling cached ids
        """
        self.lookup = lookup
        self.fetcher = fetcher
        self.strategies = strategies
        self.persistence = persistence
        self.fallback_provider = fallback_provider
        self.config = config or get_config()
        self._owns_executor = executor is None
        self.executor = executor or create_store_executor(self.config)
        self.rng = rng or random.Random()

    # ========================================================================
    # Public API
    # ========================================================================

    async def get_similar_books(
        self,
        identifier: str,
        count: int = DEFAULT_RECOMMENDATION_COUNT,
    ) -> list[BookRecord]:
        """Get books similar to the one identified.

        Args:
            identifier: Book id, slug or ISBN
            count: Number of recommendations (defaults to 6 if not positive)

        Returns:
            Ranked recommendations, empty if the book is unknown

        Raises:
            RecommendationPersistenceError: Recommendations were computed but
                could not be stored; the list is attached to the error
            CatalogUnavailableError: If the catalog cannot be queried
        """
        count = count if count > 0 else DEFAULT_RECOMMENDATION_COUNT
        if not identifier or not identifier.strip():
            return []
        identifier = identifier.strip()

        source = await run_blocking(self.executor, self.lookup.resolve, identifier)
        if source is None:
            if self.config.external_fallback_enabled and self.fallback_provider is not None:
                return await self._legacy_recommendations(identifier, count)
            logger.info("No canonical book for '%s'; returning no recommendations", identifier)
            return []

        cached = await self._cached_recommendations(source, count)
        if cached:
            logger.info("Serving %d cached recommendations for book %s", len(cached), source.id)
            return cached

        logger.info("No cached recommendations for book %s; running discovery", source.id)
        return await self._compute_and_store(source, count)

    async def regenerate_similar_books(
        self,
        identifier: str,
        count: int = DEFAULT_RECOMMENDATION_COUNT,
    ) -> list[BookRecord]:
        """Recompute recommendations, ignoring any cached ids.

        Raises:
            BookNotFoundError: If no canonical book exists for ``identifier``
        """
        count = count if count > 0 else DEFAULT_RECOMMENDATION_COUNT
        if not identifier or not identifier.strip():
            raise BookNotFoundError(identifier or "")

        source = await run_blocking(self.executor, self.lookup.resolve, identifier.strip())
        if source is None:
            raise BookNotFoundError(identifier.strip())
        return await self._compute_and_store(source, count)

    def close(self) -> None:
        """Shut down the worker pool if this engine created it."""
        if self._owns_executor:
            self.executor.shutdown(wait=False)

    # ========================================================================
    # Cache path
    # ========================================================================

    async def _cached_recommendations(self, source: BookRecord, count: int) -> list[BookRecord]:
        ids = [i for i in source.cached_recommendation_ids if i]
        if not ids:
            return []

        # Shuffle so repeated requests spread the returned subset
        self.rng.shuffle(ids)
        books = await run_blocking(self.executor, self.fetcher.fetch_by_ids, ids)
        by_id = {book.id: book for book in books or [] if book is not None}

        results: list[BookRecord] = []
        seen: set[str] = set()
        for book_id in ids:
            book = by_id.get(book_id)
            if book is None or book.id == source.id or book.id in seen:
                continue
            seen.add(book.id)
            results.append(book)
            if len(results) == count:
                break

        logger.debug("Hydrated %d cached recommendations for %s", len(results), source.id)
        return results

    # ========================================================================
    # Discovery path
    # ========================================================================

    async def rank_candidates(self, source: BookRecord) -> list[ScoredBook]:
        """Run all strategies and return eligible candidates in ranked order."""
        strategy_results = await asyncio.gather(
            self._run_strategy("authors", self.strategies.find_by_authors, source),
            self._run_strategy("categories", self.strategies.find_by_categories, source),
            self._run_strategy("text", self.strategies.find_by_text, source),
        )

        merged: dict[str, ScoredBook] = {}
        for scored_books in strategy_results:
            for scored in scored_books:
                existing = merged.get(scored.book_id)
                merged[scored.book_id] = existing.merge_with(scored) if existing else scored

        eligible = [s for s in merged.values() if is_eligible(source, s.book)]
        return sorted(eligible, key=ranking_key)

    async def _run_strategy(
        self,
        name: str,
        strategy: Callable[[BookRecord], list[ScoredBook]],
        source: BookRecord,
    ) -> list[ScoredBook]:
        try:
            return await asyncio.wait_for(
                run_blocking(self.executor, strategy, source),
                timeout=self.config.similar_books_timeout,
            )
        except CatalogUnavailableError:
            raise
        except asyncio.TimeoutError:
            logger.warning(
                "Recommendation strategy %s timed out after %.1fs for %s",
                name,
                self.config.similar_books_timeout,
                source.id,
            )
            return []
        except Exception as e:
            logger.warning("Recommendation strategy %s failed for %s: %s", name, source.id, e)
            return []

    async def _compute_and_store(self, source: BookRecord, count: int) -> list[BookRecord]:
        ordered = await self.rank_candidates(source)
        if not ordered:
            logger.info("No recommendations generated for book %s", source.id)
            return []

        limited = ordered[:count]
        recommendations = [scored.book for scored in limited]

        if self.persistence is not None:
            try:
                await self._persist(source, ordered, limited)
            except Exception as e:
                logger.error("Failed to persist recommendations for %s: %s", source.id, e)
                raise RecommendationPersistenceError(source.id, recommendations, e) from e

        logger.info(
            "Ranked %d candidates for book %s; returning %d",
            len(ordered),
            source.id,
            len(recommendations),
        )
        return recommendations

    async def _persist(
        self,
        source: BookRecord,
        ordered: list[ScoredBook],
        limited: list[ScoredBook],
    ) -> None:
        records = [
            RecommendationRecord(
                source_book_id=source.id,
                recommended_book_id=scored.book_id,
                score=scored.score,
                reasons=scored.reason_names(),
            )
            for scored in limited
        ]
        all_ids = list(dict.fromkeys(scored.book_id for scored in ordered))

        await run_blocking(self.executor, self.persistence.persist_recommendations, source, records)
        await run_blocking(
            self.executor, self.persistence.update_cached_recommendation_ids, source.id, all_ids
        )

    # ========================================================================
    # Legacy path
    # ========================================================================

    async def _legacy_recommendations(self, identifier: str, count: int) -> list[BookRecord]:
        """Recommend for a book only an external provider knows about.

        The source is not in the catalog, so nothing is persisted.
        """
        provider = self.fallback_provider
        name = getattr(provider, "name", type(provider).__name__)
        try:
            found = await asyncio.wait_for(
                provider.search(identifier, "relevance", 0, 1),
                timeout=self.config.provider_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Provider %s timed out resolving '%s'", name, identifier)
            return []
        except CatalogUnavailableError:
            raise
        except Exception as e:
            logger.warning("Provider %s failed resolving '%s': %s", name, identifier, e)
            return []

        if not found:
            return []

        source = found[0]
        ordered = await self.rank_candidates(source)
        logger.info(
            "Ranked %d catalog candidates for external book '%s'", len(ordered), identifier
        )
        return [scored.book for scored in ordered[:count]]
