"""Paginated search over the catalog with external provider fallback.

The catalog is always queried first. Its hits are deduplicated into works,
hydrated, filtered and ordered before a page is cut. External providers are
only consulted when the catalog page is empty, short, or (on the first
page) lacks covers or descriptions. Provider candidates are merged into the
catalog results and handed to the persistence layer in the background.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from ..config import PROVIDER_WINDOW_CAP, Config, get_config
from ..db.schemas import BookRecord
from ..errors import CatalogUnavailableError
from ..interfaces import BookRecordFetcher, CandidatePersistence, CatalogSearch, SearchProvider
from ..workers import create_store_executor, run_blocking
from .cover import apply_cover_preferences, has_renderable_cover
from .dedupe import ResultDeduplicator
from .keys import content_fingerprint, dedupe_by_candidate_key, resolve_candidate_key
from .ordering import order_results
from .paging import SearchPageAssembler, Window, clamp, window
from .schemas import SearchPage, SearchRequest, SearchResult

logger = logging.getLogger(__name__)

TAG_NEW = "new-from-search"
TAG_REFRESH = "metadata-refresh"

SOURCE_FALLBACK = "EXTERNAL_FALLBACK"


@dataclass
class PageGaps:
    """Quality gaps found on the first page of results."""

    cover: bool = False
    metadata: bool = False

    @property
    def any(self) -> bool:
        return self.cover or self.metadata


@dataclass
class FallbackCandidates:
    """Provider candidates split by how they relate to the current results."""

    merged: list[BookRecord] = field(default_factory=list)
    net_new: list[BookRecord] = field(default_factory=list)
    refresh: list[BookRecord] = field(default_factory=list)


def has_complete_metadata(book: BookRecord) -> bool:
    return bool(book.description and book.description.strip()) and (book.page_count or 0) > 0


def detect_gaps(page: SearchPage, limit: int) -> PageGaps:
    """Check the first ``limit`` items for missing covers or metadata."""
    head = page.page_items[:limit]
    with_cover = sum(1 for book in head if has_renderable_cover(book))
    with_metadata = sum(1 for book in head if has_complete_metadata(book))
    return PageGaps(cover=with_cover < limit, metadata=with_metadata < limit)


def improves_metadata(candidate: BookRecord, existing: BookRecord) -> bool:
    """True when ``candidate`` fills in something ``existing`` lacks."""
    candidate_desc = (candidate.description or "").strip()
    existing_desc = (existing.description or "").strip()
    if len(candidate_desc) > len(existing_desc):
        return True
    if (candidate.page_count or 0) > 0 and not (existing.page_count or 0) > 0:
        return True
    if candidate.publisher and candidate.publisher.strip() and not (existing.publisher or "").strip():
        return True
    if candidate.language and candidate.language.strip() and not (existing.language or "").strip():
        return True
    if has_renderable_cover(candidate) and not has_renderable_cover(existing):
        return True
    return False


class SearchPaginationOrchestrator:
    """Catalog-first paginated search with bounded provider fallback."""

    def __init__(
        self,
        catalog: CatalogSearch,
        fetcher: BookRecordFetcher,
        deduplicator: ResultDeduplicator,
        persistence: Optional[CandidatePersistence] = None,
        primary_provider: Optional[SearchProvider] = None,
        secondary_provider: Optional[SearchProvider] = None,
        assembler: Optional[SearchPageAssembler] = None,
        config: Optional[Config] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """Initialize orchestrator.

        Args:
            catalog: Primary catalog search
            fetcher: Batch record hydration
            deduplicator: Two-pass work deduplication
            persistence: Where provider candidates are stored, if anywhere
            primary_provider: First external provider to consult
            secondary_provider: Provider consulted when the first leaves a shortfall
            assembler: Page assembler
            config: Paging bounds and timeouts
            executor: Worker pool for blocking store calls
        """
        self.catalog = catalog
        self.fetcher = fetcher
        self.deduplicator = deduplicator
        self.persistence = persistence
        self.primary_provider = primary_provider
        self.secondary_provider = secondary_provider
        self.assembler = assembler or SearchPageAssembler()
        self.config = config or get_config()
        self._owns_executor = executor is None
        self.executor = executor or create_store_executor(self.config)
        self._background: set[asyncio.Task] = set()

    # ========================================================================
    # Public API
    # ========================================================================

    async def search(self, request: SearchRequest) -> SearchPage:
        """Build one page of search results.

        Args:
            request: Normalized search request

        Returns:
            The assembled page

        Raises:
            CatalogUnavailableError: If the catalog cannot be queried
        """
        started = time.perf_counter()
        page_window = window(request.start_index, request.max_results, self.config)

        unique_results = await self._search_catalog(request, page_window)
        page = self._build_page(request, unique_results, page_window)

        if self._should_fallback(request, page, page_window):
            page = await self._fallback(request, page, page_window)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Paginated search '%s' start=%d size=%d fetched=%d hasMore=%s prefetched=%d (%.0f ms)",
            request.query,
            page_window.start_index,
            page_window.limit,
            page.total_unique,
            page.has_more,
            page.prefetched_count,
            elapsed_ms,
        )
        return page

    async def drain_background(self) -> list[Any]:
        """Wait for pending persistence tasks.

        Tasks stay registered until drained, so failures remain observable.

        Returns:
            Each task's result, or the exception it failed with
        """
        results: list[Any] = []
        while self._background:
            pending = list(self._background)
            results.extend(await asyncio.gather(*pending, return_exceptions=True))
            self._background.difference_update(pending)
        return results

    def close(self) -> None:
        """Shut down the worker pool if this orchestrator created it."""
        if self._owns_executor:
            self.executor.shutdown(wait=False)

    # ========================================================================
    # Catalog
    # ========================================================================

    async def _search_catalog(self, request: SearchRequest, page_window: Window) -> list[BookRecord]:
        raw = await run_blocking(
            self.executor, self.catalog.search, request.query, page_window.total_requested
        )
        raw = [r for r in (raw or []) if r is not None and r.book_id]
        if not raw:
            return []

        hydrated: dict[str, BookRecord] = {}
        if request.published_year is not None:
            hydrated = await self._hydrate([r.book_id for r in raw])
            raw = [
                r
                for r in raw
                if r.book_id in hydrated
                and hydrated[r.book_id].published_year == request.published_year
            ]
            if not raw:
                return []

        unique = await run_blocking(self.executor, self.deduplicator.deduplicate, raw)

        missing = [r.book_id for r in unique if r.book_id not in hydrated]
        if missing:
            hydrated.update(await self._hydrate(missing))

        records = []
        for result in unique:
            book = hydrated.get(result.book_id)
            if book is None:
                continue
            records.append(book.with_qualifiers(_search_qualifiers(result)))
        return records

    async def _hydrate(self, ids: Sequence[str]) -> dict[str, BookRecord]:
        books = await run_blocking(self.executor, self.fetcher.fetch_by_ids, list(ids))
        by_id: dict[str, BookRecord] = {}
        for book in books or []:
            if book is not None:
                by_id.setdefault(book.id, book)
        return by_id

    def _build_page(
        self,
        request: SearchRequest,
        books: Sequence[BookRecord],
        page_window: Window,
    ) -> SearchPage:
        filtered = apply_cover_preferences(
            list(books), request.cover_source, request.resolution_preference
        )
        ordered = order_results(filtered, request.order_by)
        return self.assembler.build_page(
            request.query,
            request.order_by,
            request.cover_source,
            request.resolution_preference,
            ordered,
            page_window,
        )

    # ========================================================================
    # Fallback
    # ========================================================================

    def _should_fallback(self, request: SearchRequest, page: SearchPage, page_window: Window) -> bool:
        if request.is_wildcard:
            return False
        if not self.config.external_fallback_enabled:
            return False
        if self.primary_provider is None and self.secondary_provider is None:
            return False

        if not page.page_items:
            return True
        if page_window.start_index > 0:
            return len(page.page_items) < page_window.limit

        gaps = detect_gaps(page, page_window.limit)
        if gaps.any:
            logger.debug(
                "Search '%s' first page has gaps (cover=%s metadata=%s)",
                request.query,
                gaps.cover,
                gaps.metadata,
            )
        return gaps.any

    def provider_window(self, page_window: Window) -> int:
        """Number of results to request from each provider."""
        desired = min(
            max(page_window.limit, 1),
            max(page_window.limit, page_window.total_requested),
        )
        return clamp(desired, 1, PROVIDER_WINDOW_CAP)

    async def _fallback(self, request: SearchRequest, page: SearchPage, page_window: Window) -> SearchPage:
        limit = self.provider_window(page_window)
        providers = [p for p in (self.primary_provider, self.secondary_provider) if p is not None]

        existing_keys = {
            key for key in (resolve_candidate_key(book) for book in page.unique_results) if key
        }

        first = await self._query_provider(providers[0], request, limit)
        candidates = list(first)

        if len(providers) > 1:
            known = existing_keys | {
                key for key in (resolve_candidate_key(book) for book in first) if key
            }
            if len(known) < page_window.total_requested:
                candidates.extend(await self._query_provider(providers[1], request, limit))

        split = self._split_candidates(page.unique_results, candidates, existing_keys)
        self._schedule_persist(split.net_new, TAG_NEW)
        self._schedule_persist(split.refresh, TAG_REFRESH)

        if not split.net_new:
            return page

        merged = dedupe_by_candidate_key(list(page.unique_results) + split.net_new)
        return self._build_page(request, merged, page_window)

    async def _query_provider(
        self,
        provider: SearchProvider,
        request: SearchRequest,
        limit: int,
    ) -> list[BookRecord]:
        name = getattr(provider, "name", type(provider).__name__)
        try:
            books = await asyncio.wait_for(
                provider.search(request.query, request.order_by, 0, limit),
                timeout=self.config.provider_timeout,
            )
        except CatalogUnavailableError:
            raise
        except asyncio.TimeoutError:
            logger.warning(
                "Provider %s timed out after %.1fs for '%s'",
                name,
                self.config.provider_timeout,
                request.query,
            )
            return []
        except Exception as e:
            logger.warning("Provider %s failed for '%s': %s", name, request.query, e)
            return []

        results = []
        for book in (books or [])[:limit]:
            if book is None or not book.id:
                continue
            results.append(book.with_qualifiers({"search.source": SOURCE_FALLBACK, "search.provider": name}))
        logger.debug("Provider %s returned %d candidates for '%s'", name, len(results), request.query)
        return results

    def _split_candidates(
        self,
        existing: Sequence[BookRecord],
        candidates: Sequence[BookRecord],
        existing_keys: set[str],
    ) -> FallbackCandidates:
        existing_by_fingerprint: dict[str, BookRecord] = {}
        for book in existing:
            fingerprint = content_fingerprint(book)
            if fingerprint:
                existing_by_fingerprint.setdefault(fingerprint, book)

        split = FallbackCandidates(merged=dedupe_by_candidate_key(candidates))
        for candidate in split.merged:
            fingerprint = content_fingerprint(candidate)
            match = existing_by_fingerprint.get(fingerprint) if fingerprint else None
            if match is not None and improves_metadata(candidate, match):
                split.refresh.append(candidate)
                continue

            key = resolve_candidate_key(candidate)
            if key is None or key not in existing_keys:
                split.net_new.append(candidate)
        return split

    # ========================================================================
    # Background persistence
    # ========================================================================

    def _schedule_persist(self, candidates: list[BookRecord], tag: str) -> None:
        if not candidates or self.persistence is None:
            return
        task = asyncio.create_task(self._persist(list(candidates), tag))
        self._background.add(task)
        task.add_done_callback(self._on_persist_done)

    async def _persist(self, candidates: list[BookRecord], tag: str) -> int:
        return await run_blocking(self.executor, self.persistence.persist, candidates, tag)

    def _on_persist_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Background persistence failed: %s", error)


def _search_qualifiers(result: SearchResult) -> dict[str, str]:
    qualifiers = {
        "search.matchType": result.match_type.value,
        "search.relevanceScore": f"{result.relevance_score:.4f}",
        "search.editionCount": str(result.edition_count),
    }
    if result.cluster_id:
        qualifiers["search.clusterId"] = result.cluster_id
    return qualifiers
