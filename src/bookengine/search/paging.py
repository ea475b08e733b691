"""Pagination windows and page assembly.

Windows are absolute: ``start_index`` is an offset into the full ordered
result list, not a page number.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, TypeVar

from ..config import Config, get_config
from ..db.schemas import BookRecord
from .schemas import CoverSource, ResolutionPreference, SearchPage

T = TypeVar("T")


@dataclass(frozen=True)
class Window:
    """Requested slice plus the total number of results to fetch for it."""

    start_index: int
    limit: int
    total_requested: int

    @property
    def end_index(self) -> int:
        return self.start_index + self.limit


def clamp(value: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(value, maximum))


def safe_limit(requested: int, default: int, minimum: int, maximum: int) -> int:
    """Clamp a requested page size, using ``default`` when not positive."""
    base = requested if requested and requested > 0 else default
    return clamp(base, minimum, maximum)


def window(
    requested_start: int,
    requested_size: int,
    config: Optional[Config] = None,
    total_cap: int = 0,
) -> Window:
    """Compute the pagination window for a request.

    The total fetched is the larger of ``start + limit`` and
    ``start + limit * prefetch_multiplier`` so the next page is usually
    already deduplicated when the caller asks for it.

    Args:
        requested_start: Zero-based absolute offset (negatives become 0)
        requested_size: Requested page size (non-positive means default)
        config: Paging bounds, defaults to the global config
        total_cap: Upper bound on ``total_requested`` when positive

    Returns:
        The clamped window
    """
    config = config or get_config()
    start = max(0, requested_start or 0)
    limit = safe_limit(
        requested_size,
        config.default_search_limit,
        config.min_search_limit,
        config.max_search_limit,
    )

    multiplier = max(1, config.prefetch_multiplier)
    target = max(start + limit, start + limit * multiplier)
    if total_cap > 0:
        target = min(total_cap, target)

    return Window(start_index=start, limit=limit, total_requested=max(0, target))


def slice_items(items: Sequence[T], start_index: int, limit: int) -> list[T]:
    """Return ``items[start:start+limit]`` with bounds checking."""
    if not items or limit <= 0:
        return []
    start = min(max(0, start_index), len(items))
    end = min(start + limit, len(items))
    return list(items[start:end])


def has_more(total: int, start_index: int, page_size: int) -> bool:
    if page_size <= 0 or total <= 0:
        return False
    return total > max(0, start_index) + page_size


class SearchPageAssembler:
    """Turns an ordered, deduplicated result list into a ``SearchPage``."""

    def build_page(
        self,
        query: str,
        order_by: str,
        cover_source: CoverSource,
        resolution_preference: ResolutionPreference,
        unique_results: Sequence[BookRecord],
        page_window: Window,
    ) -> SearchPage:
        """Slice ``unique_results`` to the window and compute paging metadata."""
        unique = list(unique_results)
        page_items = slice_items(unique, page_window.start_index, page_window.limit)
        more = has_more(len(unique), page_window.start_index, page_window.limit)

        return SearchPage(
            query=query,
            start_index=page_window.start_index,
            max_results=page_window.limit,
            total_requested=page_window.total_requested,
            total_unique=len(unique),
            page_items=page_items,
            unique_results=unique,
            has_more=more,
            next_start_index=page_window.end_index if more else page_window.start_index,
            prefetched_count=len(unique) - len(page_items),
            order_by=order_by,
            cover_source=cover_source,
            resolution_preference=resolution_preference,
        )
