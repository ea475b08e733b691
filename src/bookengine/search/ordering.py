"""Deterministic ordering of search results.

Books with better covers always sort first; the requested ordering only
breaks ties between equally good covers. Insertion order (search rank)
and then title settle whatever is left.
"""

from datetime import date
from typing import Callable, Optional, Sequence

from ..db.schemas import BookRecord
from .cover import cover_rank


def _pixels(book: BookRecord) -> int:
    if book.cover_width and book.cover_height:
        return book.cover_width * book.cover_height
    return 0


def _order_specific_key(order_by: str) -> Optional[Callable[[BookRecord], tuple]]:
    if order_by == "newest":
        # Newest first, undated last
        return lambda b: (
            b.published_date is None,
            -(b.published_date or date.min).toordinal(),
        )
    if order_by == "title":
        return lambda b: ((b.title or "").lower(),)
    if order_by == "author":
        return lambda b: ((b.first_author or "").lower(),)
    if order_by == "rating":
        return lambda b: (-(b.average_rating or 0.0), -(b.ratings_count or 0))
    return None


def order_results(books: Sequence[BookRecord], order_by: str) -> list[BookRecord]:
    """Sort books by cover quality, then ``order_by``, then original position."""
    specific = _order_specific_key(order_by)
    positions: dict[str, int] = {}
    for index, book in enumerate(books):
        positions.setdefault(book.id, index)

    def sort_key(book: BookRecord) -> tuple:
        key = (
            -cover_rank(book),
            -_pixels(book),
            -(book.cover_height or 0),
            -(book.cover_width or 0),
            0 if book.in_catalog else 1,
        )
        if specific is not None:
            key += specific(book)
        return key + (positions.get(book.id, len(positions)), (book.title or "").lower())

    return sorted(books, key=sort_key)
