"""Cover quality ranking and cover preference filters.

Tiers returned by ``rank_cover`` (higher is better):

- 5: stored copy (S3/CDN) that is high resolution
- 4: high resolution
- 3: stored copy, or large enough for result cards
- 2: any other colour cover
- 1: grayscale cover
- 0: no renderable cover
"""

from typing import Optional

from ..db.schemas import BookRecord
from .schemas import CoverSource, ResolutionPreference

# Dimension thresholds (pixels)
HIGH_RES_PIXEL_THRESHOLD = 320_000
MIN_ACCEPTABLE_NON_GOOGLE = 200
MIN_ACCEPTABLE_CACHED = 150
MIN_SEARCH_RESULT_WIDTH = 180
MIN_SEARCH_RESULT_HEIGHT = 280

# Book covers are portrait: height / width
MIN_ASPECT_RATIO = 1.2
MAX_ASPECT_RATIO = 2.0

PLACEHOLDER_MARKER = "placeholder-book-cover.svg"
_NULL_EQUIVALENTS = {"null", "none", "undefined", "n/a"}
_STORAGE_HOST_MARKERS = ("s3.amazonaws.com", ".digitaloceanspaces.com")


def is_renderable(url: Optional[str]) -> bool:
    """True when the URL points at something other than a placeholder."""
    if not url or not url.strip():
        return False
    lowered = url.strip().lower()
    if lowered in _NULL_EQUIVALENTS:
        return False
    return PLACEHOLDER_MARKER not in lowered


def is_high_resolution(width: Optional[int], height: Optional[int]) -> bool:
    if width is None or height is None:
        return False
    return width * height >= HIGH_RES_PIXEL_THRESHOLD


def meets_threshold(width: Optional[int], height: Optional[int], minimum: int) -> bool:
    if width is None or height is None:
        return False
    return width >= minimum and height >= minimum


def meets_display_threshold(width: Optional[int], height: Optional[int]) -> bool:
    if width is None or height is None:
        return False
    return width >= MIN_SEARCH_RESULT_WIDTH and height >= MIN_SEARCH_RESULT_HEIGHT


def has_bad_aspect_ratio(width: Optional[int], height: Optional[int]) -> bool:
    """Unknown dimensions are treated as acceptable."""
    if not width or not height or width <= 0 or height <= 0:
        return False
    ratio = height / width
    return not (MIN_ASPECT_RATIO <= ratio <= MAX_ASPECT_RATIO)


def _is_stored_copy(url: str) -> bool:
    lowered = url.lower()
    if not (lowered.startswith("http://") or lowered.startswith("https://")):
        return True
    return any(marker in lowered for marker in _STORAGE_HOST_MARKERS)


def rank_cover(
    s3_key: Optional[str],
    external_url: Optional[str],
    width: Optional[int] = None,
    height: Optional[int] = None,
    high_resolution: bool = False,
    grayscale: bool = False,
) -> int:
    """Score a cover from 0 (none) to 5 (stored, high resolution).

    Args:
        s3_key: Key of a stored copy, preferred when present
        external_url: Provider-hosted cover URL
        width: Image width in pixels, if known
        height: Image height in pixels, if known
        high_resolution: Whether the cover is flagged as high resolution
        grayscale: Whether the cover is black and white

    Returns:
        Quality tier between 0 and 5 inclusive
    """
    if is_renderable(s3_key):
        url = s3_key
    elif is_renderable(external_url):
        url = external_url
    else:
        return 0

    if has_bad_aspect_ratio(width, height):
        return 0
    if grayscale:
        return 1

    stored = _is_stored_copy(url)
    high_res = high_resolution or is_high_resolution(width, height)

    if stored and high_res:
        return 5
    if high_res:
        return 4
    if stored or meets_display_threshold(width, height):
        return 3
    return 2


def cover_rank(book: BookRecord) -> int:
    """Cover quality tier for a book record."""
    return rank_cover(
        book.cover_s3_key,
        book.cover_url,
        book.cover_width,
        book.cover_height,
        book.cover_high_resolution,
        book.cover_grayscale,
    )


def has_renderable_cover(book: BookRecord) -> bool:
    return cover_rank(book) > 0


def detect_cover_source(book: BookRecord) -> CoverSource:
    """Work out which service a book's cover came from."""
    if is_renderable(book.cover_s3_key):
        return CoverSource.S3
    url = book.cover_url
    if not url or not url.strip():
        return CoverSource.UNDEFINED
    lowered = url.lower()
    if "googleapis.com/books" in lowered or "books.google.com" in lowered:
        return CoverSource.GOOGLE_BOOKS
    if "openlibrary.org" in lowered:
        return CoverSource.OPENLIBRARY
    if any(marker in lowered for marker in _STORAGE_HOST_MARKERS):
        return CoverSource.S3
    return CoverSource.UNDEFINED


def matches_source_preference(book: BookRecord, preference: CoverSource) -> bool:
    if preference == CoverSource.ANY:
        return True
    return detect_cover_source(book) == preference


def matches_resolution_preference(book: BookRecord, preference: ResolutionPreference) -> bool:
    if preference in (ResolutionPreference.ANY, ResolutionPreference.HIGH_FIRST):
        return True

    width, height = book.cover_width, book.cover_height
    high_res = book.cover_high_resolution or is_high_resolution(width, height)

    if preference in (ResolutionPreference.HIGH_ONLY, ResolutionPreference.ORIGINAL):
        return high_res
    if preference == ResolutionPreference.LARGE:
        return meets_threshold(width, height, MIN_ACCEPTABLE_NON_GOOGLE)
    if preference == ResolutionPreference.MEDIUM:
        return meets_threshold(width, height, MIN_ACCEPTABLE_CACHED)
    if preference == ResolutionPreference.SMALL:
        return (
            width is not None
            and height is not None
            and width < MIN_ACCEPTABLE_CACHED
            and height < MIN_ACCEPTABLE_CACHED
        )
    # UNKNOWN
    return False


def apply_cover_preferences(
    books: list[BookRecord],
    cover_source: CoverSource,
    resolution_preference: ResolutionPreference,
) -> list[BookRecord]:
    """Filter books by cover source and resolution preference."""
    return [
        book
        for book in books
        if matches_source_preference(book, cover_source)
        and matches_resolution_preference(book, resolution_preference)
    ]
