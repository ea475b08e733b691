"""Title and author normalization plus fuzzy matching of book records.

Used by the catalog to build title/author dedup keys and by persistence
to decide whether an incoming candidate is a book we already store.
"""

from typing import Optional, Sequence

from thefuzz import fuzz

# Fuzzy matching thresholds
TITLE_MATCH_THRESHOLD = 90  # Minimum score for title match
AUTHOR_MATCH_THRESHOLD = 85  # Minimum score for author match
COMBINED_MATCH_THRESHOLD = 88  # Minimum combined score


def normalize_string(s: Optional[str]) -> str:
    """Normalize string for comparison."""
    if not s:
        return ""
    # Lowercase, strip whitespace, remove common prefixes
    s = s.lower().strip()
    # Remove "the " prefix for better matching
    if s.startswith("the "):
        s = s[4:]
    # Remove punctuation variations
    for char in ".,;:!?'\"()-&/[]":
        s = s.replace(char, " ")
    # Collapse whitespace
    return " ".join(s.split())


def normalize_authors(authors: Sequence[str]) -> str:
    """Normalized, sorted, comma-joined author list."""
    names = sorted({normalize_string(a) for a in authors if a and normalize_string(a)})
    return ",".join(names)


def title_author_key(title: Optional[str], authors: Sequence[str]) -> Optional[str]:
    """``title::authors`` key, or None when either side is missing."""
    normalized_title = normalize_string(title)
    normalized_authors = normalize_authors(authors)
    if not normalized_title or not normalized_authors:
        return None
    return f"{normalized_title}::{normalized_authors}"


def fuzzy_match_score(
    title1: Optional[str],
    author1: Optional[str],
    title2: Optional[str],
    author2: Optional[str],
) -> Optional[float]:
    """Check if two books match by fuzzy title + author comparison.

    Returns:
        Confidence between 0 and 1 when the books match, otherwise None
    """
    t1, t2 = normalize_string(title1), normalize_string(title2)
    a1, a2 = normalize_string(author1), normalize_string(author2)

    if not t1 or not t2 or not a1 or not a2:
        return None

    # Token sort handles titles with different word order
    title_score = max(fuzz.ratio(t1, t2), fuzz.token_sort_ratio(t1, t2))
    author_score = max(fuzz.ratio(a1, a2), fuzz.token_sort_ratio(a1, a2))

    if title_score >= TITLE_MATCH_THRESHOLD and author_score >= AUTHOR_MATCH_THRESHOLD:
        combined_score = (title_score + author_score) / 2
        if combined_score >= COMBINED_MATCH_THRESHOLD:
            return combined_score / 100.0

    return None
