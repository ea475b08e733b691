"""Query string normalization helpers."""

import re
from typing import Optional

WILDCARD = "*"

SUPPORTED_ORDER_BY = ("relevance", "newest", "title", "author", "rating")
DEFAULT_ORDER_BY = "newest"

_QUALIFIER_PATTERN = re.compile(r"\b(?:intitle|inauthor|isbn):", re.IGNORECASE)


def normalize_query(query: Optional[str]) -> str:
    """Trim the query, falling back to the wildcard when blank."""
    if query is None:
        return WILDCARD
    trimmed = query.strip()
    return trimmed if trimmed else WILDCARD


def is_wildcard(query: Optional[str]) -> bool:
    return query == WILDCARD


def canonicalize(query: Optional[str]) -> Optional[str]:
    """Case-insensitive form of a query for use as a map key."""
    if query is None:
        return None
    return query.lower().strip()


def normalize_order_by(order_by: Optional[str]) -> str:
    """Map an ordering hint onto a supported value (default ``newest``)."""
    if not order_by or not order_by.strip():
        return DEFAULT_ORDER_BY
    candidate = order_by.strip().lower()
    return candidate if candidate in SUPPORTED_ORDER_BY else DEFAULT_ORDER_BY


def normalize_external_query(query: str) -> str:
    """Strip ``intitle:``/``inauthor:``/``isbn:`` qualifiers for providers that don't support them.

    Example:
        >>> normalize_external_query("isbn:978-0143127741")
        '978-0143127741'
    """
    stripped = _QUALIFIER_PATTERN.sub(" ", query)
    return " ".join(stripped.split())
