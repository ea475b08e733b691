"""Candidate keys used to merge search results from different sources.

A key is derived from the strongest identifier a record carries:

1. ISBN-13
2. ISBN-10
3. Normalized title (lower-cased, alphanumerics only)

Keys are namespaced so an ISBN can never collide with a numeric title.
"""

import re
from collections.abc import Iterable
from typing import Optional

from ..db.schemas import BookRecord, sanitize_isbn

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]")


def normalize_title(title: Optional[str]) -> Optional[str]:
    """Lower-case a title and strip everything that isn't a letter or digit."""
    if not title:
        return None
    normalized = _NON_ALPHANUMERIC.sub("", title.lower())
    return normalized or None


def resolve_candidate_key(book: Optional[BookRecord]) -> Optional[str]:
    """Return the merge key for a book, or None if it carries no usable signal."""
    if book is None:
        return None

    isbn13 = sanitize_isbn(book.isbn13)
    if isbn13:
        return f"isbn13:{isbn13}"

    isbn10 = sanitize_isbn(book.isbn10)
    if isbn10:
        return f"isbn10:{isbn10}"

    title = normalize_title(book.title)
    if title:
        return f"title:{title}"

    return None


def content_fingerprint(book: BookRecord) -> Optional[str]:
    """Normalized title plus first author, used to spot metadata refreshes."""
    title = normalize_title(book.title)
    if not title:
        return None
    author = normalize_title(book.first_author) or ""
    return f"{title}::{author}"


def dedupe_by_candidate_key(books: Iterable[BookRecord]) -> list[BookRecord]:
    """Drop later records whose key was already seen.

    Keyless records are kept and tracked by their id so they remain unique.
    """
    seen: set[str] = set()
    unique = []
    for book in books:
        if book is None:
            continue
        key = resolve_candidate_key(book) or f"id:{book.id}"
        if key in seen:
            continue
        seen.add(key)
        unique.append(book)
    return unique


class CandidateKeyResolver:
    """Object form of ``resolve_candidate_key`` for injection into services."""

    def resolve(self, book: Optional[BookRecord]) -> Optional[str]:
        return resolve_candidate_key(book)

    def fingerprint(self, book: BookRecord) -> Optional[str]:
        return content_fingerprint(book)
