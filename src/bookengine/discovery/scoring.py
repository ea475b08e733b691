"""Scoring rules for content-based recommendations.

Each discovery strategy tags its hits with a reason and a score. When the
same book is found by several strategies the scores add up, so a book by
the same author in the same category outranks one that only shares keywords.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

from ..db.schemas import BookRecord

AUTHOR_MATCH_SCORE = 4.0
BASE_CATEGORY_SCORE = 0.5  # When either side has no categories
CATEGORY_SCORE_BASE = 1.0
CATEGORY_SCORE_RANGE = 2.0
TEXT_MATCH_SCORE_MULTIPLIER = 2.0
MAX_MAIN_CATEGORIES = 3
MAX_EXTRACTED_KEYWORDS = 10

STOP_WORDS = frozenset({
    "the", "and", "for", "with", "are", "was", "from", "that", "this", "but", "not",
    "you", "your", "get", "will", "all", "any", "uses", "using", "learn", "what",
    "which", "its", "into", "then", "also",
})

_CATEGORY_SEPARATOR = re.compile(r"\s*/\s*")
_TOKEN_SEPARATOR = re.compile(r"[^a-z0-9]+")


class Reason(str, Enum):
    """Why a book was recommended."""

    AUTHOR = "AUTHOR"
    CATEGORY = "CATEGORY"
    TEXT = "TEXT"


@dataclass(frozen=True)
class ScoredBook:
    """A candidate book with its accumulated recommendation evidence."""

    book: BookRecord
    score: float
    reasons: frozenset[Reason] = field(default_factory=frozenset)

    @classmethod
    def of(cls, book: BookRecord, score: float, reason: Reason) -> "ScoredBook":
        return cls(book=book, score=score, reasons=frozenset({reason}))

    @property
    def book_id(self) -> str:
        return self.book.id

    def merge_with(self, other: "ScoredBook") -> "ScoredBook":
        """Combine evidence for the same book: scores add, reasons union."""
        return ScoredBook(
            book=self.book,
            score=self.score + other.score,
            reasons=self.reasons | other.reasons,
        )

    def reason_names(self) -> list[str]:
        return sorted(reason.value for reason in self.reasons)


def normalize_categories(categories: list[str]) -> set[str]:
    """Split compound categories on ``/`` and lower-case every segment."""
    normalized = set()
    for category in categories:
        if not category:
            continue
        for part in _CATEGORY_SEPARATOR.split(category):
            part = part.strip()
            if part:
                normalized.add(part.lower())
    return normalized


class RecommendationScoringStrategy:
    """Pure scoring functions used by the discovery strategies."""

    def author_match_score(self) -> float:
        return AUTHOR_MATCH_SCORE

    def category_overlap_score(self, source: BookRecord, candidate: BookRecord) -> float:
        """Score category overlap between two books.

        Returns ``BASE_CATEGORY_SCORE`` when either book has no categories,
        otherwise a value in ``[1.0, 3.0]`` proportional to the share of the
        smaller category set that the two books have in common.
        """
        source_set = normalize_categories(source.categories)
        candidate_set = normalize_categories(candidate.categories)
        if not source_set or not candidate_set:
            return BASE_CATEGORY_SCORE

        intersection = source_set & candidate_set

        ratio = len(intersection) / max(1, min(len(source_set), len(candidate_set)))
        return CATEGORY_SCORE_BASE + ratio * CATEGORY_SCORE_RANGE

    def text_match_score(self, match_count: int) -> float:
        return TEXT_MATCH_SCORE_MULTIPLIER * match_count

    def extract_main_categories(self, book: BookRecord) -> list[str]:
        """First segment of each category, deduplicated, at most three."""
        main = []
        for category in book.categories:
            if not category:
                continue
            head = _CATEGORY_SEPARATOR.split(category)[0]
            if head and head not in main:
                main.append(head)
            if len(main) >= MAX_MAIN_CATEGORIES:
                break
        return main

    def extract_keywords(self, book: BookRecord) -> list[str]:
        """Distinct significant words from the title and description.

        Tokens are lower-cased alphanumeric runs longer than two characters
        that are not stop words. At most ten are returned, in order of
        first appearance.
        """
        title = book.title or ""
        description = book.description or ""
        if not title.strip() and not description.strip():
            return []

        text = f"{title} {description}".lower()
        keywords: list[str] = []
        for token in _TOKEN_SEPARATOR.split(text):
            if len(token) > 2 and token not in STOP_WORDS and token not in keywords:
                keywords.append(token)
                if len(keywords) >= MAX_EXTRACTED_KEYWORDS:
                    break
        return keywords

    def count_keyword_matches(self, book: BookRecord, keywords: list[str]) -> int:
        """Count keywords literally contained in a book's title and description."""
        text = f"{book.title or ''} {book.description or ''}".lower()
        return sum(1 for keyword in keywords if keyword in text)
