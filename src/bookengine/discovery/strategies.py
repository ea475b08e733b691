"""Candidate discovery strategies for recommendations.

Three independent searches against the catalog, each bounded to
``MAX_SEARCH_RESULTS`` hits:

- by author: ``author:<name>`` for every author of the source book
- by category: ``subject:A OR subject:B`` over its main categories
- by text: its keywords, re-scored by literal containment in each hit
"""

import logging
from typing import Optional

from ..db.schemas import BookRecord
from ..interfaces import BookRecordFetcher, CatalogSearch
from .scoring import Reason, RecommendationScoringStrategy, ScoredBook

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 40


class RecommendationStrategyChain:
    """Runs the author, category and text discovery searches."""

    def __init__(
        self,
        catalog: CatalogSearch,
        fetcher: BookRecordFetcher,
        scoring: Optional[RecommendationScoringStrategy] = None,
    ):
        """Initialize strategy chain.

        Args:
            catalog: Catalog search used for every strategy
            fetcher: Batch record hydration for search hits
            scoring: Scoring rules
        """
        self.catalog = catalog
        self.fetcher = fetcher
        self.scoring = scoring or RecommendationScoringStrategy()

    def find_by_authors(self, source: BookRecord) -> list[ScoredBook]:
        """Books by any of the source book's authors."""
        scored = []
        for author in source.authors:
            if not author or not author.strip():
                continue
            for book in self.search_books(f"author:{author.strip()}", MAX_SEARCH_RESULTS):
                scored.append(ScoredBook.of(book, self.scoring.author_match_score(), Reason.AUTHOR))
        return scored

    def find_by_categories(self, source: BookRecord) -> list[ScoredBook]:
        """Books sharing the source book's main categories."""
        main_categories = self.scoring.extract_main_categories(source)
        if not main_categories:
            return []

        query = "subject:" + " OR subject:".join(main_categories)
        return [
            ScoredBook.of(book, self.scoring.category_overlap_score(source, book), Reason.CATEGORY)
            for book in self.search_books(query, MAX_SEARCH_RESULTS)
        ]

    def find_by_text(self, source: BookRecord) -> list[ScoredBook]:
        """Books whose title or description contain the source book's keywords."""
        keywords = self.scoring.extract_keywords(source)
        if not keywords:
            return []

        scored = []
        for book in self.search_books(" ".join(keywords), MAX_SEARCH_RESULTS):
            matches = self.scoring.count_keyword_matches(book, keywords)
            if matches > 0:
                scored.append(ScoredBook.of(book, self.scoring.text_match_score(matches), Reason.TEXT))
        return scored

    def search_books(self, query: str, limit: int) -> list[BookRecord]:
        """Search the catalog and hydrate hits, keeping search order.

        Args:
            query: Catalog query
            limit: Maximum books to return

        Returns:
            Hydrated books in search order, then any extras the fetcher returned
        """
        if not query or not query.strip():
            return []

        limit = max(limit, 1)
        results = self.catalog.search(query, limit) or []
        ordered_ids = list(dict.fromkeys(r.book_id for r in results if r.book_id))[:limit]
        if not ordered_ids:
            return []

        books = self.fetcher.fetch_by_ids(ordered_ids) or []
        logger.debug("Query '%s' matched %d catalog books", query, len(books))
        return order_by_ids(ordered_ids, books, limit)


def order_by_ids(ordered_ids: list[str], books: list[BookRecord], limit: int) -> list[BookRecord]:
    """Re-apply search order to an unordered batch of books."""
    by_id: dict[str, BookRecord] = {}
    for book in books:
        if book is not None and book.id:
            by_id.setdefault(book.id, book)

    ordered = []
    for book_id in ordered_ids:
        book = by_id.pop(book_id, None)
        if book is not None:
            ordered.append(book)
            if len(ordered) == limit:
                return ordered

    for book in by_id.values():
        if len(ordered) == limit:
            break
        ordered.append(book)
    return ordered
