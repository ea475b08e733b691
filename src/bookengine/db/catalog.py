"""SQLite-backed catalog: search, hydration, cluster lookups, canonical lookup.

Supported query syntax (clauses may be joined with ``OR``):

- ``isbn:9780143127741``
- ``author:Jane Doe`` / ``inauthor:Jane Doe``
- ``subject:Fiction OR subject:History``
- ``intitle:Dune``
- anything else is free text over title, authors, categories and description
- ``*`` lists every book
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from ..errors import CatalogUnavailableError
from ..search.schemas import ClusterMapping, MatchType, SearchResult, TitleAuthorKey
from .matching import normalize_string, title_author_key
from .models import Book, WorkCluster, WorkClusterMember
from .schemas import BookRecord, sanitize_isbn
from .sqlite import Database, get_db

QUALIFIERS = ("isbn", "author", "inauthor", "subject", "intitle")

_OR_SPLIT = re.compile(r"\s+OR\s+")
_QUALIFIER_SPLIT = re.compile(r"\s+(?=(?:%s):)" % "|".join(QUALIFIERS), re.IGNORECASE)
_QUALIFIER_CLAUSE = re.compile(r"^(%s):\s*(.+)$" % "|".join(QUALIFIERS), re.IGNORECASE)
_TOKEN = re.compile(r"[a-z0-9]+")

# Relevance weights
ISBN_SCORE = 1.0
TITLE_SCORE = 0.8
AUTHOR_SCORE = 0.7
SUBJECT_SCORE = 0.5
EXACT_TITLE_BONUS = 1.0
WILDCARD_SCORE = 0.1

_MATCH_PRIORITY = [
    MatchType.ISBN,
    MatchType.TITLE,
    MatchType.AUTHOR,
    MatchType.SUBJECT,
    MatchType.FULLTEXT,
]


@dataclass
class ParsedQuery:
    """A catalog query split into qualifier clauses and free text."""

    isbns: list[str] = field(default_factory=list)
    authors: list[str] = field(default_factory=list)
    subjects: list[str] = field(default_factory=list)
    titles: list[str] = field(default_factory=list)
    terms: list[str] = field(default_factory=list)
    wildcard: bool = False

    @property
    def is_empty(self) -> bool:
        return not (
            self.wildcard or self.isbns or self.authors or self.subjects or self.titles or self.terms
        )


def parse_query(query: str) -> ParsedQuery:
    """Split a query into its qualifier clauses."""
    parsed = ParsedQuery()
    query = (query or "").strip()
    if query == "*":
        parsed.wildcard = True
        return parsed

    for alternative in _OR_SPLIT.split(query):
        for clause in _QUALIFIER_SPLIT.split(alternative.strip()):
            clause = clause.strip()
            if not clause:
                continue
            match = _QUALIFIER_CLAUSE.match(clause)
            if not match:
                parsed.terms.extend(_TOKEN.findall(clause.lower()))
                continue
            qualifier, value = match.group(1).lower(), match.group(2).strip().strip('"')
            if not value:
                continue
            if qualifier == "isbn":
                isbn = sanitize_isbn(value)
                if isbn:
                    parsed.isbns.append(isbn)
            elif qualifier in ("author", "inauthor"):
                parsed.authors.append(value)
            elif qualifier == "subject":
                parsed.subjects.append(value)
            else:
                parsed.titles.append(value)

    parsed.terms = list(dict.fromkeys(parsed.terms))
    return parsed


class SqlCatalog:
    """Catalog operations over the SQLite database."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize catalog.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    # ========================================================================
    # Search
    # ========================================================================

    def search(self, query: str, limit: int) -> list[SearchResult]:
        """Relevance-ranked search.

        Args:
            query: Query text, optionally with qualifiers
            limit: Maximum results

        Returns:
            Results ordered by score, then title, then id
        """
        if limit <= 0:
            return []
        parsed = parse_query(query)
        if parsed.is_empty:
            return []

        try:
            with self.db.get_session() as session:
                stmt = select(Book)
                conditions = self._conditions(parsed)
                if conditions:
                    stmt = stmt.where(or_(*conditions))
                books = session.execute(stmt).scalars().all()

                scored = []
                for book in books:
                    result = self._score(book, parsed)
                    if result is not None:
                        scored.append((result[0], (book.title or "").lower(), book.id, result[1]))
                scored.sort(key=lambda row: (-row[0], row[1], row[2]))
                scored = scored[:limit]

                memberships = self._memberships(session, [row[2] for row in scored])
                return [
                    SearchResult(
                        book_id=book_id,
                        relevance_score=score,
                        match_type=match_type,
                        edition_count=memberships.get(book_id, (None, 1))[1],
                        cluster_id=memberships.get(book_id, (None, 1))[0],
                    )
                    for score, _, book_id, match_type in scored
                ]
        except SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Catalog search failed: {e}") from e

    def _conditions(self, parsed: ParsedQuery) -> list:
        if parsed.wildcard:
            return []
        conditions = []
        for isbn in parsed.isbns:
            conditions.append(Book.isbn13 == isbn)
            conditions.append(Book.isbn10 == isbn)
        for author in parsed.authors:
            conditions.append(func.lower(Book.authors).contains(author.lower()))
        for subject in parsed.subjects:
            conditions.append(func.lower(Book.categories).contains(subject.lower()))
        for title in parsed.titles:
            conditions.append(func.lower(Book.title).contains(title.lower()))
        for term in parsed.terms:
            conditions.append(func.lower(Book.title).contains(term))
            conditions.append(func.lower(Book.authors).contains(term))
            conditions.append(func.lower(Book.categories).contains(term))
            conditions.append(func.lower(Book.description).contains(term))
        return conditions

    def _score(self, book: Book, parsed: ParsedQuery) -> Optional[tuple[float, MatchType]]:
        """Score one book against a query, or None if it doesn't match."""
        if parsed.wildcard:
            return WILDCARD_SCORE, MatchType.FULLTEXT

        score = 0.0
        matched: list[MatchType] = []
        title = normalize_string(book.title)
        authors = [normalize_string(a) for a in book.get_authors()]
        categories = [c.lower() for c in book.get_categories()]

        for isbn in parsed.isbns:
            if isbn in (book.isbn13, book.isbn10):
                score += ISBN_SCORE
                matched.append(MatchType.ISBN)

        for author in parsed.authors:
            wanted = normalize_string(author)
            if any(wanted and wanted in name for name in authors):
                score += AUTHOR_SCORE
                matched.append(MatchType.AUTHOR)

        for subject in parsed.subjects:
            wanted = subject.lower().strip()
            if any(wanted in category for category in categories):
                score += SUBJECT_SCORE
                matched.append(MatchType.SUBJECT)

        for wanted_title in parsed.titles:
            wanted = normalize_string(wanted_title)
            if wanted and wanted in title:
                score += TITLE_SCORE + (EXACT_TITLE_BONUS if wanted == title else 0.0)
                matched.append(MatchType.TITLE)

        if parsed.terms:
            term_score, term_type = self._score_terms(book, parsed.terms, title, authors, categories)
            if term_type is not None:
                score += term_score
                matched.append(term_type)

        if not matched:
            return None
        match_type = min(matched, key=_MATCH_PRIORITY.index)
        return round(score, 6), match_type

    def _score_terms(
        self,
        book: Book,
        terms: list[str],
        title: str,
        authors: list[str],
        categories: list[str],
    ) -> tuple[float, Optional[MatchType]]:
        title_tokens = set(_TOKEN.findall(title))
        author_tokens = set(_TOKEN.findall(" ".join(authors)))
        other_tokens = set(_TOKEN.findall(" ".join(categories) + " " + (book.description or "").lower()))

        title_hits = sum(1 for t in terms if t in title_tokens)
        author_hits = sum(1 for t in terms if t in author_tokens)
        other_hits = sum(1 for t in terms if t in other_tokens)
        if not (title_hits or author_hits or other_hits):
            return 0.0, None

        score = (0.6 * title_hits + 0.3 * author_hits + 0.1 * other_hits) / len(terms)
        if " ".join(terms) == " ".join(_TOKEN.findall(title)):
            score += EXACT_TITLE_BONUS

        if title_hits:
            return score, MatchType.TITLE
        if author_hits:
            return score, MatchType.AUTHOR
        return score, MatchType.FULLTEXT

    def _memberships(self, session, book_ids: Sequence[str]) -> dict[str, tuple[str, int]]:
        if not book_ids:
            return {}
        rows = session.execute(
            select(WorkClusterMember.book_id, WorkClusterMember.cluster_id, WorkCluster.member_count)
            .join(WorkCluster, WorkCluster.id == WorkClusterMember.cluster_id)
            .where(WorkClusterMember.book_id.in_(list(book_ids)))
        ).all()
        return {row.book_id: (row.cluster_id, max(row.member_count or 1, 1)) for row in rows}

    # ========================================================================
    # Hydration
    # ========================================================================

    def fetch_by_ids(self, ids: Sequence[str]) -> list[BookRecord]:
        """Fetch records for the given ids. Unknown ids are skipped."""
        ids = [i for i in dict.fromkeys(ids) if i]
        if not ids:
            return []
        try:
            with self.db.get_session() as session:
                books = session.execute(select(Book).where(Book.id.in_(ids))).scalars().all()
                return [book.to_record() for book in books]
        except SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Book lookup failed: {e}") from e

    # ========================================================================
    # Cluster Lookups
    # ========================================================================

    def fetch_cluster_mappings(self, ids: Sequence[str]) -> dict[str, ClusterMapping]:
        """Resolve cluster membership for each edition id.

        The canonical edition is the member flagged primary; failing that,
        the member with the highest confidence (unknown confidence last),
        ties broken by lowest book id.
        """
        ids = [i for i in dict.fromkeys(ids) if i]
        if not ids:
            return {}
        try:
            with self.db.get_session() as session:
                members = session.execute(
                    select(WorkClusterMember).where(WorkClusterMember.book_id.in_(ids))
                ).scalars().all()
                cluster_ids = {m.cluster_id for m in members}
                if not cluster_ids:
                    return {}

                all_members = session.execute(
                    select(WorkClusterMember).where(WorkClusterMember.cluster_id.in_(cluster_ids))
                ).scalars().all()
                clusters = {
                    c.id: c
                    for c in session.execute(
                        select(WorkCluster).where(WorkCluster.id.in_(cluster_ids))
                    ).scalars()
                }

                by_cluster: dict[str, list[WorkClusterMember]] = {}
                for member in all_members:
                    by_cluster.setdefault(member.cluster_id, []).append(member)

                mappings = {}
                for member in members:
                    cluster_members = by_cluster.get(member.cluster_id, [])
                    primary = next((m for m in cluster_members if m.is_primary), None)
                    fallback = min(
                        cluster_members,
                        key=lambda m: (m.confidence is None, -(m.confidence or 0.0), m.book_id),
                        default=None,
                    )
                    resolved = primary or fallback
                    cluster = clusters.get(member.cluster_id)
                    edition_count = cluster.member_count if cluster and cluster.member_count else 1
                    mappings[member.book_id] = ClusterMapping(
                        primary_id=resolved.book_id if resolved else member.book_id,
                        cluster_id=member.cluster_id,
                        edition_count=max(edition_count, 1),
                        has_explicit_primary=primary is not None,
                    )
                return mappings
        except SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Cluster lookup failed: {e}") from e

    def fetch_title_author_keys(self, ids: Sequence[str]) -> dict[str, TitleAuthorKey]:
        """Normalized ``title::authors`` keys for books that have both."""
        ids = [i for i in dict.fromkeys(ids) if i]
        if not ids:
            return {}
        try:
            with self.db.get_session() as session:
                books = session.execute(select(Book).where(Book.id.in_(ids))).scalars().all()
                keys = {}
                for book in books:
                    key = title_author_key(book.title, book.get_authors())
                    if key:
                        keys[book.id] = TitleAuthorKey(key)
                return keys
        except SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Title/author lookup failed: {e}") from e

    # ========================================================================
    # Canonical Lookup
    # ========================================================================

    def resolve(self, identifier: str) -> Optional[BookRecord]:
        """Resolve an id, slug or ISBN to a catalog book.

        Args:
            identifier: Book id, slug, ISBN or ``isbn:``-prefixed ISBN

        Returns:
            The book record, or None if nothing matches
        """
        if not identifier or not identifier.strip():
            return None
        identifier = identifier.strip()
        if identifier.lower().startswith("isbn:"):
            identifier = identifier[5:].strip()

        try:
            with self.db.get_session() as session:
                book = session.get(Book, identifier)
                if book is None:
                    book = session.execute(
                        select(Book).where(Book.slug == identifier)
                    ).scalars().first()
                if book is None:
                    isbn = sanitize_isbn(identifier)
                    if isbn and len(isbn) in (10, 13):
                        book = session.execute(
                            select(Book)
                            .where(or_(Book.isbn13 == isbn, Book.isbn10 == isbn))
                            .order_by(Book.id)
                        ).scalars().first()
                return book.to_record() if book else None
        except SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Canonical lookup failed: {e}") from e
