"""Collapse catalog search hits so each work appears once.

Two passes:
1. Cluster collapse: editions of the same work cluster fold into the
   cluster's canonical edition. Edition counts take the max, since every
   edition reports the size of the same cluster.
2. Title/author collapse: survivors sharing a normalized ``title::authors``
   key fold together. Edition counts are summed, since these are distinct
   clusters now known to be the same work.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Optional

from ..interfaces import ClusterLookup
from .schemas import ClusterMapping, SearchResult, TitleAuthorKey

logger = logging.getLogger(__name__)


class ResultDeduplicator:
    """Two-pass deduplication of ranked search results."""

    def __init__(self, lookup: ClusterLookup):
        """Initialize deduplicator.

        Args:
            lookup: Batch cluster and title/author lookups
        """
        self.lookup = lookup

    def deduplicate(self, raw_results: Sequence[SearchResult]) -> list[SearchResult]:
        """Collapse raw results into one entry per work, keeping rank order.

        Args:
            raw_results: Search hits in relevance order

        Returns:
            Deduplicated hits, ordered by first appearance of each work
        """
        if not raw_results:
            return []

        edition_ids = list(dict.fromkeys(r.book_id for r in raw_results if r.book_id))
        if not edition_ids:
            return []

        mappings = self.lookup.fetch_cluster_mappings(edition_ids) or {}
        by_cluster = self._dedupe_by_cluster(raw_results, mappings)

        survivor_ids = list(by_cluster.keys())
        keys = self.lookup.fetch_title_author_keys(survivor_ids) or {}
        return self._dedupe_by_title_author(by_cluster, keys)

    # ========================================================================
    # Pass 1: clusters
    # ========================================================================

    def _dedupe_by_cluster(
        self,
        raw_results: Sequence[SearchResult],
        mappings: Mapping[str, ClusterMapping],
    ) -> dict[str, SearchResult]:
        by_cluster: dict[str, SearchResult] = {}
        cluster_canonical: dict[str, str] = {}

        for result in raw_results:
            edition_id = result.book_id
            if not edition_id:
                continue

            mapping = mappings.get(edition_id)
            # A carried cluster id wins over the lookup so re-runs keep it
            cluster_id = result.cluster_id or (mapping.cluster_id if mapping else None)
            canonical_id = self._resolve_canonical_id(
                edition_id, mapping, cluster_id, cluster_canonical
            )
            edition_count = max(
                mapping.edition_count if mapping else 1,
                result.edition_count,
                1,
            )

            existing = by_cluster.get(canonical_id)
            if existing is None:
                by_cluster[canonical_id] = SearchResult(
                    book_id=canonical_id,
                    relevance_score=result.relevance_score,
                    match_type=result.match_type,
                    edition_count=edition_count,
                    cluster_id=cluster_id,
                )
            else:
                by_cluster[canonical_id] = _merge_cluster(existing, result, edition_count, cluster_id)

        return by_cluster

    def _resolve_canonical_id(
        self,
        edition_id: str,
        mapping: Optional[ClusterMapping],
        cluster_id: Optional[str],
        cluster_canonical: dict[str, str],
    ) -> str:
        canonical_id = None
        if mapping is not None and mapping.primary_id:
            canonical_id = mapping.primary_id
            if cluster_id:
                cluster_canonical.setdefault(cluster_id, canonical_id)
                if not mapping.has_explicit_primary and mapping.edition_count > 1:
                    logger.debug(
                        "Cluster %s lacks explicit primary edition; using %s as canonical",
                        cluster_id,
                        canonical_id,
                    )
        if canonical_id is None and cluster_id:
            canonical_id = cluster_canonical.setdefault(cluster_id, edition_id)
        return canonical_id or edition_id

    # ========================================================================
    # Pass 2: title + author
    # ========================================================================

    def _dedupe_by_title_author(
        self,
        by_cluster: Mapping[str, SearchResult],
        keys: Mapping[str, TitleAuthorKey],
    ) -> list[SearchResult]:
        by_key: dict[str, SearchResult] = {}

        for result in by_cluster.values():
            key = keys.get(result.book_id)
            if key is None or key.is_empty:
                # Keyless entries are tracked by id so they never collide
                by_key[f"id:{result.book_id}"] = result
                continue

            slot = f"key:{key.normalized_key}"
            existing = by_key.get(slot)
            if existing is None:
                by_key[slot] = result
                continue

            existing_wins = existing.relevance_score >= result.relevance_score
            winner = existing if existing_wins else result
            by_key[slot] = SearchResult(
                book_id=winner.book_id,
                relevance_score=winner.relevance_score,
                match_type=winner.match_type,
                edition_count=existing.edition_count + result.edition_count,
                cluster_id=existing.cluster_id or result.cluster_id,
            )

        return list(by_key.values())


def _merge_cluster(
    existing: SearchResult,
    incoming: SearchResult,
    edition_count: int,
    cluster_id: Optional[str],
) -> SearchResult:
    existing_wins = existing.relevance_score >= incoming.relevance_score
    return SearchResult(
        book_id=existing.book_id,
        relevance_score=max(existing.relevance_score, incoming.relevance_score),
        match_type=existing.match_type if existing_wins else incoming.match_type,
        edition_count=max(existing.edition_count, edition_count),
        cluster_id=existing.cluster_id or cluster_id,
    )
