"""Multi-namespace dense retrieval with merge-by-best-score.

A caller may read the shared ``public`` namespace and their own private
namespace. Both are queried concurrently; a namespace whose query raises
contributes no matches instead of failing the request. Matches are merged by
chunk id (best score wins), sorted descending, and cut to ``top_k``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from marble.rag.vector_store import (
    PUBLIC_NAMESPACE,
    VectorMatch,
    VectorStore,
    private_namespace,
)

logger = logging.getLogger(__name__)


def readable_namespaces(user_id: str) -> list[str]:
    """Namespaces *user_id* may read: public first, then their own."""
    return [PUBLIC_NAMESPACE, private_namespace(user_id)]


def query_namespaces(
    store: VectorStore,
    namespaces: list[str],
    vector: list[float],
    top_k: int,
) -> list[list[VectorMatch]]:
    """Query every namespace concurrently; failures yield an empty list.

    Returns one result list per namespace, in *namespaces* order.
    """

    def _query(namespace: str) -> list[VectorMatch]:
        try:
            return store.query(namespace, vector, top_k)
        except Exception:
            logger.exception("Vector query failed for namespace %r", namespace)
            return []

    with ThreadPoolExecutor(max_workers=max(1, len(namespaces))) as pool:
        return list(pool.map(_query, namespaces))


def merge_matches(results: list[list[VectorMatch]], top_k: int) -> list[VectorMatch]:
    """Merge per-namespace results by chunk id, keep the best score, rank.

    A chunk found in several namespaces appears once, with its highest score.
    Ties keep first-seen order.
    """
    best: dict[str, VectorMatch] = {}
    for matches in results:
        for match in matches:
            prev = best.get(match.chunk_id)
            if prev is None or match.score > prev.score:
                best[match.chunk_id] = match

    ranked = sorted(best.values(), key=lambda m: m.score, reverse=True)
    return ranked[:top_k]


def retrieve(
    store: VectorStore,
    user_id: str,
    vector: list[float],
    top_k: int,
) -> list[VectorMatch]:
    """Return the *top_k* best matches across every namespace *user_id* may read."""
    namespaces = readable_namespaces(user_id)
    results = query_namespaces(store, namespaces, vector, top_k)
    merged = merge_matches(results, top_k)
    logger.info(
        "Retrieved %d matches from %s (top_k=%d)",
        len(merged),
        ", ".join(namespaces),
        top_k,
    )
    return merged
