"""Keyword, semantic and hybrid search over the corpus."""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from sermonfinder.embedding.encoder import EmbeddingModel
from sermonfinder.index.storage import CorpusStore
from sermonfinder.models import Document, FullTextHit, HybridResult, VectorHit

LOGGER = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 1000
MIN_LIMIT = 1
MAX_LIMIT = 100

BOTH_BOOST = 0.5
SEMANTIC_WEIGHT = 0.5


def hybrid_search(
    fts_results: Sequence[FullTextHit],
    vector_results: Sequence[VectorHit],
    limit: int = 10,
) -> List[HybridResult]:
    """Fuse full-text and vector results into one ranked list.

    Full-text hits score linearly from 1.0 (best) down towards 0.5 by rank and
    gain +0.5 when the vector search also found the document. Vector-only hits
    score ``(1 - distance) * 0.5``. Ties keep insertion order: full-text hits
    in their rank order, then vector-only hits in distance order.
    """
    vector_ids = {hit.document.id for hit in vector_results}
    merged: Dict[int, HybridResult] = {}
    total = max(len(fts_results), 1)

    for i, hit in enumerate(fts_results):
        if hit.document.id in merged:
            continue
        score = 1 - (i / total) * 0.5
        found_by_both = hit.document.id in vector_ids
        merged[hit.document.id] = HybridResult(
            document=hit.document,
            score=score + BOTH_BOOST if found_by_both else score,
            match_type="both" if found_by_both else "exact",
            snippet=hit.snippet,
        )

    for hit in vector_results:
        if hit.document.id in merged:
            continue
        similarity = 1 - hit.distance
        merged[hit.document.id] = HybridResult(
            document=hit.document,
            score=similarity * SEMANTIC_WEIGHT,
            match_type="semantic",
        )

    # sorted() is stable, so equal scores keep the order built above
    ranked = sorted(merged.values(), key=lambda result: result.score, reverse=True)
    return ranked[: max(limit, 0)]


def clamp_limit(limit: int | None, default: int) -> int:
    if limit is None:
        limit = default
    return min(max(limit, MIN_LIMIT), MAX_LIMIT)


def _validate(query: str) -> str:
    query = (query or "").strip()
    if len(query) > MAX_QUERY_LENGTH:
        raise ValueError(f"Query too long (max {MAX_QUERY_LENGTH} characters)")
    return query


class Searcher:
    """High-level API over the corpus store and the embedding model."""

    def __init__(self, embedder: EmbeddingModel, store: CorpusStore) -> None:
        self.embedder = embedder
        self.store = store

    def full_text(self, query: str, *, limit: int | None = None) -> List[FullTextHit]:
        query = _validate(query)
        if not query:
            return []
        return self.store.full_text_search(query, clamp_limit(limit, 20))

    def by_reference(self, ref: str) -> List[Document]:
        ref = _validate(ref)
        if not ref:
            return []
        return self.store.search_by_reference(ref)

    def semantic(self, query: str, *, limit: int | None = None) -> List[VectorHit]:
        query = _validate(query)
        if not query:
            return []
        embedding = self.embedder.embed_query(query)
        return self.store.vector_search(embedding, clamp_limit(limit, 10))

    def hybrid(self, query: str, *, limit: int | None = None) -> List[HybridResult]:
        query = _validate(query)
        if not query:
            return []
        limit = clamp_limit(limit, 10)
        fts_results = self.store.full_text_search(query, limit)
        vector_results = self.store.vector_search(self.embedder.embed_query(query), limit)
        results = hybrid_search(fts_results, vector_results, limit)
        LOGGER.debug(
            "Hybrid search %r: %s",
            query,
            [(r.document.id, round(r.score, 3), r.match_type) for r in results],
        )
        return results
