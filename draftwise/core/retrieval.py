"""
Scoped chunk retrieval with pluggable scoring.

Scope precedence: document, then project, then the whole user corpus.

Strategies:
1. Keyword containment - case-insensitive substring match of the query
2. Embedding similarity - cosine similarity against stored chunk vectors

Usage:
    from draftwise.core.retrieval import KnowledgeStore, build_scorer
    from draftwise.db import knowledge_items

    store = KnowledgeStore(knowledge_items, build_scorer("keyword"))
    chunks = await store.retrieve("quarterly revenue", scope, k=5)
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

import numpy as np

from draftwise.core.logging import get_logger, log_with_context
from draftwise.core.schemas_chat import ChunkScope, KnowledgeChunk, RetrievedChunk

logger = get_logger(__name__)

Embedder = Callable[[list[str]], Awaitable[list[list[float]]]]


class ChunkRepository(Protocol):
    """Anything that can list chunks inside a scope (the knowledge_items module satisfies this)."""

    def list_chunks(
        self,
        scope: ChunkScope,
        keyword: str | None = None,
        limit: int | None = None,
    ) -> list[KnowledgeChunk]: ...


class ChunkScorer(Protocol):
    """Scores a candidate chunk against the query. None excludes the chunk."""

    needs_query_embedding: bool

    def prefilter(self, query_text: str) -> str | None: ...

    def score(
        self,
        query_text: str,
        chunk: KnowledgeChunk,
        query_embedding: list[float] | None = None,
    ) -> float | None: ...


class KeywordContainmentScorer:
    """Matches chunks whose content contains the whole query, ignoring case."""

    needs_query_embedding = False

    def prefilter(self, query_text: str) -> str | None:
        return query_text.strip() or None

    def score(
        self,
        query_text: str,
        chunk: KnowledgeChunk,
        query_embedding: list[float] | None = None,
    ) -> float | None:
        needle = query_text.strip().lower()
        if not needle or needle not in chunk.content.lower():
            return None
        return 1.0


class CosineSimilarityScorer:
    """Ranks chunks by cosine similarity between query and chunk embeddings."""

    needs_query_embedding = True

    def __init__(self, min_score: float = 0.0):
        self.min_score = min_score

    def prefilter(self, query_text: str) -> str | None:
        return None

    def score(
        self,
        query_text: str,
        chunk: KnowledgeChunk,
        query_embedding: list[float] | None = None,
    ) -> float | None:
        if query_embedding is None or not chunk.embedding:
            return None

        a = np.asarray(query_embedding, dtype=float)
        b = np.asarray(chunk.embedding, dtype=float)
        if a.shape != b.shape:
            return None

        denom = np.linalg.norm(a) * np.linalg.norm(b)
        if denom == 0:
            return None

        similarity = float(np.dot(a, b) / denom)
        return similarity if similarity >= self.min_score else None


def build_scorer(strategy: str) -> ChunkScorer:
    """Create the scorer named by a RETRIEVAL_STRATEGY value."""
    if strategy == "keyword":
        return KeywordContainmentScorer()
    if strategy == "embedding":
        return CosineSimilarityScorer()
    raise ValueError(f"Unknown retrieval strategy: {strategy}")


class KnowledgeStore:
    """Scoped top-k retrieval over a chunk repository."""

    def __init__(
        self,
        repository: ChunkRepository,
        scorer: ChunkScorer,
        embedder: Embedder | None = None,
    ):
        if scorer.needs_query_embedding and embedder is None:
            raise ValueError("Embedding-based scoring requires an embedder")
        self.repository = repository
        self.scorer = scorer
        self.embedder = embedder

    async def retrieve(self, query_text: str, scope: ChunkScope, k: int) -> list[RetrievedChunk]:
        """
        Return at most k chunks inside `scope` that match the query.

        Args:
            query_text: The user's query
            scope: Retrieval scope (document beats project beats user)
            k: Maximum number of results

        Returns:
            Matching chunks, best score first; empty when nothing matches
        """
        if k <= 0:
            return []

        query_embedding = None
        if self.scorer.needs_query_embedding:
            vectors = await self.embedder([query_text])
            query_embedding = vectors[0] if vectors else None

        keyword = self.scorer.prefilter(query_text)
        # A keyword prefilter lets the store cap rows; similarity must see every candidate
        limit = k if keyword is not None else None
        candidates = self.repository.list_chunks(scope, keyword=keyword, limit=limit)

        scored: list[tuple[float, KnowledgeChunk]] = []
        for chunk in candidates:
            if not scope.admits(chunk.scope):
                continue
            score = self.scorer.score(query_text, chunk, query_embedding)
            if score is not None:
                scored.append((score, chunk))

        # sorted() is stable, so ties keep store order
        scored = sorted(scored, key=lambda pair: pair[0], reverse=True)[:k]

        log_with_context(
            logger,
            logging.INFO,
            "Retrieved chunks",
            user_id=scope.user_id,
            scope_mode=scope.mode.value,
            candidates=len(candidates),
            hits=len(scored),
        )

        return [
            RetrievedChunk(content=chunk.content, metadata=chunk.metadata, score=score)
            for score, chunk in scored
        ]
