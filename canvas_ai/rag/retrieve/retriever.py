"""Scoped knowledge retrieval.

Canvas and global scopes are queried concurrently, filtered by minimum
similarity, merged and ranked. A scope that fails contributes nothing.
"""

import asyncio
from typing import Any

from loguru import logger

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.deadline import call_with_timeout
from canvas_ai.rag.embed.embedder import EmbeddingClient
from canvas_ai.rag.errors import ProviderError
from canvas_ai.rag.logging import log_retrieval
from canvas_ai.rag.protocols import VectorSearchStore
from canvas_ai.rag.types import KnowledgeChunk, KnowledgeScope, KnowledgeSearchResult

DEFAULT_SCOPES: tuple[KnowledgeScope, ...] = (KnowledgeScope.CANVAS, KnowledgeScope.GLOBAL)


def merge_ranked(*scope_results: list[KnowledgeChunk], limit: int) -> list[KnowledgeChunk]:
    """Merge per-scope chunk lists into one list ranked by similarity, descending."""
    merged = [chunk for chunks in scope_results for chunk in chunks]
    merged.sort(key=lambda c: c.similarity, reverse=True)
    return merged[:limit]


def _row_to_chunk(row: dict[str, Any], scope: KnowledgeScope) -> KnowledgeChunk | None:
    try:
        similarity = float(row["similarity"])
    except (KeyError, TypeError, ValueError):
        return None
    chunk_id = row.get("id")
    if chunk_id is None:
        return None
    return KnowledgeChunk(
        id=str(chunk_id),
        knowledge_id=str(row.get("knowledge_id") or chunk_id),
        text=str(row.get("text") or row.get("chunk_text") or ""),
        similarity=similarity,
        scope=scope,
    )


class KnowledgeStore:
    """Similarity search over per-canvas and global knowledge."""

    def __init__(
        self,
        vector_store: VectorSearchStore,
        embedder: EmbeddingClient | None = None,
        settings: Settings | None = None,
    ):
        self.vector_store = vector_store
        self.embedder = embedder
        self.settings = settings or default_settings

    async def search(
        self,
        canvas_id: str,
        query_vector: list[float],
        scopes: tuple[KnowledgeScope, ...] = DEFAULT_SCOPES,
        match_count: int | None = None,
        min_similarity: float | None = None,
    ) -> KnowledgeSearchResult:
        """Search all requested scopes and merge the matches.

        Args:
            canvas_id: Canvas whose knowledge is searched
            query_vector: Query embedding
            scopes: Scopes to query
            match_count: Per-scope match count (defaults per scope from settings)
            min_similarity: Raw cosine floor; rows below it are dropped

        Returns:
            KnowledgeSearchResult with chunks sorted descending by similarity,
            capped at the internal top-N. ``rag_success`` is False when no
            scope produced a usable row.
        """
        floor = self.settings.min_similarity if min_similarity is None else min_similarity

        per_scope = await asyncio.gather(
            *(self._search_scope(scope, canvas_id, query_vector, match_count, floor) for scope in scopes)
        )

        chunks = merge_ranked(*per_scope, limit=self.settings.internal_top_n)
        return KnowledgeSearchResult(chunks=chunks, rag_success=bool(chunks))

    async def retrieve(self, canvas_id: str, message: str) -> KnowledgeSearchResult:
        """Embed the message and search every scope.

        An embedding failure yields an unsuccessful, empty result so callers
        take the recency fallback.
        """
        if self.embedder is None:
            raise ValueError("KnowledgeStore.retrieve requires an EmbeddingClient")

        try:
            query_vector = await self.embedder.embed(message)
        except ProviderError as e:
            logger.warning("Embedding failed, using recency fallback", canvas_id=canvas_id, error=str(e))
            result = KnowledgeSearchResult(chunks=[], rag_success=False)
        else:
            result = await self.search(canvas_id, query_vector)

        log_retrieval(
            query=message,
            canvas_id=canvas_id,
            chunks=result.chunks,
            rag_success=result.rag_success,
            min_similarity=self.settings.min_similarity,
        )
        return result

    async def _search_scope(
        self,
        scope: KnowledgeScope,
        canvas_id: str,
        query_vector: list[float],
        match_count: int | None,
        min_similarity: float,
    ) -> list[KnowledgeChunk]:
        if match_count is None:
            match_count = (
                self.settings.global_match_count if scope == KnowledgeScope.GLOBAL else self.settings.match_count
            )

        try:
            rows = await call_with_timeout(
                "vector_search",
                self.vector_store.match(scope, canvas_id, query_vector, match_count, min_similarity),
                self.settings.vector_search_timeout_s,
            )
        except Exception as e:
            logger.warning(
                "Knowledge scope search failed, scope contributes nothing",
                scope=str(scope),
                canvas_id=canvas_id,
                error=str(e),
            )
            return []

        chunks: list[KnowledgeChunk] = []
        for row in rows or []:
            chunk = _row_to_chunk(row, scope)
            if chunk is not None and chunk.similarity >= min_similarity:
                chunks.append(chunk)
        return chunks
