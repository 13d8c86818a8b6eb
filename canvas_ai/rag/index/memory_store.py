"""In-memory knowledge stores for local runs and tests.

Similarity is exact cosine over one numpy matrix per bucket (a canvas, or the
global knowledge base). Buckets are small, so no ANN index is used.
"""

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from canvas_ai.rag.types import KnowledgeDocument, KnowledgeScope

GLOBAL_BUCKET = "__global__"


@dataclass(frozen=True)
class IndexedChunk:
    """A stored chunk together with its embedding vector."""

    id: str
    knowledge_id: str
    text: str
    vector: list[float]


@dataclass
class _Bucket:
    chunks: list[IndexedChunk] = field(default_factory=list)
    unit_rows: np.ndarray | None = None

    def extend(self, chunks: list[IndexedChunk]) -> None:
        self.chunks.extend(chunks)
        self.unit_rows = None

    def matrix(self) -> np.ndarray:
        if self.unit_rows is None:
            rows = np.asarray([c.vector for c in self.chunks], dtype=np.float32)
            lengths = np.linalg.norm(rows, axis=1, keepdims=True)
            self.unit_rows = rows / np.maximum(lengths, 1e-12)
        return self.unit_rows


def cosine_top_k(unit_rows: np.ndarray, query: list[float], k: int) -> list[tuple[int, float]]:
    """Return ``(row, similarity)`` pairs for the ``k`` rows closest to ``query``.

    ``unit_rows`` must already be L2-normalized. A zero query matches nothing.

    Raises:
        ValueError: If the query dimension differs from the rows
    """
    if k <= 0 or unit_rows.shape[0] == 0:
        return []

    q = np.asarray(query, dtype=np.float32)
    if q.shape[0] != unit_rows.shape[1]:
        raise ValueError(f"Query has {q.shape[0]} dimensions, stored vectors have {unit_rows.shape[1]}")

    length = float(np.linalg.norm(q))
    if length == 0.0:
        return []

    scores = unit_rows @ (q / length)
    k = min(k, scores.shape[0])
    top = np.argpartition(-scores, k - 1)[:k]
    top = top[np.argsort(-scores[top], kind="stable")]
    return [(int(i), float(scores[i])) for i in top]


class InMemoryVectorStore:
    """Scoped vector store with one bucket per canvas plus one global bucket."""

    def __init__(self) -> None:
        self._buckets: dict[tuple[KnowledgeScope, str], _Bucket] = {}

    def add(self, scope: KnowledgeScope, canvas_id: str | None, chunks: list[IndexedChunk]) -> None:
        key = self._key(scope, canvas_id)
        self._buckets.setdefault(key, _Bucket()).extend(chunks)

    async def match(
        self,
        scope: KnowledgeScope,
        canvas_id: str,
        query_embedding: list[float],
        match_count: int,
        min_similarity: float,
    ) -> list[dict[str, Any]]:
        bucket = self._buckets.get(self._key(scope, canvas_id))
        if bucket is None or not bucket.chunks:
            return []

        rows = []
        for i, score in cosine_top_k(bucket.matrix(), query_embedding, match_count):
            if score < min_similarity:
                continue
            chunk = bucket.chunks[i]
            rows.append({"id": chunk.id, "knowledge_id": chunk.knowledge_id, "text": chunk.text, "similarity": score})
        return rows

    @staticmethod
    def _key(scope: KnowledgeScope, canvas_id: str | None) -> tuple[KnowledgeScope, str]:
        if scope == KnowledgeScope.GLOBAL:
            return (scope, GLOBAL_BUCKET)
        if not canvas_id:
            raise ValueError("canvas_id is required for canvas-scoped knowledge")
        return (scope, canvas_id)


class InMemoryDocumentStore:
    """Document store keyed by document id, with per-canvas ordering by creation time."""

    def __init__(self) -> None:
        self._documents: dict[str, KnowledgeDocument] = {}
        self._canvas_of: dict[str, str] = {}

    def add(self, document: KnowledgeDocument, canvas_id: str | None = None) -> None:
        self._documents[document.id] = document
        if canvas_id is not None:
            self._canvas_of[document.id] = canvas_id

    async def get_by_ids(self, ids: list[str]) -> list[KnowledgeDocument]:
        return [self._documents[doc_id] for doc_id in ids if doc_id in self._documents]

    async def recent(self, canvas_id: str, limit: int) -> list[KnowledgeDocument]:
        docs = [
            doc
            for doc_id, doc in self._documents.items()
            if self._canvas_of.get(doc_id) == canvas_id
        ]
        docs.sort(key=lambda d: d.created_at.timestamp() if d.created_at else 0.0, reverse=True)
        return docs[:limit]
