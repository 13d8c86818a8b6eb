"""Collaborator contracts for the answering pipeline.

Concrete adapters live in ``canvas_ai.services``; tests substitute fakes.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

from canvas_ai.rag.types import KnowledgeDocument, KnowledgeScope


@dataclass(frozen=True)
class AgenticAnswer:
    """Answer from a provider that browses on its own and reports its sources."""

    content: str
    citation_urls: list[str] = field(default_factory=list)


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> list[float]: ...


class VectorSearchStore(Protocol):
    async def match(
        self,
        scope: KnowledgeScope,
        canvas_id: str,
        query_embedding: list[float],
        match_count: int,
        min_similarity: float,
    ) -> list[dict[str, Any]]:
        """Return rows shaped ``{id, knowledge_id, text, similarity}``."""
        ...


class DocumentStore(Protocol):
    async def get_by_ids(self, ids: list[str]) -> list[KnowledgeDocument]: ...

    async def recent(self, canvas_id: str, limit: int) -> list[KnowledgeDocument]: ...


class WebSearchProvider(Protocol):
    async def search(self, query: str, limit: int) -> list[dict[str, Any]]:
        """Return rows shaped ``{title, link, snippet, source?, relevanceScore?}``."""
        ...


class ChatProvider(Protocol):
    async def chat(
        self,
        system: str,
        user: str,
        *,
        max_tokens: int,
        temperature: float,
        presence_penalty: float | None = None,
        frequency_penalty: float | None = None,
    ) -> str: ...


class AgenticChatProvider(Protocol):
    async def chat(
        self,
        system: str,
        user: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> AgenticAnswer: ...


class InstructionSource(Protocol):
    async def get_active_instruction(self) -> str: ...
