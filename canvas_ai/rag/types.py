"""Core types for the answering pipeline.

All retrieval types are immutable. ``ActionDecision`` is a pydantic model
because it is parsed from LLM output and must enforce its invariants.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from canvas_ai.rag.errors import EmptyResultError


class KnowledgeScope(StrEnum):
    CANVAS = "canvas"
    GLOBAL = "global"


class ActionType(StrEnum):
    KNOWLEDGE_ONLY = "KNOWLEDGE_ONLY"
    WEB_SEARCH = "WEB_SEARCH"
    CLARIFY = "CLARIFY"
    CONVERSATION_SUMMARY = "CONVERSATION_SUMMARY"
    KNOWLEDGE_SUMMARY = "KNOWLEDGE_SUMMARY"


@dataclass(frozen=True)
class KnowledgeChunk:
    """A retrieved chunk with its raw cosine similarity in [-1, 1]."""

    id: str
    knowledge_id: str
    text: str
    similarity: float
    scope: KnowledgeScope = KnowledgeScope.CANVAS


@dataclass(frozen=True)
class KnowledgeDocument:
    """A stored knowledge document. Read-only to the pipeline."""

    id: str
    title: str
    content: str
    scope: KnowledgeScope = KnowledgeScope.CANVAS
    created_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class KnowledgeSearchResult:
    chunks: list[KnowledgeChunk]
    rag_success: bool


@dataclass(frozen=True)
class WebSearchResult:
    title: str
    url: str
    snippet: str
    source: str | None = None
    relevance_score: float | None = None


@dataclass(frozen=True)
class KnowledgeCitation:
    chunk_id: str
    knowledge_id: str
    title: str
    snippet: str
    similarity: float
    kind: Literal["knowledge"] = "knowledge"


@dataclass(frozen=True)
class WebCitation:
    title: str
    url: str
    snippet: str
    source: str | None = None
    relevance_score: float | None = None
    kind: Literal["web"] = "web"


Citation = KnowledgeCitation | WebCitation


@dataclass(frozen=True)
class ConversationTurn:
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime | None = None


class ActionDecision(BaseModel):
    """Which evidence path answers a request.

    ``search_query`` is present iff the action is WEB_SEARCH and
    ``clarification_question`` is present iff the action is CLARIFY.
    """

    model_config = ConfigDict(frozen=True)

    action: ActionType = Field(description="Chosen evidence path")
    reason: str = Field(default="", description="Short justification for the choice")
    search_query: str | None = Field(default=None, description="Web query, WEB_SEARCH only")
    clarification_question: str | None = Field(default=None, description="Question back to the user, CLARIFY only")
    source: Literal["llm", "heuristic"] = Field(default="llm", description="Who produced the decision")

    def model_post_init(self, __context: Any) -> None:
        has_query = bool(self.search_query and self.search_query.strip())
        has_question = bool(self.clarification_question and self.clarification_question.strip())

        if self.action == ActionType.WEB_SEARCH and not has_query:
            raise ValueError("WEB_SEARCH decision requires a non-empty search_query")
        if self.action != ActionType.WEB_SEARCH and self.search_query is not None:
            raise ValueError(f"search_query is only allowed for WEB_SEARCH, got action={self.action}")
        if self.action == ActionType.CLARIFY and not has_question:
            raise ValueError("CLARIFY decision requires a non-empty clarification_question")
        if self.action != ActionType.CLARIFY and self.clarification_question is not None:
            raise ValueError(f"clarification_question is only allowed for CLARIFY, got action={self.action}")


@dataclass(frozen=True)
class RagUsage:
    chunks_matched: int
    web_search_used: bool


@dataclass(frozen=True)
class RAGResult:
    """Everything the pipeline gathered for one request."""

    knowledge_context: str
    knowledge_citations: list[KnowledgeCitation]
    web_citations: list[WebCitation]
    web_context: str
    rag_used: RagUsage
    action_decision: ActionDecision | None = None

    @classmethod
    def empty(cls) -> "RAGResult":
        return cls(
            knowledge_context="",
            knowledge_citations=[],
            web_citations=[],
            web_context="",
            rag_used=RagUsage(chunks_matched=0, web_search_used=False),
        )

    def has_evidence(self) -> bool:
        return bool(self.knowledge_context.strip() or self.web_context.strip())

    def require_evidence(self) -> "RAGResult":
        """Return self, or raise when neither knowledge nor web evidence exists.

        Raises:
            EmptyResultError: If both contexts are empty
        """
        if not self.has_evidence():
            raise EmptyResultError("No knowledge or web evidence available")
        return self


@dataclass(frozen=True)
class SynthesisResult:
    content: str
    web_citations: list[WebCitation]
    provider: Literal["agentic", "chat", "none"]


@dataclass(frozen=True)
class RAGAnswer:
    """Final answer returned to the request handler."""

    content: str
    result: RAGResult
    provider: Literal["agentic", "chat", "none"]

    @property
    def citations(self) -> list[Citation]:
        return [*self.result.knowledge_citations, *self.result.web_citations]
