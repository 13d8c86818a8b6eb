"""Shared fixtures for the answering pipeline tests.

Collaborators are replaced with ``AsyncMock`` objects so each test controls
exactly what the providers return or raise.
"""

from unittest.mock import AsyncMock

import pytest

from canvas_ai.config.settings import Settings
from canvas_ai.rag.citations import CitationBuilder
from canvas_ai.rag.decision.engine import ActionDecisionEngine
from canvas_ai.rag.embed.embedder import EmbeddingClient
from canvas_ai.rag.orchestrator import RAGOrchestrator
from canvas_ai.rag.protocols import AgenticAnswer
from canvas_ai.rag.retrieve.assembler import KnowledgeContextAssembler
from canvas_ai.rag.retrieve.retriever import KnowledgeStore
from canvas_ai.rag.synthesis.synthesizer import AnswerSynthesizer
from canvas_ai.rag.types import KnowledgeChunk, KnowledgeDocument, KnowledgeScope
from canvas_ai.rag.web.search import WebSearchClient

EMBEDDING_DIM = 3


def make_chunk(
    chunk_id: str,
    similarity: float,
    text: str = "chunk text",
    knowledge_id: str | None = None,
    scope: KnowledgeScope = KnowledgeScope.CANVAS,
) -> KnowledgeChunk:
    return KnowledgeChunk(
        id=chunk_id,
        knowledge_id=knowledge_id or f"doc-{chunk_id}",
        text=text,
        similarity=similarity,
        scope=scope,
    )


def make_row(chunk_id: str, similarity: float, text: str = "chunk text", knowledge_id: str | None = None) -> dict:
    return {
        "id": chunk_id,
        "knowledge_id": knowledge_id or f"doc-{chunk_id}",
        "text": text,
        "similarity": similarity,
    }


@pytest.fixture
def test_settings() -> Settings:
    """Settings with small timeouts and a tiny embedding dimension."""
    return Settings(
        openai_api_key="test-key",
        embedding_dim=EMBEDDING_DIM,
        embedding_timeout_s=1.0,
        vector_search_timeout_s=1.0,
        document_lookup_timeout_s=1.0,
        decision_timeout_s=1.0,
        web_search_timeout_s=1.0,
        synthesis_timeout_s=1.0,
        request_deadline_s=5.0,
        citation_dedupe=False,
        action_decision_enabled=True,
    )


@pytest.fixture
def embedding_provider() -> AsyncMock:
    provider = AsyncMock()
    provider.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
    return provider


@pytest.fixture
def vector_store() -> AsyncMock:
    """Vector store returning no rows for any scope unless a test overrides it."""
    store = AsyncMock()
    store.match = AsyncMock(return_value=[])
    return store


@pytest.fixture
def document_store() -> AsyncMock:
    store = AsyncMock()
    store.get_by_ids = AsyncMock(return_value=[])
    store.recent = AsyncMock(return_value=[])
    return store


@pytest.fixture
def decision_chat() -> AsyncMock:
    chat = AsyncMock()
    chat.chat = AsyncMock(return_value='{"action": "KNOWLEDGE_ONLY", "reason": "ok"}')
    return chat


@pytest.fixture
def answer_chat() -> AsyncMock:
    chat = AsyncMock()
    chat.chat = AsyncMock(return_value="채팅 답변입니다.")
    return chat


@pytest.fixture
def agentic_chat() -> AsyncMock:
    agentic = AsyncMock()
    agentic.chat = AsyncMock(
        return_value=AgenticAnswer(content="웹 기반 답변입니다.", citation_urls=["https://news.example.com/a"])
    )
    return agentic


@pytest.fixture
def search_provider() -> AsyncMock:
    provider = AsyncMock()
    provider.search = AsyncMock(
        return_value=[
            {
                "title": f"Result {i}",
                "link": f"https://site{i}.example.com/page",
                "snippet": f"snippet {i}",
                "relevanceScore": round(1 - i * 0.1, 2),
            }
            for i in range(6)
        ]
    )
    return provider


@pytest.fixture
def orchestrator(
    test_settings,
    embedding_provider,
    vector_store,
    document_store,
    decision_chat,
    answer_chat,
    agentic_chat,
    search_provider,
) -> RAGOrchestrator:
    citations = CitationBuilder(dedupe=test_settings.citation_dedupe)
    return RAGOrchestrator(
        knowledge=KnowledgeStore(vector_store, EmbeddingClient(embedding_provider, test_settings), test_settings),
        assembler=KnowledgeContextAssembler(document_store, test_settings),
        decision_engine=ActionDecisionEngine(decision_chat, test_settings),
        web_search=WebSearchClient(search_provider, test_settings),
        synthesizer=AnswerSynthesizer(answer_chat, agentic_chat, citations, test_settings),
        citations=citations,
        settings=test_settings,
    )


@pytest.fixture
def refund_document() -> KnowledgeDocument:
    return KnowledgeDocument(id="doc-refund", title="환불 정책", content="구매 후 14일 이내 환불 가능합니다.")
