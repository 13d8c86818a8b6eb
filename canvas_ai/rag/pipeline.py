"""Wiring of the answering pipeline from settings."""

from loguru import logger

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.citations import CitationBuilder
from canvas_ai.rag.decision.engine import ActionDecisionEngine
from canvas_ai.rag.embed.embedder import EmbeddingClient, OpenAIEmbeddingProvider
from canvas_ai.rag.index.memory_store import InMemoryDocumentStore, InMemoryVectorStore
from canvas_ai.rag.orchestrator import RAGOrchestrator
from canvas_ai.rag.protocols import (
    AgenticChatProvider,
    ChatProvider,
    DocumentStore,
    EmbeddingProvider,
    InstructionSource,
    VectorSearchStore,
    WebSearchProvider,
)
from canvas_ai.rag.retrieve.assembler import KnowledgeContextAssembler
from canvas_ai.rag.retrieve.retriever import KnowledgeStore
from canvas_ai.rag.synthesis.synthesizer import AnswerSynthesizer
from canvas_ai.rag.web.search import WebSearchClient
from canvas_ai.services.llm.providers import OpenAIChatProvider, PerplexityChatProvider
from canvas_ai.services.search.perplexity_search import PerplexitySearchProvider
from canvas_ai.services.search.serpapi import SerpApiSearchProvider
from canvas_ai.services.supabase.store import SupabaseKnowledgeStore


def create_orchestrator(
    *,
    chat: ChatProvider,
    embeddings: EmbeddingProvider,
    vector_store: VectorSearchStore,
    documents: DocumentStore,
    search_provider: WebSearchProvider,
    agentic: AgenticChatProvider | None = None,
    decision_chat: ChatProvider | None = None,
    instructions: InstructionSource | None = None,
    settings: Settings | None = None,
) -> RAGOrchestrator:
    """Assemble an orchestrator from explicit collaborators.

    Args:
        chat: Plain chat provider (synthesis fallback)
        embeddings: Embedding provider
        vector_store: Scoped similarity search
        documents: Document titles and recency fallback
        search_provider: Web search backend
        agentic: Primary synthesis provider; plain chat only when None
        decision_chat: Provider for the action judge; defaults to ``chat``
        instructions: Source of the admin-managed system header
        settings: Configuration (defaults to the global settings)

    Returns:
        Ready-to-use RAGOrchestrator
    """
    cfg = settings or default_settings

    citations = CitationBuilder(
        knowledge_limit=cfg.knowledge_citation_limit,
        web_limit=cfg.web_citation_limit,
        snippet_chars=cfg.snippet_chars,
        dedupe=cfg.citation_dedupe,
    )

    return RAGOrchestrator(
        knowledge=KnowledgeStore(vector_store, EmbeddingClient(embeddings, cfg), cfg),
        assembler=KnowledgeContextAssembler(documents, cfg),
        decision_engine=ActionDecisionEngine(decision_chat or chat, cfg),
        web_search=WebSearchClient(search_provider, cfg),
        synthesizer=AnswerSynthesizer(chat, agentic, citations, cfg),
        citations=citations,
        instructions=instructions,
        settings=cfg,
    )


def build_orchestrator(settings: Settings | None = None) -> RAGOrchestrator:
    """Build the production orchestrator from configured API keys.

    Supabase backs knowledge when configured, otherwise empty in-memory
    stores are used. Web search prefers SerpAPI and falls back to Perplexity.

    Raises:
        ValueError: If neither SerpAPI nor Perplexity is configured
    """
    cfg = settings or default_settings

    agentic = PerplexityChatProvider(settings=cfg) if cfg.perplexity_api_key else None

    if cfg.serpapi_key:
        search_provider: WebSearchProvider = SerpApiSearchProvider(settings=cfg)
    elif agentic is not None:
        search_provider = PerplexitySearchProvider(agentic)
    else:
        raise ValueError("Configure SERPAPI_KEY or PERPLEXITY_API_KEY for web search")

    instructions: InstructionSource | None
    if cfg.supabase_url and cfg.supabase_service_key:
        store = SupabaseKnowledgeStore(settings=cfg)
        vector_store: VectorSearchStore = store
        documents: DocumentStore = store
        instructions = store
    else:
        logger.warning("Supabase not configured, using empty in-memory knowledge stores")
        vector_store = InMemoryVectorStore()
        documents = InMemoryDocumentStore()
        instructions = None

    chat = OpenAIChatProvider(settings=cfg)
    decision_chat = OpenAIChatProvider(model=cfg.openai_decision_model, settings=cfg)

    return create_orchestrator(
        chat=chat,
        embeddings=OpenAIEmbeddingProvider(settings=cfg),
        vector_store=vector_store,
        documents=documents,
        search_provider=search_provider,
        agentic=agentic,
        decision_chat=decision_chat,
        instructions=instructions,
        settings=cfg,
    )
