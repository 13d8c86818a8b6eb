"""Knowledge context assembly.

Builds the bounded knowledge block that goes into the prompts: ranked canvas
matches, a separate global block, or, when similarity search produced
nothing, the most recent canvas uploads.
"""

from dataclasses import dataclass

from loguru import logger

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.deadline import call_with_timeout
from canvas_ai.rag.logging import log_context_assembly
from canvas_ai.rag.protocols import DocumentStore
from canvas_ai.rag.types import KnowledgeChunk, KnowledgeDocument, KnowledgeScope, KnowledgeSearchResult

RANKED_HEADER = "🎯 질문과 관련된 지식:"
GLOBAL_HEADER = "🌐 글로벌 지식 베이스:"
RECENT_HEADER = "📋 캔버스 업로드 자료 (최신순):"
DEFAULT_TITLE = "지식 항목"


@dataclass(frozen=True)
class AssembledContext:
    """Composed knowledge context and the data it was built from."""

    text: str
    surfaced_chunks: list[KnowledgeChunk]
    titles: dict[str, str]
    fallback_used: bool


def _format_ranked(chunks: list[KnowledgeChunk], titles: dict[str, str]) -> str:
    return "\n\n".join(
        f"{idx}. [{titles.get(chunk.knowledge_id) or DEFAULT_TITLE}] "
        f"(유사도: {chunk.similarity * 100:.1f}%)\n{chunk.text}"
        for idx, chunk in enumerate(chunks, start=1)
    )


def _format_recent(documents: list[KnowledgeDocument], snippet_chars: int) -> str:
    return "\n".join(
        f"- {doc.title or DEFAULT_TITLE}: {(doc.content or '')[:snippet_chars]}..." for doc in documents
    )


def compose_knowledge_context(
    chunks: list[KnowledgeChunk],
    rag_success: bool,
    titles: dict[str, str] | None = None,
    recent_documents: list[KnowledgeDocument] | None = None,
    *,
    top_n: int = 8,
    snippet_chars: int = 300,
) -> str:
    """Compose the knowledge context string.

    Args:
        chunks: Ranked chunks (descending similarity)
        rag_success: Whether similarity search produced matches
        titles: knowledge_id -> document title; missing titles use a placeholder
        recent_documents: Newest canvas documents for the fallback block
        top_n: Number of chunks surfaced
        snippet_chars: Fallback content truncation

    Returns:
        Context string; empty when there is nothing to show
    """
    titles = titles or {}

    if rag_success and chunks:
        surfaced = chunks[:top_n]
        canvas_chunks = [c for c in surfaced if c.scope == KnowledgeScope.CANVAS]
        global_chunks = [c for c in surfaced if c.scope == KnowledgeScope.GLOBAL]

        context = ""
        if canvas_chunks:
            context += f"\n\n{RANKED_HEADER}\n" + _format_ranked(canvas_chunks, titles)
        if global_chunks:
            context += f"\n\n{GLOBAL_HEADER}\n" + _format_ranked(global_chunks, titles)
        return context

    if recent_documents:
        return f"\n\n{RECENT_HEADER}\n" + _format_recent(recent_documents, snippet_chars)

    return ""


class KnowledgeContextAssembler:
    """Loads titles or recent documents and composes the knowledge context."""

    def __init__(self, documents: DocumentStore, settings: Settings | None = None):
        self.documents = documents
        self.settings = settings or default_settings

    async def assemble(self, canvas_id: str, search: KnowledgeSearchResult) -> AssembledContext:
        cfg = self.settings

        if search.rag_success and search.chunks:
            surfaced = search.chunks[: cfg.context_top_n]
            titles = await self._load_titles(surfaced)
            text = compose_knowledge_context(
                surfaced,
                True,
                titles,
                top_n=cfg.context_top_n,
                snippet_chars=cfg.snippet_chars,
            )
            log_context_assembly(
                canvas_id,
                context_chars=len(text),
                surfaced_chunks=len(surfaced),
                fallback_used=False,
            )
            return AssembledContext(text=text, surfaced_chunks=surfaced, titles=titles, fallback_used=False)

        recent = await self._load_recent(canvas_id)
        text = compose_knowledge_context(
            [],
            False,
            recent_documents=recent,
            top_n=cfg.context_top_n,
            snippet_chars=cfg.snippet_chars,
        )
        log_context_assembly(canvas_id, context_chars=len(text), surfaced_chunks=0, fallback_used=True)
        return AssembledContext(text=text, surfaced_chunks=[], titles={}, fallback_used=True)

    async def _load_titles(self, chunks: list[KnowledgeChunk]) -> dict[str, str]:
        ids = list(dict.fromkeys(c.knowledge_id for c in chunks))
        try:
            docs = await call_with_timeout(
                "document_lookup",
                self.documents.get_by_ids(ids),
                self.settings.document_lookup_timeout_s,
            )
        except Exception as e:
            logger.warning("Knowledge title lookup failed, using placeholder titles", error=str(e))
            return {}
        return {doc.id: doc.title for doc in docs if doc.title}

    async def _load_recent(self, canvas_id: str) -> list[KnowledgeDocument]:
        try:
            return await call_with_timeout(
                "document_lookup",
                self.documents.recent(canvas_id, self.settings.recent_fallback_limit),
                self.settings.document_lookup_timeout_s,
            )
        except Exception as e:
            logger.warning("Recent knowledge lookup failed, context left empty", canvas_id=canvas_id, error=str(e))
            return []
