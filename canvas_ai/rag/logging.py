"""Observability logging for the answering pipeline.

Each stage emits one structured event so a request can be reconstructed from
the logs.
"""

from loguru import logger

from canvas_ai.rag.types import ActionDecision, KnowledgeChunk, KnowledgeScope


def log_retrieval(
    query: str,
    canvas_id: str,
    *,
    chunks: list[KnowledgeChunk],
    rag_success: bool,
    min_similarity: float,
) -> None:
    """Log a retrieval operation.

    Args:
        query: Message the query embedding was built from
        canvas_id: Canvas searched
        chunks: Merged, ranked chunks
        rag_success: Whether any scope produced matches
        min_similarity: Similarity floor applied
    """
    logger.info(
        "rag_retrieval",
        query_length=len(query),
        canvas_id=canvas_id,
        chunks_returned=len(chunks),
        canvas_chunks=sum(1 for c in chunks if c.scope == KnowledgeScope.CANVAS),
        global_chunks=sum(1 for c in chunks if c.scope == KnowledgeScope.GLOBAL),
        top_similarity=round(chunks[0].similarity, 4) if chunks else None,
        chunk_ids=[c.id for c in chunks],
        rag_success=rag_success,
        min_similarity=min_similarity,
    )


def log_context_assembly(
    canvas_id: str,
    *,
    context_chars: int,
    surfaced_chunks: int,
    fallback_used: bool,
) -> None:
    logger.info(
        "rag_context_assembly",
        canvas_id=canvas_id,
        context_chars=context_chars,
        surfaced_chunks=surfaced_chunks,
        fallback_used=fallback_used,
    )


def log_action_decision(decision: ActionDecision, *, sufficient: bool) -> None:
    """Log the chosen action and whether the heuristic considered knowledge sufficient."""
    logger.info(
        "rag_action_decision",
        action=str(decision.action),
        decision_source=decision.source,
        reason=decision.reason,
        has_search_query=decision.search_query is not None,
        knowledge_sufficient=sufficient,
    )


def log_web_search(query: str, *, results: int, heuristic_gate: bool, failed: bool = False) -> None:
    logger.info(
        "rag_web_search",
        query=query,
        results=results,
        heuristic_gate=heuristic_gate,
        failed=failed,
    )


def log_synthesis(*, provider: str, content_chars: int, web_citations: int, fallback_used: bool) -> None:
    logger.info(
        "rag_synthesis",
        provider=provider,
        content_chars=content_chars,
        web_citations=web_citations,
        fallback_used=fallback_used,
    )
