"""Knowledge sufficiency heuristics.

Raw cosine similarities are rescaled to a 0-100 percentage before
thresholding. The same heuristic decides the fallback action when the LLM
judge is unavailable.
"""

from dataclasses import dataclass

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.types import KnowledgeChunk


@dataclass(frozen=True)
class SufficiencyScore:
    """Percentages the sufficiency decision was based on."""

    sufficient: bool
    top: float
    avg3: float
    reason: str


def convert_to_percentage(similarity: float) -> float:
    """Map cosine similarity in [-1, 1] onto [0, 100], clamped."""
    return min(100.0, max(0.0, (similarity + 1.0) * 50.0))


def score_knowledge(
    chunks: list[KnowledgeChunk],
    rag_success: bool,
    knowledge_context: str,
    settings: Settings | None = None,
) -> SufficiencyScore:
    """Score whether retrieved knowledge can answer without the web.

    Sufficient iff retrieval succeeded with at least ``min_chunks_for_sufficiency``
    chunks, the context is long enough, and one of:
    - top >= strong threshold
    - top >= good threshold and mean of top 3 >= avg3 threshold
    - top >= broad threshold and at least ``broad_chunk_count`` chunks

    Args:
        chunks: Matched chunks (any order)
        rag_success: Whether similarity search produced matches
        knowledge_context: Composed knowledge context string
        settings: Threshold configuration

    Returns:
        SufficiencyScore with the decision and the percentages used
    """
    cfg = settings or default_settings

    if not rag_success:
        return SufficiencyScore(False, 0.0, 0.0, "similarity search produced no matches")
    if len(chunks) < cfg.min_chunks_for_sufficiency:
        return SufficiencyScore(
            False,
            0.0,
            0.0,
            f"only {len(chunks)} chunk(s), need {cfg.min_chunks_for_sufficiency}",
        )

    similarities = sorted((c.similarity for c in chunks), reverse=True)
    top = convert_to_percentage(similarities[0])
    top3 = similarities[:3]
    avg3 = convert_to_percentage(sum(top3) / len(top3))

    strong_match = (
        top >= cfg.top_score_strong
        or (top >= cfg.top_score_good and avg3 >= cfg.avg3_score_good)
        or (top >= cfg.top_score_broad and len(chunks) >= cfg.broad_chunk_count)
    )
    long_enough = len(knowledge_context) >= cfg.min_context_chars

    if not strong_match:
        reason = f"scores too low (top={top:.1f}, avg3={avg3:.1f})"
    elif not long_enough:
        reason = f"context too short ({len(knowledge_context)} chars)"
    else:
        reason = f"top={top:.1f}, avg3={avg3:.1f}, chunks={len(chunks)}"

    return SufficiencyScore(strong_match and long_enough, top, avg3, reason)


def has_sufficient_knowledge(
    chunks: list[KnowledgeChunk],
    rag_success: bool,
    knowledge_context: str,
    settings: Settings | None = None,
) -> bool:
    return score_knowledge(chunks, rag_success, knowledge_context, settings).sufficient
