"""Conversation history formatting for prompts."""

from canvas_ai.rag.types import ConversationTurn

ROLE_LABELS = {"user": "사용자", "assistant": "Canvas AI"}


def format_history(turns: list[ConversationTurn], limit: int = 10) -> str:
    """Render the last ``limit`` turns in chronological order, one per line.

    Turns are ordered by timestamp when every turn has one; otherwise the
    given order is kept.
    """
    if not turns or limit <= 0:
        return ""

    ordered = list(turns)
    if all(t.timestamp is not None for t in ordered):
        ordered.sort(key=lambda t: t.timestamp)

    return "\n".join(
        f"{ROLE_LABELS.get(t.role, t.role)}: {t.content.strip()}" for t in ordered[-limit:] if t.content.strip()
    )
