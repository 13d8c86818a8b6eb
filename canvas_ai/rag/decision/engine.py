"""Action decision for a single request.

An LLM judge classifies the request into one of the ``ActionType`` values.
Whenever the judge is unavailable or its answer cannot be parsed, a
deterministic heuristic based on knowledge sufficiency decides instead.
"""

from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import ValidationError

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.deadline import call_with_timeout
from canvas_ai.rag.errors import ParseError, ProviderError
from canvas_ai.rag.jsonutil import extract_json_object
from canvas_ai.rag.logging import log_action_decision
from canvas_ai.rag.prompts import build_action_decision_prompt
from canvas_ai.rag.protocols import ChatProvider
from canvas_ai.rag.retrieve.confidence import score_knowledge
from canvas_ai.rag.types import ActionDecision, ActionType, KnowledgeChunk

DECISION_SNIPPET_CHARS = 2000
DECISION_SYSTEM_PROMPT = "You are a strict JSON classifier. Respond with a single JSON object and nothing else."


@dataclass(frozen=True)
class DecisionEvidence:
    """Retrieval outcome the heuristic fallback decides from."""

    chunks: list[KnowledgeChunk]
    rag_success: bool
    knowledge_context: str


def _optional_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.lower() == "null":
        return None
    return value


def parse_decision(raw: str, message: str) -> ActionDecision:
    """Parse and normalize an LLM decision.

    - WEB_SEARCH without a query searches for the original message
    - fields that do not belong to the chosen action are dropped

    Raises:
        ParseError: On missing JSON, an unknown action, or CLARIFY without a question
    """
    data = extract_json_object(raw)

    action_raw = str(data.get("action") or "").strip().upper()
    try:
        action = ActionType(action_raw)
    except ValueError as e:
        raise ParseError(f"Unknown action: {action_raw!r}", raw=raw) from e

    reason = _optional_text(data.get("reason")) or ""
    search_query = _optional_text(data.get("searchQuery", data.get("search_query")))
    question = _optional_text(data.get("clarificationQuestion", data.get("clarification_question")))

    if action == ActionType.WEB_SEARCH and search_query is None:
        search_query = message.strip()
    if action == ActionType.CLARIFY and question is None:
        raise ParseError("CLARIFY decision without clarificationQuestion", raw=raw)

    try:
        return ActionDecision(
            action=action,
            reason=reason,
            search_query=search_query if action == ActionType.WEB_SEARCH else None,
            clarification_question=question if action == ActionType.CLARIFY else None,
            source="llm",
        )
    except ValidationError as e:
        raise ParseError(f"Decision failed validation: {e}", raw=raw) from e


def heuristic_decision(
    message: str,
    evidence: DecisionEvidence,
    settings: Settings | None = None,
    reason_prefix: str = "",
) -> ActionDecision:
    """Decide from knowledge sufficiency alone.

    Sufficient knowledge answers from knowledge; anything else searches the
    web for the original message.
    """
    score = score_knowledge(evidence.chunks, evidence.rag_success, evidence.knowledge_context, settings)
    reason = f"{reason_prefix}{score.reason}"

    if score.sufficient:
        return ActionDecision(action=ActionType.KNOWLEDGE_ONLY, reason=reason, source="heuristic")

    query = message.strip()
    if not query:
        # Nothing to search for; answer from whatever knowledge exists.
        return ActionDecision(action=ActionType.KNOWLEDGE_ONLY, reason=reason, source="heuristic")

    return ActionDecision(
        action=ActionType.WEB_SEARCH,
        reason=reason,
        search_query=query,
        source="heuristic",
    )


class ActionDecisionEngine:
    """Chooses the evidence path for a request."""

    def __init__(self, chat: ChatProvider | None = None, settings: Settings | None = None):
        self.chat = chat
        self.settings = settings or default_settings

    async def decide(
        self,
        message: str,
        knowledge_snippet: str,
        history_text: str = "",
        *,
        evidence: DecisionEvidence,
    ) -> ActionDecision:
        """Classify the request into one action.

        Args:
            message: The user's message
            knowledge_snippet: Knowledge context shown to the judge (truncated)
            history_text: Formatted recent conversation
            evidence: Retrieval outcome for the heuristic fallback

        Returns:
            ActionDecision satisfying its field invariants. Never raises for
            provider or parse failures.
        """
        decision = await self._decide_with_llm(message, knowledge_snippet, history_text, evidence)

        sufficient = score_knowledge(
            evidence.chunks, evidence.rag_success, evidence.knowledge_context, self.settings
        ).sufficient
        log_action_decision(decision, sufficient=sufficient)
        return decision

    async def _decide_with_llm(
        self,
        message: str,
        knowledge_snippet: str,
        history_text: str,
        evidence: DecisionEvidence,
    ) -> ActionDecision:
        if self.chat is None:
            return heuristic_decision(message, evidence, self.settings, "no decision model; ")

        prompt = build_action_decision_prompt(
            message,
            knowledge_snippet[:DECISION_SNIPPET_CHARS],
            history_text,
        )

        try:
            raw = await call_with_timeout(
                "action_decision",
                self.chat.chat(
                    DECISION_SYSTEM_PROMPT,
                    prompt,
                    max_tokens=self.settings.decision_max_tokens,
                    temperature=0.0,
                ),
                self.settings.decision_timeout_s,
            )
        except ProviderError as e:
            logger.warning("Action decision call failed, using heuristic", error=str(e))
            return heuristic_decision(message, evidence, self.settings, "decision model failed; ")
        except Exception as e:
            logger.exception(f"Unexpected error in action decision: {e}")
            return heuristic_decision(message, evidence, self.settings, "decision model failed; ")

        try:
            return parse_decision(raw, message)
        except ParseError as e:
            logger.warning(
                "Action decision unparseable, using heuristic",
                reason=e.reason,
                raw_preview=(raw or "")[:200],
            )
            return heuristic_decision(message, evidence, self.settings, "decision unparseable; ")
