"""Composition root of the answering pipeline.

``build_context`` gathers evidence for a message; ``answer`` turns that
evidence into a reply. Every optional stage degrades to "contributes nothing"
instead of failing the request.
"""

import asyncio
from typing import assert_never

from loguru import logger

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.citations import CitationBuilder
from canvas_ai.rag.deadline import call_with_timeout
from canvas_ai.rag.decision.engine import ActionDecisionEngine, DecisionEvidence, heuristic_decision
from canvas_ai.rag.errors import ProviderError
from canvas_ai.rag.history import format_history
from canvas_ai.rag.logging import log_action_decision, log_web_search
from canvas_ai.rag.prompts import build_conversation_summary_prompt, build_knowledge_summary_prompt
from canvas_ai.rag.protocols import InstructionSource
from canvas_ai.rag.retrieve.assembler import KnowledgeContextAssembler
from canvas_ai.rag.retrieve.confidence import has_sufficient_knowledge
from canvas_ai.rag.retrieve.retriever import KnowledgeStore
from canvas_ai.rag.synthesis.synthesizer import APOLOGY_MESSAGE, AnswerSynthesizer
from canvas_ai.rag.types import (
    ActionDecision,
    ActionType,
    ConversationTurn,
    RAGAnswer,
    RAGResult,
    RagUsage,
    WebSearchResult,
)
from canvas_ai.rag.web.search import WebSearchClient, format_search_results

SUMMARY_USER_PROMPT = "위 내용을 요약해 주세요."


class RAGOrchestrator:
    """Runs retrieval, decision, web search, synthesis and citation for one request."""

    def __init__(
        self,
        knowledge: KnowledgeStore,
        assembler: KnowledgeContextAssembler,
        decision_engine: ActionDecisionEngine,
        web_search: WebSearchClient,
        synthesizer: AnswerSynthesizer,
        citations: CitationBuilder | None = None,
        instructions: InstructionSource | None = None,
        settings: Settings | None = None,
    ):
        self.knowledge = knowledge
        self.assembler = assembler
        self.decision_engine = decision_engine
        self.web_search = web_search
        self.synthesizer = synthesizer
        self.instructions = instructions
        self.settings = settings or default_settings
        self.citations = citations or CitationBuilder(
            knowledge_limit=self.settings.knowledge_citation_limit,
            web_limit=self.settings.web_citation_limit,
            snippet_chars=self.settings.snippet_chars,
            dedupe=self.settings.citation_dedupe,
        )

    async def build_context(self, canvas_id: str, message: str, history_text: str = "") -> RAGResult:
        """Gather knowledge and, when chosen, web evidence for a message.

        Args:
            canvas_id: Canvas whose knowledge is searched
            message: The user's message
            history_text: Formatted recent conversation

        Returns:
            RAGResult. ``rag_used.web_search_used`` is true iff ``web_context``
            is non-empty.
        """
        search = await self.knowledge.retrieve(canvas_id, message)
        assembled = await self.assembler.assemble(canvas_id, search)

        evidence = DecisionEvidence(
            chunks=search.chunks,
            rag_success=search.rag_success,
            knowledge_context=assembled.text,
        )
        decision = await self._decide(message, assembled.text, history_text, evidence)

        web_results: list[WebSearchResult] = []
        match decision.action:
            case ActionType.WEB_SEARCH:
                web_results = await self._search_web(decision.search_query or message)
            case (
                ActionType.KNOWLEDGE_ONLY
                | ActionType.CLARIFY
                | ActionType.CONVERSATION_SUMMARY
                | ActionType.KNOWLEDGE_SUMMARY
            ):
                pass
            case _:
                assert_never(decision.action)

        web_context = format_search_results(web_results) if web_results else ""

        return RAGResult(
            knowledge_context=assembled.text,
            knowledge_citations=self.citations.build_knowledge_citations(assembled.surfaced_chunks, assembled.titles),
            web_citations=self.citations.build_web_citations(web_results),
            web_context=web_context,
            rag_used=RagUsage(chunks_matched=len(search.chunks), web_search_used=bool(web_context)),
            action_decision=decision,
        )

    async def answer(
        self,
        canvas_id: str,
        message: str,
        history: list[ConversationTurn] | None = None,
        system_header: str | None = None,
    ) -> RAGAnswer:
        """Answer a message end to end within the request deadline.

        On deadline expiry a degraded answer with an empty result is returned.
        Caller cancellation propagates.
        """
        try:
            async with asyncio.timeout(self.settings.request_deadline_s):
                return await self._answer(canvas_id, message, history or [], system_header)
        except TimeoutError:
            logger.warning(
                "Request deadline exceeded, returning degraded answer",
                canvas_id=canvas_id,
                deadline_s=self.settings.request_deadline_s,
            )
            return RAGAnswer(content=APOLOGY_MESSAGE, result=RAGResult.empty(), provider="none")

    async def _answer(
        self,
        canvas_id: str,
        message: str,
        history: list[ConversationTurn],
        system_header: str | None,
    ) -> RAGAnswer:
        history_text = format_history(history, self.settings.history_turn_limit)
        header = system_header if system_header is not None else await self._active_instruction()

        result = await self.build_context(canvas_id, message, history_text)
        decision = result.action_decision
        if decision is None:
            raise ValueError("build_context returned no action decision")

        match decision.action:
            case ActionType.KNOWLEDGE_ONLY:
                synthesis = await self.synthesizer.synthesize(
                    result.knowledge_context,
                    "",
                    history_text,
                    message,
                    system_header=header,
                    prefer_agentic=False,
                )
                return RAGAnswer(content=synthesis.content, result=result, provider=synthesis.provider)

            case ActionType.WEB_SEARCH:
                synthesis = await self.synthesizer.synthesize(
                    result.knowledge_context,
                    result.web_context,
                    history_text,
                    message,
                    system_header=header,
                    web_citations=result.web_citations,
                    prefer_agentic=True,
                )
                result = RAGResult(
                    knowledge_context=result.knowledge_context,
                    knowledge_citations=result.knowledge_citations,
                    web_citations=synthesis.web_citations,
                    web_context=result.web_context,
                    rag_used=result.rag_used,
                    action_decision=decision,
                )
                return RAGAnswer(content=synthesis.content, result=result, provider=synthesis.provider)

            case ActionType.CLARIFY:
                return RAGAnswer(content=decision.clarification_question or "", result=result, provider="none")

            case ActionType.CONVERSATION_SUMMARY:
                synthesis = await self.synthesizer.generate(
                    build_conversation_summary_prompt(history_text, header),
                    SUMMARY_USER_PROMPT,
                )
                return RAGAnswer(content=synthesis.content, result=result, provider=synthesis.provider)

            case ActionType.KNOWLEDGE_SUMMARY:
                synthesis = await self.synthesizer.generate(
                    build_knowledge_summary_prompt(result.knowledge_context, header),
                    SUMMARY_USER_PROMPT,
                )
                return RAGAnswer(content=synthesis.content, result=result, provider=synthesis.provider)

            case _:
                assert_never(decision.action)

    async def _decide(
        self,
        message: str,
        knowledge_context: str,
        history_text: str,
        evidence: DecisionEvidence,
    ) -> ActionDecision:
        if self.settings.action_decision_enabled:
            return await self.decision_engine.decide(message, knowledge_context, history_text, evidence=evidence)

        # Legacy path: sufficiency first, then the keyword gate before any paid search.
        sufficient = has_sufficient_knowledge(
            evidence.chunks, evidence.rag_success, evidence.knowledge_context, self.settings
        )
        if sufficient or not self.web_search.should_search(message):
            decision = ActionDecision(
                action=ActionType.KNOWLEDGE_ONLY,
                reason="decision engine disabled; knowledge sufficient or no search signal",
                source="heuristic",
            )
        else:
            decision = heuristic_decision(message, evidence, self.settings, "decision engine disabled; ")
        log_action_decision(decision, sufficient=sufficient)
        return decision

    async def _search_web(self, query: str) -> list[WebSearchResult]:
        gate = self.web_search.should_search(query)
        try:
            results = await self.web_search.search(query, self.settings.web_result_limit)
        except ProviderError as e:
            logger.warning("Web search failed, continuing without web context", error=str(e))
            log_web_search(query, results=0, heuristic_gate=gate, failed=True)
            return []
        log_web_search(query, results=len(results), heuristic_gate=gate)
        return results

    async def _active_instruction(self) -> str | None:
        if self.instructions is None:
            return None
        try:
            return await call_with_timeout(
                "instruction_lookup",
                self.instructions.get_active_instruction(),
                self.settings.document_lookup_timeout_s,
            )
        except Exception as e:
            logger.warning("Active instruction lookup failed, using default header", error=str(e))
            return None
