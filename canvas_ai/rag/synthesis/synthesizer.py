"""Answer synthesis with provider fallback.

The primary agentic provider is tried first; any failure there (timeout,
network error, non-2xx, empty output) falls back to the plain chat provider
with the identical prompt. A total outage still yields a non-empty reply.
"""

import re
from dataclasses import dataclass, field
from typing import Literal

from loguru import logger

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.citations import CitationBuilder
from canvas_ai.rag.deadline import call_with_timeout
from canvas_ai.rag.errors import ProviderError
from canvas_ai.rag.logging import log_synthesis
from canvas_ai.rag.prompts import build_answer_synthesis_prompt, merge_contexts
from canvas_ai.rag.protocols import AgenticChatProvider, ChatProvider
from canvas_ai.rag.types import SynthesisResult, WebCitation

APOLOGY_MESSAGE = "죄송합니다. 지금은 답변을 생성할 수 없습니다. 잠시 후 다시 시도해 주세요."

_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE)
_QUOTE_RE = re.compile(r"^\s{0,3}>\s?", re.MULTILINE)
_BULLET_RE = re.compile(r"^(\s*)[*+]\s+", re.MULTILINE)
_EMPHASIS_RE = re.compile(r"(\*\*|__|\*|`{1,3})")


def clean_markdown(text: str) -> str:
    """Strip markdown symbols the model emitted despite the formatting rules."""
    text = _HEADING_RE.sub("", text)
    text = _QUOTE_RE.sub("", text)
    text = _BULLET_RE.sub(r"\1- ", text)
    text = _EMPHASIS_RE.sub("", text)
    return text.strip()


@dataclass(frozen=True)
class _Generation:
    content: str
    provider: Literal["agentic", "chat", "none"]
    citation_urls: list[str] = field(default_factory=list)


class AnswerSynthesizer:
    """Produces the final answer text from the assembled contexts."""

    def __init__(
        self,
        chat: ChatProvider,
        agentic: AgenticChatProvider | None = None,
        citations: CitationBuilder | None = None,
        settings: Settings | None = None,
    ):
        self.chat = chat
        self.agentic = agentic
        self.settings = settings or default_settings
        self.citations = citations or CitationBuilder(
            knowledge_limit=self.settings.knowledge_citation_limit,
            web_limit=self.settings.web_citation_limit,
            snippet_chars=self.settings.snippet_chars,
            dedupe=self.settings.citation_dedupe,
        )

    async def synthesize(
        self,
        knowledge_context: str,
        web_context: str,
        history_text: str,
        message: str,
        system_header: str | None = None,
        web_citations: list[WebCitation] | None = None,
        prefer_agentic: bool = True,
    ) -> SynthesisResult:
        """Synthesize an answer from knowledge and web context.

        Args:
            knowledge_context: Composed knowledge block
            web_context: Formatted web results ('' when none)
            history_text: Formatted recent conversation
            message: The user's message
            system_header: Admin instruction replacing the default header
            web_citations: Citations already built from web search results
            prefer_agentic: Try the agentic provider before plain chat

        Returns:
            SynthesisResult with non-empty content. Web citations include any
            URLs the agentic provider reported, capped.
        """
        system_prompt = build_answer_synthesis_prompt(
            merge_contexts(knowledge_context, web_context),
            history_text,
            message,
            system_header,
        )
        generation = await self._generate(system_prompt, message, prefer_agentic)

        merged = self.citations.merge_web_citations(list(web_citations or []), generation.citation_urls)

        log_synthesis(
            provider=generation.provider,
            content_chars=len(generation.content),
            web_citations=len(merged),
            fallback_used=prefer_agentic and generation.provider != "agentic",
        )
        return SynthesisResult(content=generation.content, web_citations=merged, provider=generation.provider)

    async def generate(self, system_prompt: str, user_prompt: str, prefer_agentic: bool = False) -> SynthesisResult:
        """Run an arbitrary prompt through the same provider fallback chain."""
        generation = await self._generate(system_prompt, user_prompt, prefer_agentic)
        web = self.citations.merge_web_citations([], generation.citation_urls)
        log_synthesis(
            provider=generation.provider,
            content_chars=len(generation.content),
            web_citations=len(web),
            fallback_used=prefer_agentic and generation.provider != "agentic",
        )
        return SynthesisResult(content=generation.content, web_citations=web, provider=generation.provider)

    async def _generate(self, system_prompt: str, user_prompt: str, prefer_agentic: bool) -> _Generation:
        cfg = self.settings

        if prefer_agentic and self.agentic is not None:
            try:
                answer = await call_with_timeout(
                    "synthesis_agentic",
                    self.agentic.chat(
                        system_prompt,
                        user_prompt,
                        max_tokens=cfg.synthesis_max_tokens,
                        temperature=cfg.synthesis_temperature,
                    ),
                    cfg.synthesis_timeout_s,
                )
                content = clean_markdown(answer.content or "")
                if not content:
                    raise ProviderError("synthesis_agentic", "Empty response")
                return _Generation(content=content, provider="agentic", citation_urls=list(answer.citation_urls))
            except Exception as e:
                logger.warning("Agentic provider failed, falling back to chat provider", error=str(e))

        try:
            raw = await call_with_timeout(
                "synthesis_chat",
                self.chat.chat(
                    system_prompt,
                    user_prompt,
                    max_tokens=cfg.synthesis_max_tokens,
                    temperature=cfg.synthesis_temperature,
                    presence_penalty=0.3,
                    frequency_penalty=0.3,
                ),
                cfg.synthesis_timeout_s,
            )
            content = clean_markdown(raw or "")
            if not content:
                raise ProviderError("synthesis_chat", "Empty response")
            return _Generation(content=content, provider="chat")
        except Exception as e:
            logger.error(f"All synthesis providers failed: {e}")
            return _Generation(content=APOLOGY_MESSAGE, provider="none")
