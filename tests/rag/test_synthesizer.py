"""Tests for answer synthesis and provider fallback."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from canvas_ai.rag.citations import CitationBuilder
from canvas_ai.rag.errors import ProviderError
from canvas_ai.rag.prompts import DEFAULT_SYSTEM_PROMPT_HEADER, WEB_CONTEXT_HEADER
from canvas_ai.rag.protocols import AgenticAnswer
from canvas_ai.rag.synthesis.synthesizer import APOLOGY_MESSAGE, AnswerSynthesizer, clean_markdown
from canvas_ai.rag.types import WebCitation


def failing(error: BaseException) -> AsyncMock:
    provider = AsyncMock()
    provider.chat = AsyncMock(side_effect=error)
    return provider


class TestSynthesize:
    """Tests for AnswerSynthesizer.synthesize."""

    @pytest.mark.asyncio
    async def test_primary_provider_answers(self, test_settings, answer_chat, agentic_chat):
        """Test the agentic provider is used first and its URLs become citations."""
        synthesizer = AnswerSynthesizer(answer_chat, agentic_chat, settings=test_settings)

        result = await synthesizer.synthesize("지식", "웹 결과", "", "질문")

        assert result.content == "웹 기반 답변입니다."
        assert result.provider == "agentic"
        assert [c.url for c in result.web_citations] == ["https://news.example.com/a"]
        answer_chat.chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_primary_failure_falls_back_to_chat(self, test_settings, answer_chat):
        """Test that a throwing primary still yields non-empty content."""
        synthesizer = AnswerSynthesizer(answer_chat, failing(ProviderError("perplexity", "500")), settings=test_settings)

        result = await synthesizer.synthesize("지식", "", "", "질문")

        assert result.content == "채팅 답변입니다."
        assert result.provider == "chat"
        primary_prompt = synthesizer.agentic.chat.await_args.args[0]
        fallback_prompt = answer_chat.chat.await_args.args[0]
        assert primary_prompt == fallback_prompt

    @pytest.mark.asyncio
    async def test_empty_primary_output_falls_back(self, test_settings, answer_chat):
        """Test that empty agentic output counts as a failure."""
        agentic = AsyncMock()
        agentic.chat = AsyncMock(return_value=AgenticAnswer(content="   ", citation_urls=["https://x.com"]))

        result = await AnswerSynthesizer(answer_chat, agentic, settings=test_settings).synthesize("k", "", "", "q")

        assert result.provider == "chat"
        assert result.web_citations == []

    @pytest.mark.asyncio
    async def test_total_outage_returns_apology(self, test_settings):
        """Test that both providers failing still returns content."""
        synthesizer = AnswerSynthesizer(
            failing(RuntimeError("openai down")),
            failing(RuntimeError("perplexity down")),
            settings=test_settings,
        )

        result = await synthesizer.synthesize("k", "", "", "q")

        assert result.content == APOLOGY_MESSAGE
        assert result.provider == "none"

    @pytest.mark.asyncio
    async def test_prefer_agentic_false_skips_primary(self, test_settings, answer_chat, agentic_chat):
        """Test the plain chat path."""
        result = await AnswerSynthesizer(answer_chat, agentic_chat, settings=test_settings).synthesize(
            "k", "", "", "q", prefer_agentic=False
        )

        assert result.provider == "chat"
        agentic_chat.chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_primary_timeout_falls_back(self, test_settings, answer_chat):
        """Test that a hanging primary is abandoned."""
        test_settings.synthesis_timeout_s = 0.05

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return AgenticAnswer(content="late")

        agentic = AsyncMock()
        agentic.chat = AsyncMock(side_effect=slow)

        result = await AnswerSynthesizer(answer_chat, agentic, settings=test_settings).synthesize("k", "", "", "q")

        assert result.provider == "chat"

    @pytest.mark.asyncio
    async def test_prompt_merges_contexts_and_header(self, test_settings, answer_chat):
        """Test the system prompt layout."""
        synthesizer = AnswerSynthesizer(answer_chat, None, settings=test_settings)

        await synthesizer.synthesize("지식 블록", "웹 블록", "사용자: 안녕", "질문", system_header="관리자 지시문")

        system_prompt, user_prompt = answer_chat.chat.await_args.args
        assert system_prompt.startswith("관리자 지시문")
        assert DEFAULT_SYSTEM_PROMPT_HEADER not in system_prompt
        assert f"지식 블록\n\n{WEB_CONTEXT_HEADER}\n웹 블록" in system_prompt
        assert "사용자: 안녕" in system_prompt
        assert "마크다운" in system_prompt
        assert user_prompt == "질문"

    @pytest.mark.asyncio
    async def test_blank_header_uses_default(self, test_settings, answer_chat):
        """Test that a blank admin instruction keeps the default header."""
        await AnswerSynthesizer(answer_chat, None, settings=test_settings).synthesize(
            "k", "", "", "q", system_header="   "
        )

        assert answer_chat.chat.await_args.args[0].startswith(DEFAULT_SYSTEM_PROMPT_HEADER)

    @pytest.mark.asyncio
    async def test_citation_merge_caps_at_five(self, test_settings):
        """Test existing and provider citations are merged and capped."""
        agentic = AsyncMock()
        agentic.chat = AsyncMock(
            return_value=AgenticAnswer(content="답", citation_urls=[f"https://p{i}.com" for i in range(4)])
        )
        base = [WebCitation(title=str(i), url=f"https://b{i}.com", snippet="") for i in range(3)]
        synthesizer = AnswerSynthesizer(AsyncMock(), agentic, CitationBuilder(web_limit=5), test_settings)

        result = await synthesizer.synthesize("k", "w", "", "q", web_citations=base)

        assert len(result.web_citations) == 5
        assert result.web_citations[:3] == base


class TestGenerate:
    """Tests for AnswerSynthesizer.generate."""

    @pytest.mark.asyncio
    async def test_generate_uses_chat_by_default(self, test_settings, answer_chat, agentic_chat):
        """Test summary prompts go to plain chat unless asked otherwise."""
        result = await AnswerSynthesizer(answer_chat, agentic_chat, settings=test_settings).generate("sys", "user")

        assert result.provider == "chat"
        answer_chat.chat.assert_awaited_once()
        agentic_chat.chat.assert_not_awaited()


def test_clean_markdown_strips_symbols():
    """Test heading, emphasis, quote and bullet cleanup."""
    raw = "## 요약\n**중요**: `코드`\n> 인용\n* 항목\n1. 번호"

    assert clean_markdown(raw) == "요약\n중요: 코드\n인용\n- 항목\n1. 번호"
