"""Tests for the web search client, search gate and result formatting."""

from unittest.mock import AsyncMock

import pytest

from canvas_ai.rag.errors import ProviderError
from canvas_ai.rag.types import WebSearchResult
from canvas_ai.rag.web.search import (
    NO_RESULTS_TEXT,
    WebSearchClient,
    extract_domain,
    format_search_results,
    should_search,
)


class TestShouldSearch:
    """Tests for the keyword gate."""

    @pytest.mark.parametrize(
        "message",
        [
            "오늘 환율이 어떻게 되나요?",
            "환불 정책은？",
            "요즘 유행하는 마케팅 기법 알려줘",
            "최신 아이폰 가격",
            "경쟁사 자료 검색해줘",
            "what is the latest GPT release",
            "Tell me the news about Nvidia",
        ],
    )
    def test_triggers(self, message):
        """Test questions, recency words and explicit search requests."""
        assert should_search(message) is True

    @pytest.mark.parametrize("message", ["", "   ", "안녕하세요", "고마워요", "Thanks a lot"])
    def test_non_triggers(self, message):
        """Test greetings and empty input do not trigger a search."""
        assert should_search(message) is False

    def test_english_keywords_match_whole_words(self):
        """Test that keywords inside other words do not trigger."""
        assert should_search("somewhat showy") is False


class TestFormatSearchResults:
    """Tests for format_search_results."""

    def test_empty_results(self):
        """Test the no-results message."""
        assert format_search_results([]) == NO_RESULTS_TEXT

    def test_numbered_entries(self):
        """Test entry layout."""
        text = format_search_results(
            [WebSearchResult(title="환율 뉴스", url="https://news.example.com/fx", snippet="1달러 1,350원", source="news.example.com")]
        )

        assert text.startswith("웹 검색 결과:")
        assert "1. 환율 뉴스" in text
        assert "링크: https://news.example.com/fx" in text
        assert "내용: 1달러 1,350원" in text
        assert "출처: news.example.com" in text


class TestWebSearchClient:
    """Tests for WebSearchClient.search."""

    @pytest.mark.asyncio
    async def test_normalizes_rows(self, test_settings):
        """Test default title, derived source and dropped rows without a link."""
        provider = AsyncMock()
        provider.search = AsyncMock(
            return_value=[
                {"title": "", "link": "https://www.example.com/a", "snippet": "s"},
                {"title": "no link", "snippet": "s"},
                {"title": "ranked", "link": "https://b.example.org", "snippet": "s", "relevanceScore": 0.9},
            ]
        )

        results = await WebSearchClient(provider, test_settings).search("query", 5)

        assert [r.title for r in results] == ["No title", "ranked"]
        assert results[0].source == "example.com"
        assert results[1].relevance_score == 0.9
        provider.search.assert_awaited_once_with("query", 5)

    @pytest.mark.asyncio
    async def test_respects_limit(self, test_settings, search_provider):
        """Test that results are capped at the limit."""
        results = await WebSearchClient(search_provider, test_settings).search("query", 3)

        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_provider_failure_raises_provider_error(self, test_settings):
        """Test failures are wrapped."""
        provider = AsyncMock()
        provider.search = AsyncMock(side_effect=RuntimeError("network"))

        with pytest.raises(ProviderError) as exc_info:
            await WebSearchClient(provider, test_settings).search("query")

        assert exc_info.value.stage == "web_search"

    @pytest.mark.asyncio
    async def test_blank_query_skips_provider(self, test_settings, search_provider):
        """Test that nothing is searched for a blank query."""
        assert await WebSearchClient(search_provider, test_settings).search("  ") == []
        search_provider.search.assert_not_awaited()


def test_extract_domain_strips_www():
    """Test host extraction."""
    assert extract_domain("https://www.naver.com/news?id=1") == "naver.com"
    assert extract_domain("not a url") == "not a url"
