"""Web search wrapper, heuristic search gate, and prompt formatting."""

import re
from typing import Any
from urllib.parse import urlparse

from loguru import logger

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.deadline import call_with_timeout
from canvas_ai.rag.errors import ProviderError
from canvas_ai.rag.protocols import WebSearchProvider
from canvas_ai.rag.types import WebSearchResult

NO_RESULTS_TEXT = "검색 결과가 없습니다."
RESULTS_HEADER = "웹 검색 결과:"

INTERROGATIVE_KEYWORDS = ("어떻게", "무엇", "뭐", "언제", "어디", "왜", "누구", "얼마")
RECENCY_KEYWORDS = ("최신", "최근", "오늘", "현재", "요즘", "뉴스")
SEARCH_KEYWORDS = ("검색", "찾아")
ENGLISH_KEYWORD_RE = re.compile(
    r"\b(how|what|when|where|why|which|who|recent|latest|today|current|news|search)\b",
    re.IGNORECASE,
)


def should_search(message: str) -> bool:
    """Cheap check for whether a message looks like it needs the web.

    True for questions (trailing ``?``), interrogatives, recency words, or an
    explicit request to search, in Korean or English.
    """
    text = message.strip()
    if not text:
        return False
    if text.endswith(("?", "？")):
        return True
    if any(kw in text for kw in INTERROGATIVE_KEYWORDS + RECENCY_KEYWORDS + SEARCH_KEYWORDS):
        return True
    return ENGLISH_KEYWORD_RE.search(text) is not None


def extract_domain(url: str) -> str:
    """Return the URL host without a leading ``www.``; the input itself if unparseable."""
    host = urlparse(url).netloc or url
    return host.removeprefix("www.")


def _to_result(row: dict[str, Any]) -> WebSearchResult | None:
    url = str(row.get("link") or row.get("url") or "").strip()
    if not url:
        return None

    relevance = row.get("relevanceScore", row.get("relevance_score"))
    try:
        relevance_score = float(relevance) if relevance is not None else None
    except (TypeError, ValueError):
        relevance_score = None

    return WebSearchResult(
        title=str(row.get("title") or "").strip() or "No title",
        url=url,
        snippet=str(row.get("snippet") or "").strip(),
        source=str(row.get("source") or "").strip() or extract_domain(url),
        relevance_score=relevance_score,
    )


def format_search_results(results: list[WebSearchResult]) -> str:
    """Format web results as a numbered block for prompts."""
    if not results:
        return NO_RESULTS_TEXT

    entries = []
    for idx, result in enumerate(results, start=1):
        entry = f"{idx}. {result.title}\n   링크: {result.url}\n   내용: {result.snippet}"
        if result.source:
            entry += f"\n   출처: {result.source}"
        entries.append(entry)

    return f"{RESULTS_HEADER}\n\n" + "\n\n".join(entries)


class WebSearchClient:
    """Query to ranked web results."""

    def __init__(self, provider: WebSearchProvider, settings: Settings | None = None):
        self.provider = provider
        self.settings = settings or default_settings

    def should_search(self, message: str) -> bool:
        return should_search(message)

    async def search(self, query: str, limit: int | None = None) -> list[WebSearchResult]:
        """Run a web search.

        Args:
            query: Search query
            limit: Maximum number of results (defaults to settings)

        Returns:
            Normalized results in provider rank order

        Raises:
            ProviderError: If the provider fails or times out
        """
        limit = limit or self.settings.web_result_limit
        if not query.strip():
            return []

        try:
            rows = await call_with_timeout(
                "web_search",
                self.provider.search(query, limit),
                self.settings.web_search_timeout_s,
            )
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError("web_search", f"Web search failed: {e}") from e

        results = [r for row in rows or [] if (r := _to_result(row)) is not None]
        logger.debug("Web search completed", query=query, results=len(results))
        return results[:limit]
