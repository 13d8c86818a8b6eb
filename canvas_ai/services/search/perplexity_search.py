"""Web search through Perplexity, used when no SerpAPI key is configured."""

from typing import Any

from loguru import logger

from canvas_ai.rag.jsonutil import extract_json_object
from canvas_ai.rag.errors import ParseError
from canvas_ai.rag.protocols import AgenticChatProvider
from canvas_ai.rag.web.search import extract_domain

SEARCH_MAX_TOKENS = 1200


def build_search_prompt(limit: int) -> str:
    return f"""당신은 웹 검색 결과를 간결한 JSON으로만 반환하는 도우미입니다.
반드시 아래 JSON 스키마를 지키세요. 여분의 텍스트, 마크다운, 설명, 코드블록 없이 순수 JSON만 반환합니다.
{{
  "results": [
    {{ "title": string, "link": string, "snippet": string, "source": string }}
  ]
}}
결과는 최대 {limit}개입니다. snippet은 160자 이내 한국어 요약으로 작성하세요."""


class PerplexitySearchProvider:
    """Asks the agentic provider for structured search results.

    Unparseable output yields no results rather than an error.
    """

    def __init__(self, agentic: AgenticChatProvider):
        self.agentic = agentic

    async def search(self, query: str, limit: int) -> list[dict[str, Any]]:
        answer = await self.agentic.chat(
            build_search_prompt(limit),
            query,
            max_tokens=SEARCH_MAX_TOKENS,
            temperature=0.2,
        )

        try:
            data = extract_json_object(answer.content)
        except ParseError as e:
            logger.warning("Perplexity search results unparseable", reason=e.reason)
            return []

        items = data.get("results")
        if not isinstance(items, list):
            return []

        rows: list[dict[str, Any]] = []
        for item in items:
            if not isinstance(item, dict) or not isinstance(item.get("link"), str) or not item["link"]:
                continue
            link = item["link"]
            rows.append(
                {
                    "title": item.get("title") or "No title",
                    "link": link,
                    "snippet": item.get("snippet") or "",
                    "source": item.get("source") or extract_domain(link),
                }
            )
        return rows[:limit]
