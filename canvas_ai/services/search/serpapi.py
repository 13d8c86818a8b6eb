"""SerpAPI web search provider."""

import asyncio
from typing import Any

import httpx
from loguru import logger

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.errors import ProviderError
from canvas_ai.rag.web.search import extract_domain
from canvas_ai.services.search.page_content import fetch_page_text

HTTP_TIMEOUT = 15.0


class SerpApiSearchProvider:
    """Google results through SerpAPI, localized for Korean users.

    Rows carry a rank-based ``relevanceScore`` of ``1 - 0.1 * index``. Snippets
    of the top results are replaced with text extracted from their pages when
    the page can be fetched.
    """

    def __init__(
        self,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ):
        cfg = settings or default_settings
        self.api_key = api_key or cfg.serpapi_key
        if not self.api_key:
            raise ValueError("SERPAPI_KEY must be set")
        self.url = cfg.serpapi_url
        self.client = client or httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        self.enrich_top_n = cfg.web_enrich_top_n
        self.enrich_max_chars = cfg.web_enrich_max_chars
        self.page_timeout_s = cfg.page_fetch_timeout_s

    async def aclose(self) -> None:
        await self.client.aclose()

    async def search(self, query: str, limit: int) -> list[dict[str, Any]]:
        params = {
            "q": query,
            "hl": "ko",
            "gl": "kr",
            "num": str(limit),
            "api_key": self.api_key,
        }

        try:
            response = await self.client.get(self.url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError("web_search", f"SerpAPI returned {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            raise ProviderError("web_search", f"SerpAPI request failed: {e}") from e

        if data.get("error"):
            raise ProviderError("web_search", f"SerpAPI error: {data['error']}")

        organic = data.get("organic_results") or []
        logger.debug("SerpAPI search completed", query=query, organic_results=len(organic))

        rows: list[dict[str, Any]] = []
        for index, item in enumerate(organic[:limit]):
            link = item.get("link") or ""
            rows.append(
                {
                    "title": item.get("title") or "",
                    "link": link,
                    "snippet": item.get("snippet") or "",
                    "source": extract_domain(link) if link else None,
                    "relevanceScore": round(max(0.0, 1.0 - index * 0.1), 2),
                }
            )

        if self.enrich_top_n > 0:
            await self._enrich(rows[: self.enrich_top_n])
        return rows

    async def _enrich(self, rows: list[dict[str, Any]]) -> None:
        """Replace snippets of the given rows with extracted page text, best effort."""
        targets = [row for row in rows if row["link"]]
        texts = await asyncio.gather(
            *(fetch_page_text(self.client, row["link"], self.page_timeout_s, self.enrich_max_chars) for row in targets),
            return_exceptions=True,
        )

        enriched = 0
        for row, text in zip(targets, texts):
            if isinstance(text, BaseException):
                logger.debug("Page enrichment failed", url=row["link"], error=str(text))
                continue
            if text:
                row["snippet"] = text
                enriched += 1
        logger.debug("SerpAPI results enriched", attempted=len(targets), enriched=enriched)
