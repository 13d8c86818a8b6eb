"""LLM chat providers.

``OpenAIChatProvider`` is the plain chat provider (decision judge and
synthesis fallback). ``PerplexityChatProvider`` is the agentic provider: it
browses on its own and returns the URLs it used.
"""

from typing import Any

import httpx
from loguru import logger
from openai import AsyncOpenAI, OpenAIError

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.errors import ProviderError
from canvas_ai.rag.protocols import AgenticAnswer

HTTP_TIMEOUT = 60.0


class OpenAIChatProvider:
    """Chat completions through the OpenAI SDK."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        settings: Settings | None = None,
    ):
        cfg = settings or default_settings
        self.client = client or AsyncOpenAI(api_key=cfg.openai_api_key)
        self.model = model or cfg.openai_default_model

    async def chat(
        self,
        system: str,
        user: str,
        *,
        max_tokens: int,
        temperature: float,
        presence_penalty: float | None = None,
        frequency_penalty: float | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {}
        if presence_penalty is not None:
            kwargs["presence_penalty"] = presence_penalty
        if frequency_penalty is not None:
            kwargs["frequency_penalty"] = frequency_penalty

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
                **kwargs,
            )
        except OpenAIError as e:
            raise ProviderError("openai_chat", f"Chat completion failed: {e}") from e

        if not response.choices:
            raise ProviderError("openai_chat", "Chat completion returned no choices")
        return response.choices[0].message.content or ""


class PerplexityChatProvider:
    """Perplexity chat completions; the response carries a top-level ``citations`` list."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ):
        cfg = settings or default_settings
        self.api_key = api_key or cfg.perplexity_api_key
        if not self.api_key:
            raise ValueError("PERPLEXITY_API_KEY must be set")
        self.model = model or cfg.perplexity_model
        self.url = f"{cfg.perplexity_base_url}/chat/completions"
        self.client = client or httpx.AsyncClient(timeout=HTTP_TIMEOUT)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def chat(
        self,
        system: str,
        user: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> AgenticAnswer:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self.client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Perplexity request failed",
                status_code=e.response.status_code,
                body_preview=e.response.text[:200],
            )
            raise ProviderError("perplexity", f"Perplexity API returned {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            raise ProviderError("perplexity", f"Perplexity request failed: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("perplexity", "Unexpected Perplexity response shape") from e

        citations = [str(url) for url in data.get("citations") or [] if url]
        return AgenticAnswer(content=content, citation_urls=citations)
