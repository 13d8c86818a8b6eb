"""Query embedding.

``EmbeddingClient`` turns a message into a fixed-length vector. It performs
no retries: a failure means no embedding is available and retrieval takes the
recency fallback path.
"""

from loguru import logger
from openai import AsyncOpenAI

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.deadline import call_with_timeout
from canvas_ai.rag.errors import ProviderError
from canvas_ai.rag.protocols import EmbeddingProvider


class OpenAIEmbeddingProvider:
    """Embedding provider backed by the OpenAI embeddings API."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        settings: Settings | None = None,
    ):
        cfg = settings or default_settings
        self.client = client or AsyncOpenAI(api_key=cfg.openai_api_key)
        self.model = model or cfg.openai_embeddings_model

    async def embed(self, text: str) -> list[float]:
        response = await self.client.embeddings.create(
            model=self.model,
            input=[text],
        )
        return list(response.data[0].embedding)


class EmbeddingClient:
    """Embeds query text with dimension checking and a per-call timeout."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        settings: Settings | None = None,
    ):
        cfg = settings or default_settings
        self.provider = provider
        self.dimension = cfg.embedding_dim
        self.timeout_s = cfg.embedding_timeout_s

    async def embed(self, text: str) -> list[float]:
        """Embed a single query string.

        Args:
            text: Query text to embed

        Returns:
            Embedding vector of the configured dimension

        Raises:
            ProviderError: If the provider fails, times out, or returns a
                vector of the wrong dimension
        """
        if not text.strip():
            raise ProviderError("embedding", "Cannot embed empty text")

        try:
            vector = await call_with_timeout("embedding", self.provider.embed(text), self.timeout_s)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError("embedding", f"Failed to generate query embedding: {e}") from e

        if len(vector) != self.dimension:
            raise ProviderError(
                "embedding",
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(vector)}",
            )

        logger.debug("Query embedded", dimension=len(vector), text_length=len(text))
        return vector
