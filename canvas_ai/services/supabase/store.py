"""Supabase (PostgREST) knowledge store.

Vector matches go through the ``match_knowledge_chunks`` and
``match_global_knowledge_chunks`` RPCs; documents are read from the
``canvas_knowledge`` and ``global_ai_knowledge`` tables.
"""

import asyncio
from datetime import datetime
from typing import Any

import httpx
from loguru import logger

from canvas_ai.config.settings import Settings, settings as default_settings
from canvas_ai.rag.errors import ProviderError
from canvas_ai.rag.types import KnowledgeDocument, KnowledgeScope

HTTP_TIMEOUT = 10.0

CANVAS_MATCH_RPC = "match_knowledge_chunks"
GLOBAL_MATCH_RPC = "match_global_knowledge_chunks"
CANVAS_TABLE = "canvas_knowledge"
GLOBAL_TABLE = "global_ai_knowledge"
PROMPTS_TABLE = "rag_prompts"
DOCUMENT_COLUMNS = "id,title,content,metadata,created_at"


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _row_to_document(row: dict[str, Any], scope: KnowledgeScope) -> KnowledgeDocument:
    metadata = row.get("metadata")
    return KnowledgeDocument(
        id=str(row["id"]),
        title=str(row.get("title") or ""),
        content=str(row.get("content") or ""),
        scope=scope,
        created_at=_parse_timestamp(row.get("created_at")),
        metadata=metadata if isinstance(metadata, dict) else {},
    )


class SupabaseKnowledgeStore:
    """Vector search, document lookup and active instruction over Supabase REST."""

    def __init__(
        self,
        url: str | None = None,
        service_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ):
        cfg = settings or default_settings
        self.base_url = (url or cfg.supabase_url).rstrip("/")
        key = service_key or cfg.supabase_service_key
        if not self.base_url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        self.headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        self.client = client or httpx.AsyncClient(timeout=HTTP_TIMEOUT)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def match(
        self,
        scope: KnowledgeScope,
        canvas_id: str,
        query_embedding: list[float],
        match_count: int,
        min_similarity: float,
    ) -> list[dict[str, Any]]:
        """Run the similarity RPC for one scope.

        The RPCs order by distance but do not apply ``min_similarity``; the
        caller filters.
        """
        if scope == KnowledgeScope.GLOBAL:
            rpc = GLOBAL_MATCH_RPC
            params: dict[str, Any] = {}
        else:
            rpc = CANVAS_MATCH_RPC
            params = {"canvas_id": canvas_id}

        params.update(
            {
                "query_embedding": query_embedding,
                "match_count": match_count,
                "min_similarity": min_similarity,
            }
        )

        data = await self._request("POST", f"/rest/v1/rpc/{rpc}", json=params)
        return data if isinstance(data, list) else []

    async def get_by_ids(self, ids: list[str]) -> list[KnowledgeDocument]:
        """Look up titles and content for knowledge ids in both tables.

        The tables are read concurrently. A failed table is logged and skipped;
        ProviderError is raised only when both fail.
        """
        if not ids:
            return []

        id_filter = f"in.({','.join(ids)})"
        sources = ((CANVAS_TABLE, KnowledgeScope.CANVAS), (GLOBAL_TABLE, KnowledgeScope.GLOBAL))
        outcomes = await asyncio.gather(
            *(
                self._request("GET", f"/rest/v1/{table}", params={"select": DOCUMENT_COLUMNS, "id": id_filter})
                for table, _ in sources
            ),
            return_exceptions=True,
        )

        documents: list[KnowledgeDocument] = []
        failures: list[ProviderError] = []
        for (table, scope), outcome in zip(sources, outcomes):
            if isinstance(outcome, ProviderError):
                logger.warning("Knowledge table lookup failed, skipping", table=table, error=str(outcome))
                failures.append(outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            documents.extend(_row_to_document(row, scope) for row in outcome or [])

        if len(failures) == len(sources):
            raise failures[0]
        return documents

    async def recent(self, canvas_id: str, limit: int) -> list[KnowledgeDocument]:
        rows = await self._request(
            "GET",
            f"/rest/v1/{CANVAS_TABLE}",
            params={
                "select": DOCUMENT_COLUMNS,
                "canvas_id": f"eq.{canvas_id}",
                "order": "created_at.desc",
                "limit": str(limit),
            },
        )
        return [_row_to_document(row, KnowledgeScope.CANVAS) for row in rows or []]

    async def get_active_instruction(self) -> str:
        """Content of the most recently updated active prompt, or '' when none."""
        rows = await self._request(
            "GET",
            f"/rest/v1/{PROMPTS_TABLE}",
            params={
                "select": "content",
                "is_active": "eq.true",
                "order": "updated_at.desc",
                "limit": "1",
            },
        )
        if isinstance(rows, list) and rows and rows[0].get("content"):
            return str(rows[0]["content"])
        return ""

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self.client.request(method, f"{self.base_url}{path}", headers=self.headers, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Supabase request failed",
                path=path,
                status_code=e.response.status_code,
            )
            raise ProviderError("supabase", f"{method} {path} returned {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            raise ProviderError("supabase", f"{method} {path} failed: {e}") from e
