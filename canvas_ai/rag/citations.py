"""Citation records for knowledge chunks and web results.

Citations are best-effort provenance: they may not all be referenced in the
final answer text.
"""

from urllib.parse import urlparse

from canvas_ai.rag.types import KnowledgeChunk, KnowledgeCitation, WebCitation, WebSearchResult
from canvas_ai.rag.web.search import extract_domain

DEFAULT_TITLE = "지식 항목"


def normalize_url(url: str) -> str:
    """Normalize a URL for duplicate detection (scheme, www, case, trailing slash)."""
    parsed = urlparse(url.strip())
    host = parsed.netloc.lower().removeprefix("www.")
    path = parsed.path.rstrip("/")
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{host}{path}{query}"


class CitationBuilder:
    """Turns retrieval output into citation records."""

    def __init__(
        self,
        knowledge_limit: int = 8,
        web_limit: int = 5,
        snippet_chars: int = 300,
        dedupe: bool = False,
    ):
        self.knowledge_limit = knowledge_limit
        self.web_limit = web_limit
        self.snippet_chars = snippet_chars
        self.dedupe = dedupe

    def build_knowledge_citations(
        self,
        chunks: list[KnowledgeChunk],
        titles: dict[str, str] | None = None,
    ) -> list[KnowledgeCitation]:
        """Cite the top chunks, truncating snippets.

        Args:
            chunks: Ranked chunks
            titles: knowledge_id -> title; missing titles use a placeholder

        Returns:
            At most ``knowledge_limit`` citations
        """
        titles = titles or {}
        return [
            KnowledgeCitation(
                chunk_id=chunk.id,
                knowledge_id=chunk.knowledge_id,
                title=titles.get(chunk.knowledge_id) or DEFAULT_TITLE,
                snippet=(chunk.text or "")[: self.snippet_chars],
                similarity=chunk.similarity,
            )
            for chunk in chunks[: self.knowledge_limit]
        ]

    def build_web_citations(self, results: list[WebSearchResult]) -> list[WebCitation]:
        return [
            WebCitation(
                title=r.title,
                url=r.url,
                snippet=r.snippet,
                source=r.source,
                relevance_score=r.relevance_score,
            )
            for r in results[: self.web_limit]
        ]

    def merge_web_citations(self, base: list[WebCitation], urls: list[str]) -> list[WebCitation]:
        """Append provider-reported URLs to existing web citations, capped.

        With ``dedupe`` enabled, URLs equal after normalization are kept once
        (first occurrence wins).
        """
        merged = list(base)
        for url in urls:
            url = (url or "").strip()
            if not url:
                continue
            domain = extract_domain(url)
            merged.append(WebCitation(title=domain, url=url, snippet="", source=domain))

        if self.dedupe:
            seen: set[str] = set()
            unique: list[WebCitation] = []
            for citation in merged:
                key = normalize_url(citation.url)
                if key in seen:
                    continue
                seen.add(key)
                unique.append(citation)
            merged = unique

        return merged[: self.web_limit]
