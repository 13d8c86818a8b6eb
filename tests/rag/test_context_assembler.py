"""Tests for knowledge context composition."""

import re
from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from conftest import make_chunk

from canvas_ai.rag.retrieve.assembler import (
    DEFAULT_TITLE,
    GLOBAL_HEADER,
    RANKED_HEADER,
    RECENT_HEADER,
    KnowledgeContextAssembler,
    compose_knowledge_context,
)
from canvas_ai.rag.types import KnowledgeDocument, KnowledgeScope, KnowledgeSearchResult

PERCENT_RE = re.compile(r"유사도: \d+\.\d%")


class TestComposeKnowledgeContext:
    """Tests for compose_knowledge_context."""

    def test_ranked_entries_have_title_and_similarity(self):
        """Test the ranked entry format."""
        chunks = [make_chunk("a", 0.97, text="환불은 14일 이내", knowledge_id="doc-1")]

        context = compose_knowledge_context(chunks, True, {"doc-1": "환불 정책"})

        assert RANKED_HEADER in context
        assert "1. [환불 정책] (유사도: 97.0%)\n환불은 14일 이내" in context

    def test_missing_title_uses_placeholder(self):
        """Test that an unknown document title degrades to the placeholder."""
        context = compose_knowledge_context([make_chunk("a", 0.8)], True, {})

        assert f"[{DEFAULT_TITLE}]" in context

    def test_global_chunks_get_their_own_block(self):
        """Test that global matches are numbered separately under their own header."""
        chunks = [
            make_chunk("g", 0.99, scope=KnowledgeScope.GLOBAL),
            make_chunk("c", 0.90),
        ]

        context = compose_knowledge_context(chunks, True)

        assert context.index(RANKED_HEADER) < context.index(GLOBAL_HEADER)
        global_block = context.split(GLOBAL_HEADER)[1]
        assert global_block.strip().startswith("1. ")

    def test_only_top_n_chunks_are_surfaced(self):
        """Test that at most eight chunks reach the context."""
        chunks = [make_chunk(str(i), 0.95 - i * 0.01) for i in range(12)]

        context = compose_knowledge_context(chunks, True, top_n=8)

        assert len(PERCENT_RE.findall(context)) == 8

    def test_fallback_has_no_similarity_annotations(self):
        """Test that the recency fallback never shows similarity percentages."""
        docs = [
            KnowledgeDocument(id="d1", title="최신 자료", content="x" * 500),
            KnowledgeDocument(id="d2", title="이전 자료", content="짧은 내용"),
        ]

        context = compose_knowledge_context([make_chunk("a", 0.99)], False, recent_documents=docs)

        assert RECENT_HEADER in context
        assert "유사도" not in context
        assert f"- 최신 자료: {'x' * 300}..." in context
        assert "- 이전 자료: 짧은 내용..." in context

    def test_nothing_to_show_is_empty(self):
        """Test that no matches and no documents yields an empty context."""
        assert compose_knowledge_context([], False) == ""


class TestKnowledgeContextAssembler:
    """Tests for KnowledgeContextAssembler lookups and degradation."""

    @pytest.mark.asyncio
    async def test_loads_titles_for_surfaced_chunks(self, test_settings, document_store):
        """Test that titles are fetched once per knowledge document."""
        document_store.get_by_ids = AsyncMock(
            return_value=[KnowledgeDocument(id="doc-1", title="환불 정책", content="...")]
        )
        chunks = [make_chunk("a", 0.97, knowledge_id="doc-1"), make_chunk("b", 0.96, knowledge_id="doc-1")]

        assembled = await KnowledgeContextAssembler(document_store, test_settings).assemble(
            "canvas-1", KnowledgeSearchResult(chunks=chunks, rag_success=True)
        )

        document_store.get_by_ids.assert_awaited_once_with(["doc-1"])
        assert assembled.titles == {"doc-1": "환불 정책"}
        assert assembled.fallback_used is False
        assert assembled.text.count("[환불 정책]") == 2

    @pytest.mark.asyncio
    async def test_title_lookup_failure_degrades_to_placeholder(self, test_settings, document_store):
        """Test that a failing document store does not fail assembly."""
        document_store.get_by_ids = AsyncMock(side_effect=RuntimeError("db down"))

        assembled = await KnowledgeContextAssembler(document_store, test_settings).assemble(
            "canvas-1", KnowledgeSearchResult(chunks=[make_chunk("a", 0.9)], rag_success=True)
        )

        assert f"[{DEFAULT_TITLE}]" in assembled.text

    @pytest.mark.asyncio
    async def test_unsuccessful_search_uses_recent_documents(self, test_settings, document_store):
        """Test the recency fallback path."""
        document_store.recent = AsyncMock(
            return_value=[KnowledgeDocument(id="d1", title="업로드", content="내용", created_at=datetime(2026, 1, 1))]
        )

        assembled = await KnowledgeContextAssembler(document_store, test_settings).assemble(
            "canvas-1", KnowledgeSearchResult(chunks=[], rag_success=False)
        )

        document_store.recent.assert_awaited_once_with("canvas-1", 8)
        assert assembled.fallback_used is True
        assert assembled.surfaced_chunks == []
        assert "유사도" not in assembled.text
        assert "- 업로드: 내용..." in assembled.text

    @pytest.mark.asyncio
    async def test_recent_lookup_failure_leaves_context_empty(self, test_settings, document_store):
        """Test that the fallback itself degrades to an empty context."""
        document_store.recent = AsyncMock(side_effect=RuntimeError("db down"))

        assembled = await KnowledgeContextAssembler(document_store, test_settings).assemble(
            "canvas-1", KnowledgeSearchResult(chunks=[], rag_success=False)
        )

        assert assembled.text == ""
