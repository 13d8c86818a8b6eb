"""Tests for citation building and merging."""

from conftest import make_chunk

from canvas_ai.rag.citations import CitationBuilder, normalize_url
from canvas_ai.rag.types import WebCitation, WebSearchResult


class TestKnowledgeCitations:
    """Tests for build_knowledge_citations."""

    def test_caps_at_eight_and_truncates_snippets(self):
        """Test the item cap and snippet length limit."""
        chunks = [make_chunk(str(i), 0.9, text="가" * 1000) for i in range(12)]

        citations = CitationBuilder().build_knowledge_citations(chunks)

        assert len(citations) == 8
        assert all(len(c.snippet) <= 300 for c in citations)
        assert all(c.kind == "knowledge" for c in citations)

    def test_titles_and_placeholder(self):
        """Test title lookup with placeholder fallback."""
        chunks = [make_chunk("a", 0.9, knowledge_id="doc-1"), make_chunk("b", 0.8, knowledge_id="doc-2")]

        citations = CitationBuilder().build_knowledge_citations(chunks, {"doc-1": "환불 정책"})

        assert [c.title for c in citations] == ["환불 정책", "지식 항목"]
        assert citations[0].chunk_id == "a"
        assert citations[0].similarity == 0.9


class TestWebCitations:
    """Tests for build_web_citations and merge_web_citations."""

    def test_maps_results_one_to_one_capped(self):
        """Test mapping and the five-item cap."""
        results = [
            WebSearchResult(title=f"t{i}", url=f"https://e{i}.com", snippet="s", source=f"e{i}.com", relevance_score=0.5)
            for i in range(7)
        ]

        citations = CitationBuilder().build_web_citations(results)

        assert len(citations) == 5
        assert citations[0] == WebCitation(title="t0", url="https://e0.com", snippet="s", source="e0.com", relevance_score=0.5)

    def test_merge_appends_urls_without_dedupe(self):
        """Test that duplicates are kept when dedupe is off."""
        base = [WebCitation(title="a", url="https://www.example.com/a/", snippet="s")]

        merged = CitationBuilder(dedupe=False).merge_web_citations(base, ["https://example.com/a", ""])

        assert [c.url for c in merged] == ["https://www.example.com/a/", "https://example.com/a"]
        assert merged[1].title == "example.com"
        assert merged[1].source == "example.com"

    def test_merge_dedupes_normalized_urls_when_enabled(self):
        """Test that normalized duplicates collapse when dedupe is on."""
        base = [WebCitation(title="a", url="https://www.example.com/a/", snippet="s")]

        merged = CitationBuilder(dedupe=True).merge_web_citations(base, ["http://example.com/a", "https://other.com"])

        assert [c.url for c in merged] == ["https://www.example.com/a/", "https://other.com"]

    def test_merge_caps_at_limit(self):
        """Test the merged list never exceeds the cap."""
        base = [WebCitation(title=str(i), url=f"https://b{i}.com", snippet="") for i in range(4)]

        merged = CitationBuilder(web_limit=5).merge_web_citations(base, [f"https://p{i}.com" for i in range(4)])

        assert len(merged) == 5
        assert merged[-1].url == "https://p0.com"


def test_normalize_url():
    """Test scheme, www, case and trailing slash are ignored."""
    assert normalize_url("https://WWW.Example.com/path/") == normalize_url("http://example.com/path")
    assert normalize_url("https://example.com/p?q=1") != normalize_url("https://example.com/p?q=2")
