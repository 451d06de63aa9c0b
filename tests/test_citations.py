from __future__ import annotations

from groundrag.models import AssembledContext, ChunkMetadata, SearchCandidate
from groundrag.services.citations import UNKNOWN_TITLE, UNKNOWN_URL, CitationConfig, CitationFormatter


def _context(*chunks: SearchCandidate) -> AssembledContext:
    return AssembledContext(chunks=tuple(chunks), dropped=(), budget=1000, used=0)


def test_one_citation_per_chunk_in_order():
    context = _context(
        SearchCandidate("b", 0.9, "Second passage", ChunkMetadata(url="https://b", title="B")),
        SearchCandidate("a", 0.8, "First passage", ChunkMetadata(url="https://a", title="A")),
    )
    citations = CitationFormatter().format(context)
    assert [c.source_id for c in citations] == ["b", "a"]
    assert citations[0].url == "https://b"
    assert citations[0].title == "B"


def test_missing_metadata_uses_placeholders():
    citations = CitationFormatter().format(_context(SearchCandidate("x", 0.5, "Body")))
    assert citations[0].url == UNKNOWN_URL
    assert citations[0].title == UNKNOWN_TITLE


def test_excerpt_is_truncated_with_ellipsis():
    formatter = CitationFormatter(CitationConfig(excerpt_chars=10))
    assert formatter.excerpt("short") == "short"
    assert formatter.excerpt("one  two\nthree four five") == "one two th..."


def test_empty_context_has_no_citations():
    assert CitationFormatter().format(_context()) == []
