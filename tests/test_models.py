from __future__ import annotations

from datetime import datetime, timezone

import pytest

from groundrag.errors import ValidationError
from groundrag.models import (
    ChunkMetadata,
    Citation,
    EmbeddingVector,
    Language,
    Query,
    QueryResult,
)


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_query_rejects_blank_text(text):
    with pytest.raises(ValidationError):
        Query(text=text, session_id="s1")


def test_query_leaves_length_limit_to_the_pipeline():
    assert len(Query(text="a" * 3000, session_id="s1").text) == 3000


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("EN", Language.EN),
        (" es ", Language.ES),
        ("es-MX", Language.ES),
        ("en_US", Language.EN),
        ("esperanto", None),
        ("enx", None),
        ("", None),
    ],
)
def test_language_parse_requires_full_code(value, expected):
    assert Language.parse(value) is expected


def test_query_requires_session_and_supported_language():
    with pytest.raises(ValidationError):
        Query(text="hello", session_id="")
    with pytest.raises(ValidationError):
        Query(text="hello", session_id="s1", language="fr")
    assert Query(text="hola", session_id="s1", language="ES").language is Language.ES


def test_embedding_vector_dimension_is_checked():
    with pytest.raises(ValueError):
        EmbeddingVector(values=(0.1, 0.2), dimension=3)


def test_chunk_metadata_accepts_camel_case_keys():
    metadata = ChunkMetadata.from_mapping(
        {"sourceUrl": "https://example.org", "chunkIndex": "2", "totalChunks": 5, "category": "faq"},
    )
    assert metadata.url == "https://example.org"
    assert metadata.chunk_index == 2
    assert metadata.total_chunks == 5
    assert metadata.as_dict() == {
        "category": "faq",
        "url": "https://example.org",
        "chunk_index": "2",
        "total_chunks": "5",
    }


def test_query_result_serializes_camel_case():
    result = QueryResult(
        response="answer",
        confidence=0.8,
        sources=(Citation("c1", "https://example.org", "Title", "excerpt"),),
        escalated=False,
        escalation_suggested=False,
        session_id="s1",
        language=Language.EN,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        processing_time_ms=12,
    )
    payload = result.to_dict()
    assert payload["escalationSuggested"] is False
    assert payload["sources"][0]["sourceId"] == "c1"
    assert payload["processingTimeMs"] == 12
    assert payload["timestamp"].startswith("2024-01-01")
