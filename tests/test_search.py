from __future__ import annotations

import uuid

import chromadb
import httpx
import pytest

from groundrag.embeddings import EmbeddingConfig, HashEmbeddingBackend
from groundrag.errors import SearchServiceError, SearchTimeoutError, SearchUnavailableError
from groundrag.models import ChunkMetadata, EmbeddingVector, SearchCandidate
from groundrag.retrieval import ChromaSearchBackend, HttpSearchBackend, HybridSearchClient, SearchConfig

VECTOR = EmbeddingVector(values=(1.0, 0.0), dimension=2)


def _candidate(cid: str, similarity: float, **metadata) -> SearchCandidate:
    return SearchCandidate(id=cid, similarity=similarity, content=f"text {cid}", metadata=ChunkMetadata(**metadata))


class StubBackend:
    def __init__(self, results, supports_filters=False):
        self.results = list(results)
        self.supports_filters = supports_filters
        self.calls = []

    def query(self, vector, *, k, filters=None, timeout=None):
        self.calls.append({"k": k, "filters": filters, "timeout": timeout})
        return self.results[:k]


def test_ties_are_broken_by_ascending_id():
    backend = StubBackend([_candidate("b", 0.8), _candidate("c", 0.9), _candidate("a", 0.8)])
    results = HybridSearchClient(backend).search(VECTOR, k=3)
    assert [c.id for c in results] == ["c", "a", "b"]


def test_k_is_clamped_to_max():
    backend = StubBackend([_candidate(str(i), 0.5) for i in range(10)])
    client = HybridSearchClient(backend, SearchConfig(top_k=5, max_k=4))
    assert len(client.search(VECTOR, k=50)) == 4
    assert backend.calls[-1]["k"] == 4


def test_overfetches_and_post_filters_when_backend_cannot_filter():
    results = [_candidate(f"en-{i}", 0.9 - i * 0.01, language="en") for i in range(6)]
    results += [_candidate("es-0", 0.5, language="es"), _candidate("es-1", 0.4, language="es")]
    backend = StubBackend(results, supports_filters=False)
    client = HybridSearchClient(backend, SearchConfig(max_k=100))

    found = client.search(VECTOR, {"language": "es"}, k=2, timeout=0.3)

    assert backend.calls[0] == {"k": 8, "filters": None, "timeout": 0.3}
    assert [c.id for c in found] == ["es-0", "es-1"]


def test_server_side_filters_are_still_verified():
    backend = StubBackend(
        [_candidate("a", 0.9, language="en"), _candidate("b", 0.8, language="es")],
        supports_filters=True,
    )
    found = HybridSearchClient(backend).search(VECTOR, {"language": "es"}, k=5)
    assert backend.calls[0]["filters"] == {"language": "es"}
    assert [c.id for c in found] == ["b"]


def test_similarity_is_clamped_to_unit_range():
    backend = StubBackend([_candidate("a", 1.3), _candidate("b", -0.2)])
    found = HybridSearchClient(backend).search(VECTOR, k=2)
    assert [c.similarity for c in found] == [1.0, 0.0]


def test_chroma_backend_filters_and_ranks():
    embedder = HashEmbeddingBackend(EmbeddingConfig(dim=16))
    backend = ChromaSearchBackend(f"test-search-{uuid.uuid4().hex}", client=chromadb.EphemeralClient())
    backend.upsert(
        [
            _candidate("d1", 1.0, language="en", title="Refills"),
            _candidate("d2", 1.0, language="es", title="Recetas"),
            _candidate("d3", 1.0),
        ],
        embedder,
    )
    assert backend.count() == 3

    client = HybridSearchClient(backend)
    found = client.search(embedder.embed("text d2"), {"language": "es"}, k=3)
    assert [c.id for c in found] == ["d2"]
    assert found[0].similarity == pytest.approx(1.0, abs=1e-4)
    assert found[0].metadata.title == "Recetas"

    everything = client.search(embedder.embed("text d1"), k=3)
    assert everything[0].id == "d1"
    assert len(everything) == 3


def test_chroma_backend_empty_collection_returns_nothing():
    backend = ChromaSearchBackend(f"test-empty-{uuid.uuid4().hex}", client=chromadb.EphemeralClient())
    assert HybridSearchClient(backend).search(VECTOR, k=3) == []


def _http_backend(handler) -> HttpSearchBackend:
    return HttpSearchBackend("http://search.local", client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_http_search_parses_results():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/search"
        return httpx.Response(
            200,
            json={
                "results": [
                    {"id": "x", "score": 0.7, "metadata": {"content": "hello", "title": "T", "sourceUrl": "https://u"}},
                ],
            },
        )

    found = _http_backend(handler).query(VECTOR, k=3)
    assert found[0].content == "hello"
    assert found[0].similarity == 0.7
    assert found[0].metadata.url == "https://u"


@pytest.mark.parametrize(
    ("status", "error"),
    [
        (500, SearchServiceError),
        (503, SearchUnavailableError),
        (504, SearchTimeoutError),
        (400, SearchUnavailableError),
    ],
)
def test_http_search_status_mapping(status, error):
    with pytest.raises(error):
        _http_backend(lambda request: httpx.Response(status)).query(VECTOR, k=3)


def test_http_search_timeout_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(SearchTimeoutError):
        _http_backend(handler).query(VECTOR, k=3)
