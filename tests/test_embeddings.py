from __future__ import annotations

import math

import httpx
import pytest

from groundrag.embeddings import EmbeddingConfig, HashEmbeddingBackend, HttpEmbeddingClient, LangChainEmbeddingClient
from groundrag.errors import DimensionMismatchError, EmbeddingRejectedError, EmbeddingServiceError


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_hash_embedding_dim_matches_config():
    backend = HashEmbeddingBackend(EmbeddingConfig(dim=64))
    vec = backend.embed("hello world")
    assert vec.dimension == 64
    assert len(vec.values) == 64
    assert math.isclose(sum(v * v for v in vec.values), 1.0, rel_tol=1e-9)


def test_hash_embedding_is_deterministic():
    backend = HashEmbeddingBackend(EmbeddingConfig(dim=32))
    assert backend.embed("alpha") == backend.embed("alpha")
    assert backend.embed("alpha") != backend.embed("beta")


def test_http_embedding_posts_text_and_validates_dimension():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(200, json={"vector": [3.0, 4.0], "dimension": 2})

    client = HttpEmbeddingClient("http://embed.local/", EmbeddingConfig(dim=2), client=_client(handler))
    vec = client.embed("how do I refill?", timeout=0.3)
    assert seen["url"] == "http://embed.local/embed"
    assert b"how do I refill?" in seen["body"]
    assert vec.values == pytest.approx((0.6, 0.8))


def test_http_embedding_wrong_dimension_is_fatal():
    client = HttpEmbeddingClient(
        "http://embed.local",
        EmbeddingConfig(dim=3),
        client=_client(lambda request: httpx.Response(200, json={"vector": [1.0, 0.0]})),
    )
    with pytest.raises(DimensionMismatchError) as excinfo:
        client.embed("text")
    assert excinfo.value.expected == 3
    assert excinfo.value.actual == 2


def test_http_embedding_reported_dimension_must_match_vector():
    client = HttpEmbeddingClient(
        "http://embed.local",
        EmbeddingConfig(dim=2),
        client=_client(lambda request: httpx.Response(200, json={"vector": [1.0, 0.0], "dimension": 3})),
    )
    with pytest.raises(DimensionMismatchError):
        client.embed("text")


@pytest.mark.parametrize(
    ("status", "error"),
    [(500, EmbeddingServiceError), (503, EmbeddingServiceError), (400, EmbeddingRejectedError)],
)
def test_http_embedding_status_mapping(status, error):
    client = HttpEmbeddingClient(
        "http://embed.local",
        EmbeddingConfig(dim=2),
        client=_client(lambda request: httpx.Response(status)),
    )
    with pytest.raises(error):
        client.embed("text")


def test_http_embedding_timeout_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = HttpEmbeddingClient("http://embed.local", EmbeddingConfig(dim=2), client=_client(handler))
    with pytest.raises(EmbeddingServiceError):
        client.embed("text")


def test_http_embedding_malformed_body_is_rejected():
    client = HttpEmbeddingClient(
        "http://embed.local",
        EmbeddingConfig(dim=2),
        client=_client(lambda request: httpx.Response(200, json={"embedding": []})),
    )
    with pytest.raises(EmbeddingRejectedError):
        client.embed("text")


class StubLangChainEmbeddings:
    def __init__(self, values=None, error=None):
        self.values = values
        self.error = error

    def embed_query(self, text):
        if self.error:
            raise self.error
        return self.values

    def embed_documents(self, texts):
        return [self.embed_query(text) for text in texts]


def test_langchain_adapter_validates_and_wraps_errors():
    ok = LangChainEmbeddingClient(StubLangChainEmbeddings([0.0, 2.0]), EmbeddingConfig(dim=2))
    assert ok.embed("q").values == pytest.approx((0.0, 1.0))

    broken = LangChainEmbeddingClient(StubLangChainEmbeddings(error=RuntimeError("oom")), EmbeddingConfig(dim=2))
    with pytest.raises(EmbeddingServiceError):
        broken.embed("q")
