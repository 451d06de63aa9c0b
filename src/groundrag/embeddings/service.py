"""Embedding clients for groundrag."""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from typing import Protocol, Sequence

import httpx
from langchain_core.embeddings import Embeddings as LangChainEmbeddings

from groundrag.errors import DimensionMismatchError, EmbeddingRejectedError, EmbeddingServiceError
from groundrag.models import EmbeddingVector

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for embedding clients."""

    model: str = "BAAI/bge-large-en-v1.5"
    dim: int = 1024
    normalize: bool = True
    device: str | None = None
    cache_folder: str | None = None


class EmbeddingBackend(Protocol):
    """Protocol describing embedding behaviour."""

    def embed(self, text: str, *, timeout: float | None = None) -> EmbeddingVector:
        """Return the embedding vector for ``text``."""


def _normalize(values: Sequence[float]) -> tuple[float, ...]:
    norm = math.sqrt(sum(value * value for value in values)) or 1.0
    return tuple(value / norm for value in values)


def _validated(values: Sequence[float], config: EmbeddingConfig) -> EmbeddingVector:
    if len(values) != config.dim:
        raise DimensionMismatchError(config.dim, len(values))
    vector = tuple(float(value) for value in values)
    if config.normalize:
        vector = _normalize(vector)
    return EmbeddingVector(values=vector, dimension=config.dim)


class HashEmbeddingBackend:
    """Deterministic lightweight embedding used for tests and offline runs."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()

    def embed(self, text: str, *, timeout: float | None = None) -> EmbeddingVector:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (self._config.dim + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[: self._config.dim]
        return _validated([byte / 255.0 for byte in raw], self._config)


class HttpEmbeddingClient:
    """Client for the external embedding service (``POST embed``)."""

    def __init__(
        self,
        base_url: str,
        config: EmbeddingConfig | None = None,
        *,
        client: httpx.Client | None = None,
    ) -> None:
        self._config = config or EmbeddingConfig()
        self._client = client or httpx.Client()
        self._url = f"{base_url.rstrip('/')}/embed"

    def embed(self, text: str, *, timeout: float | None = None) -> EmbeddingVector:
        try:
            response = self._client.post(self._url, json={"text": text}, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise EmbeddingServiceError(f"Embedding request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise EmbeddingServiceError(f"Embedding transport failure: {exc}") from exc
        if response.status_code >= 500:
            raise EmbeddingServiceError(f"Embedding service returned {response.status_code}")
        if response.status_code >= 400:
            raise EmbeddingRejectedError(f"Embedding service rejected request ({response.status_code})")
        try:
            payload = response.json()
            values = payload["vector"]
            reported = int(payload.get("dimension", len(values)))
        except (ValueError, KeyError, TypeError) as exc:
            raise EmbeddingRejectedError(f"Malformed embedding response: {exc}") from exc
        if reported != len(values):
            raise DimensionMismatchError(reported, len(values))
        return _validated(values, self._config)

    def close(self) -> None:
        self._client.close()


class LangChainEmbeddingClient:
    """Adapter exposing any LangChain ``Embeddings`` implementation."""

    def __init__(self, embeddings: LangChainEmbeddings, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()
        self._embeddings = embeddings

    @classmethod
    def huggingface(cls, config: EmbeddingConfig | None = None) -> "LangChainEmbeddingClient":
        from langchain_community.embeddings import HuggingFaceEmbeddings

        config = config or EmbeddingConfig()
        model_kwargs = {"device": config.device} if config.device else {}
        embeddings = HuggingFaceEmbeddings(
            model_name=config.model,
            model_kwargs=model_kwargs,
            cache_folder=config.cache_folder,
            encode_kwargs={"normalize_embeddings": config.normalize},
        )
        LOGGER.info("Loaded embedding model %s", config.model)
        return cls(embeddings, config)

    def embed(self, text: str, *, timeout: float | None = None) -> EmbeddingVector:
        # in-process models have no transport timeout; the caller bounds the call
        try:
            values = self._embeddings.embed_query(text)
        except Exception as exc:
            raise EmbeddingServiceError(f"Embedding model failed: {exc}") from exc
        return _validated(values, self._config)
