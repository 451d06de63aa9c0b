"""Embedding clients."""

from .service import (
    EmbeddingBackend,
    EmbeddingConfig,
    HashEmbeddingBackend,
    HttpEmbeddingClient,
    LangChainEmbeddingClient,
)

__all__ = [
    "EmbeddingBackend",
    "EmbeddingConfig",
    "HashEmbeddingBackend",
    "HttpEmbeddingClient",
    "LangChainEmbeddingClient",
]
