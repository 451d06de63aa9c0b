"""Retrieval components."""

from .service import HybridSearchClient, SearchBackend, SearchConfig, rank_candidates
from .store import ChromaSearchBackend, HttpSearchBackend

__all__ = [
    "ChromaSearchBackend",
    "HttpSearchBackend",
    "HybridSearchClient",
    "SearchBackend",
    "SearchConfig",
    "rank_candidates",
]
