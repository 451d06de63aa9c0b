"""Hybrid (vector + metadata filter) search on top of a search backend."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Mapping, Protocol, Sequence

from groundrag.models import EmbeddingVector, SearchCandidate


@dataclass(frozen=True)
class SearchConfig:
    """Configuration for hybrid search."""

    top_k: int = 5
    max_k: int = 100
    overfetch_factor: int = 4


class SearchBackend(Protocol):
    """Vector index able to return the nearest chunks for a query vector."""

    supports_filters: bool

    def query(
        self,
        vector: EmbeddingVector,
        *,
        k: int,
        filters: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Sequence[SearchCandidate]:
        """Return up to ``k`` candidates, optionally filtered server-side."""


class HybridSearchClient:
    """Ranks and filters candidates from a search backend deterministically.

    When the backend cannot filter on metadata, the client over-fetches
    ``min(max_k, k * overfetch_factor)`` unfiltered results and filters them
    locally so that recall survives the post-filter.
    """

    def __init__(self, backend: SearchBackend, config: SearchConfig | None = None) -> None:
        self._backend = backend
        self._config = config or SearchConfig()

    def search(
        self,
        vector: EmbeddingVector,
        filters: Mapping[str, str] | None = None,
        k: int | None = None,
        *,
        timeout: float | None = None,
    ) -> list[SearchCandidate]:
        limit = max(1, min(k or self._config.top_k, self._config.max_k))
        active = {key: str(value) for key, value in (filters or {}).items() if value is not None}
        server_side = bool(active) and self._backend.supports_filters
        fetch = limit
        if active and not server_side:
            fetch = min(self._config.max_k, limit * self._config.overfetch_factor)
        raw = self._backend.query(
            vector,
            k=fetch,
            filters=active if server_side else None,
            timeout=timeout,
        )
        candidates = [_clamp_similarity(candidate) for candidate in raw]
        if active:
            candidates = [candidate for candidate in candidates if _matches(candidate, active)]
        return rank_candidates(candidates)[:limit]


def rank_candidates(candidates: Sequence[SearchCandidate]) -> list[SearchCandidate]:
    """Order by descending similarity, ties broken by ascending id."""

    return sorted(candidates, key=lambda candidate: (-candidate.similarity, candidate.id))


def _matches(candidate: SearchCandidate, filters: Mapping[str, str]) -> bool:
    metadata = candidate.metadata.as_dict()
    return all(metadata.get(key) == value for key, value in filters.items())


def _clamp_similarity(candidate: SearchCandidate) -> SearchCandidate:
    score = candidate.similarity
    if 0.0 <= score <= 1.0:
        return candidate
    return replace(candidate, similarity=min(1.0, max(0.0, score)))
