"""Confidence scoring from retrieval quality and generation signals."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from groundrag.models import GeneratedAnswer, SearchCandidate

DEFAULT_UNCERTAINTY_PHRASES: tuple[str, ...] = (
    "i don't know",
    "i do not know",
    "not enough information",
    "could not find",
    "couldn't find",
    "no tengo suficiente información",
    "no pude encontrar",
    "no sé",
)


@dataclass(frozen=True)
class ScoringConfig:
    """Tunable confidence heuristics."""

    min_corroborating: int = 2
    corroboration_penalty: float = 0.15
    uncertainty_penalty: float = 0.2
    uncertainty_phrases: tuple[str, ...] = DEFAULT_UNCERTAINTY_PHRASES


class ConfidenceScorer:
    """Pure function object: identical inputs always give identical scores."""

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config = config or ScoringConfig()

    def score(self, candidates: Sequence[SearchCandidate], answer: GeneratedAnswer | None) -> float:
        if not candidates:
            return 0.0
        confidence = max(candidate.similarity for candidate in candidates)
        if len(candidates) < self._config.min_corroborating:
            confidence -= self._config.corroboration_penalty
        if answer is not None and self._is_uncertain(answer.text):
            confidence -= self._config.uncertainty_penalty
        return _clamp(confidence)

    def _is_uncertain(self, text: str) -> bool:
        lowered = text.lower()
        return any(phrase in lowered for phrase in self._config.uncertainty_phrases)


def _clamp(value: float) -> float:
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value
