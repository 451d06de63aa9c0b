"""Context assembly: deduplicate and budget retrieved candidates."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Literal, Sequence

from groundrag.models import AssembledContext, DropReason, DroppedCandidate, SearchCandidate


@dataclass(frozen=True)
class AssemblyConfig:
    """Configuration for context assembly."""

    budget: int = 6000
    unit: Literal["chars", "tokens"] = "chars"
    duplicate_threshold: float = 0.95


def normalize_text(raw: str) -> str:
    normalized = unicodedata.normalize("NFKC", raw)
    normalized = normalized.replace("\u00a0", " ")
    normalized = re.sub(r"\s+", " ", normalized)
    return normalized.strip().lower()


def overlap_ratio(left: str, right: str, floor: float = 0.0) -> float:
    """Similarity of two normalized texts in [0, 1].

    Pairs whose cheap upper bound is already below ``floor`` score 0.0 without
    the full comparison.
    """

    if left == right:
        return 1.0
    if not left or not right:
        return 0.0
    matcher = SequenceMatcher(None, left, right, autojunk=False)
    if matcher.real_quick_ratio() < floor or matcher.quick_ratio() < floor:
        return 0.0
    return matcher.ratio()


class ContextAssembler:
    """Builds the grounding context from ranked candidates."""

    def __init__(self, config: AssemblyConfig | None = None) -> None:
        self._config = config or AssemblyConfig()

    def measure(self, text: str) -> int:
        if self._config.unit == "tokens":
            return len(text.split())
        return len(text)

    def assemble(self, candidates: Sequence[SearchCandidate], budget: int | None = None) -> AssembledContext:
        """Retain candidates in ranking order until the budget is full.

        Near-duplicates of an already retained chunk are skipped. The first
        candidate that does not fit ends assembly; chunks are never cut.
        """

        limit = self._config.budget if budget is None else budget
        retained: list[SearchCandidate] = []
        kept_texts: list[str] = []
        dropped: list[DroppedCandidate] = []
        used = 0
        for index, candidate in enumerate(candidates):
            normalized = normalize_text(candidate.content)
            if self._is_duplicate(normalized, kept_texts):
                dropped.append(DroppedCandidate(candidate.id, DropReason.DUPLICATE))
                continue
            size = self.measure(candidate.content)
            if used + size > limit:
                dropped.extend(
                    DroppedCandidate(rest.id, DropReason.SIZE_LIMIT) for rest in candidates[index:]
                )
                break
            retained.append(candidate)
            kept_texts.append(normalized)
            used += size
        return AssembledContext(
            chunks=tuple(retained),
            dropped=tuple(dropped),
            budget=limit,
            used=used,
            unit=self._config.unit,
        )

    def _is_duplicate(self, normalized: str, kept: Sequence[str]) -> bool:
        threshold = self._config.duplicate_threshold
        return any(overlap_ratio(normalized, other, threshold) >= threshold for other in kept)
