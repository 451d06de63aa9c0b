"""Shared domain models used across the groundrag pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Mapping, Sequence

from groundrag.errors import ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Language(str, Enum):
    """Languages the assistant answers in."""

    EN = "en"
    ES = "es"

    @classmethod
    def parse(cls, value: "str | Language | None") -> "Language | None":
        if value is None or isinstance(value, Language):
            return value
        # full code with an optional region suffix, e.g. "es" or "es-MX"
        normalized = value.strip().lower().replace("_", "-").split("-", 1)[0]
        for member in cls:
            if member.value == normalized:
                return member
        return None


@dataclass(frozen=True)
class Query:
    """A user question; validated on construction and immutable afterwards."""

    text: str
    session_id: str
    language: Language | None = None
    requested_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not isinstance(self.text, str) or not self.text.strip():
            raise ValidationError("Query text must be a non-empty string")
        if not self.session_id:
            raise ValidationError("Query session_id is required")
        if self.language is not None and not isinstance(self.language, Language):
            parsed = Language.parse(self.language)
            if parsed is None:
                raise ValidationError(f"Unsupported language: {self.language!r}")
            object.__setattr__(self, "language", parsed)


@dataclass(frozen=True)
class EmbeddingVector:
    """Fixed-dimension embedding of a query string."""

    values: tuple[float, ...]
    dimension: int

    def __post_init__(self) -> None:
        if len(self.values) != self.dimension:
            raise ValueError(f"Vector has {len(self.values)} values but dimension {self.dimension}")


@dataclass(frozen=True)
class ChunkMetadata:
    """Known metadata keys attached to an indexed chunk."""

    url: str | None = None
    title: str | None = None
    section: str | None = None
    language: str | None = None
    chunk_index: int | None = None
    total_chunks: int | None = None
    extra: Mapping[str, str] = field(default_factory=dict)

    _KNOWN = ("url", "title", "section", "language", "chunk_index", "total_chunks")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "ChunkMetadata":
        raw = dict(raw or {})
        known = {key: raw.pop(key, None) for key in cls._KNOWN}
        # upstream indexes may use camelCase keys and a sourceUrl fallback
        if known["url"] is None:
            known["url"] = raw.pop("sourceUrl", None)
        if known["chunk_index"] is None:
            known["chunk_index"] = raw.pop("chunkIndex", None)
        if known["total_chunks"] is None:
            known["total_chunks"] = raw.pop("totalChunks", None)
        return cls(
            url=_opt_str(known["url"]),
            title=_opt_str(known["title"]),
            section=_opt_str(known["section"]),
            language=_opt_str(known["language"]),
            chunk_index=_opt_int(known["chunk_index"]),
            total_chunks=_opt_int(known["total_chunks"]),
            extra={str(k): str(v) for k, v in raw.items() if v is not None},
        )

    def as_dict(self) -> dict[str, str]:
        """Flat string view used for exact-match filtering and serialization."""

        flat = dict(self.extra)
        for key in self._KNOWN:
            value = getattr(self, key)
            if value is not None:
                flat[key] = str(value)
        return flat

    def get(self, key: str) -> str | None:
        return self.as_dict().get(key)


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class SearchCandidate:
    """Chunk returned by the search index for one query."""

    id: str
    similarity: float
    content: str
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)


class DropReason(str, Enum):
    DUPLICATE = "duplicate"
    SIZE_LIMIT = "size_limit"


@dataclass(frozen=True)
class DroppedCandidate:
    candidate_id: str
    reason: DropReason


@dataclass(frozen=True)
class AssembledContext:
    """Candidates retained for grounding, plus a record of what was dropped."""

    chunks: tuple[SearchCandidate, ...]
    dropped: tuple[DroppedCandidate, ...]
    budget: int
    used: int
    unit: Literal["chars", "tokens"] = "chars"

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    def dropped_for(self, reason: DropReason) -> int:
        return sum(1 for item in self.dropped if item.reason is reason)


@dataclass(frozen=True)
class GeneratedAnswer:
    text: str
    model_latency_ms: int


@dataclass(frozen=True)
class Citation:
    """Display reference for one retained context chunk."""

    source_id: str
    url: str
    title: str
    excerpt: str


@dataclass(frozen=True)
class SessionContext:
    """Read-only view of a conversation held by the session store."""

    language: Language | None = None
    prior_turns: Sequence[str] = ()


@dataclass(frozen=True)
class EscalationDecision:
    escalated: bool
    escalation_suggested: bool
    reason: str | None = None
    priority: Literal["none", "low", "medium", "high", "urgent"] = "none"


@dataclass(frozen=True)
class QueryResult:
    """Final, externally observable answer for a query."""

    response: str
    confidence: float
    sources: tuple[Citation, ...]
    escalated: bool
    escalation_suggested: bool
    session_id: str
    language: Language
    timestamp: datetime
    processing_time_ms: int
    degraded: bool = False
    escalation_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "confidence": self.confidence,
            "sources": [
                {"sourceId": c.source_id, "url": c.url, "title": c.title, "excerpt": c.excerpt}
                for c in self.sources
            ],
            "escalated": self.escalated,
            "escalationSuggested": self.escalation_suggested,
            "sessionId": self.session_id,
            "language": self.language.value,
            "timestamp": self.timestamp.isoformat(),
            "processingTimeMs": self.processing_time_ms,
            "degraded": self.degraded,
            "escalationReason": self.escalation_reason,
        }
