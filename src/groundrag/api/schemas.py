"""Pydantic models for the groundrag API."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from groundrag.models import QueryResult


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QueryRequest(_CamelModel):
    question: str = Field(..., min_length=1, description="End-user question to answer")
    session_id: str = Field(..., min_length=1, description="Conversation the question belongs to")
    language: Optional[Literal["en", "es"]] = Field(
        default=None,
        description="Answer language; defaults to the session language or a detected one",
    )
    filters: Optional[Dict[str, str]] = Field(
        default=None,
        description="Exact-match metadata constraints applied to search",
    )
    top_k: Optional[int] = Field(default=None, ge=1, le=100, description="Override the number of retrieved chunks")


class CitationModel(_CamelModel):
    source_id: str
    url: str
    title: str
    excerpt: str


class QueryResponse(_CamelModel):
    response: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    sources: List[CitationModel]
    escalated: bool
    escalation_suggested: bool
    session_id: str
    language: str
    timestamp: datetime
    processing_time_ms: int
    degraded: bool = False
    escalation_reason: Optional[str] = None

    @classmethod
    def from_result(cls, result: QueryResult) -> "QueryResponse":
        return cls(
            response=result.response,
            confidence=result.confidence,
            sources=[
                CitationModel(source_id=c.source_id, url=c.url, title=c.title, excerpt=c.excerpt)
                for c in result.sources
            ],
            escalated=result.escalated,
            escalation_suggested=result.escalation_suggested,
            session_id=result.session_id,
            language=result.language.value,
            timestamp=result.timestamp,
            processing_time_ms=result.processing_time_ms,
            degraded=result.degraded,
            escalation_reason=result.escalation_reason,
        )
