"""Observability helpers for groundrag."""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Iterable

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()
    _correlation_id_var.set("-")


def get_correlation_id() -> str:
    return _correlation_id_var.get()


def get_logger(name: str = "groundrag") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def _clamp_score(score: float) -> float:
    if score < 0.0:
        return 0.0
    if score > 1.0:
        return 1.0
    return score


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    stage_latency = Histogram(
        "groundrag_stage_duration_seconds",
        "Time spent in each pipeline stage, retries included.",
        ["stage"],
        buckets=(0.01, 0.05, 0.1, 0.3, 0.5, 1.0, 2.0, 5.0),
    )
    stage_retries = Counter(
        "groundrag_stage_retries_total",
        "Retries issued per pipeline stage.",
        ["stage"],
    )
    stage_failures = Counter(
        "groundrag_stage_failures_total",
        "Terminal stage failures by error kind.",
        ["stage", "kind"],
    )
    retrieved_candidate_count = Histogram(
        "groundrag_retrieved_candidate_count",
        "Number of candidates returned by hybrid search.",
        buckets=(0, 1, 2, 3, 5, 8, 13, 21),
    )
    similarity_score = Histogram(
        "groundrag_similarity_score",
        "Similarity of retrieved candidates.",
        buckets=(0.0, 0.25, 0.5, 0.75, 0.9, 1.0),
    )
    context_dropped = Counter(
        "groundrag_context_dropped_total",
        "Candidates left out of the grounding context.",
        ["reason"],
    )
    confidence = Histogram(
        "groundrag_answer_confidence",
        "Confidence of produced answers.",
        buckets=(0.0, 0.2, 0.5, 0.7, 0.9, 1.0),
    )
    escalations = Counter(
        "groundrag_escalations_total",
        "Escalation outcomes.",
        ["outcome"],
    )
    degraded_results = Counter(
        "groundrag_degraded_results_total",
        "Queries answered with a degraded result.",
        ["reason"],
    )
    request_latency = Histogram(
        "groundrag_request_duration_seconds",
        "End-to-end pipeline latency.",
        buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 8.0),
    )

    @classmethod
    def observe_stage(cls, stage: str, duration_seconds: float) -> None:
        cls.stage_latency.labels(stage=stage).observe(duration_seconds)

    @classmethod
    def observe_retrieval(cls, candidate_count: int, scores: Iterable[float]) -> None:
        cls.retrieved_candidate_count.observe(candidate_count)
        for score in scores:
            cls.similarity_score.observe(_clamp_score(score))

    @classmethod
    def observe_result(cls, duration_seconds: float, confidence: float, *, escalated: bool, suggested: bool) -> None:
        cls.request_latency.observe(duration_seconds)
        cls.confidence.observe(_clamp_score(confidence))
        if escalated:
            cls.escalations.labels(outcome="escalated").inc()
        elif suggested:
            cls.escalations.labels(outcome="suggested").inc()
        else:
            cls.escalations.labels(outcome="none").inc()


__all__ = [
    "PipelineMetrics",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
]
