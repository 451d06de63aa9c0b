"""Query orchestration: embed, search, assemble, generate, score, escalate."""

from __future__ import annotations

import random
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Mapping, TypeVar

from groundrag.embeddings import EmbeddingBackend
from groundrag.errors import (
    DeadlineExceededError,
    EmbeddingServiceError,
    FatalServiceError,
    GenerationServiceError,
    GroundRAGError,
    SearchTimeoutError,
    TransientServiceError,
    ValidationError,
)
from groundrag.metrics.observability import PipelineMetrics, get_logger
from groundrag.models import Language, Query, QueryResult, SessionContext
from groundrag.resilience import Deadline, RetryPolicy, call_with_timeout
from groundrag.retrieval import HybridSearchClient
from groundrag.services.assembly import AssemblyConfig, ContextAssembler
from groundrag.services.citations import CitationConfig, CitationFormatter
from groundrag.services.escalation import EscalationConfig, EscalationPolicy
from groundrag.services.generation import AnswerGenerator
from groundrag.services.language import estimate_language
from groundrag.services.scoring import ConfidenceScorer, ScoringConfig
from groundrag.services.session import SessionStore

T = TypeVar("T")

DEGRADED_MESSAGES: Mapping[Language, str] = {
    Language.EN: (
        "I'm sorry, I couldn't answer your question right now and I'm not certain about this topic. "
        "Would you like to talk to a person?"
    ),
    Language.ES: (
        "Lo siento, no pude responder tu pregunta en este momento y no tengo certeza sobre este tema. "
        "¿Te gustaría hablar con una persona?"
    ),
}


class PipelineStage(str, Enum):
    RECEIVED = "received"
    EMBEDDING = "embedding"
    SEARCHING = "searching"
    ASSEMBLING = "assembling"
    GENERATING = "generating"
    SCORING = "scoring"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class StageTimeouts:
    """Per-stage and global budgets, in seconds."""

    embedding: float = 0.3
    search: float = 0.3
    generation: float = 2.0
    session: float = 0.2
    deadline: float = 5.0


@dataclass(frozen=True)
class PipelineConfig:
    """Everything tunable about a pipeline run, injected at construction."""

    timeouts: StageTimeouts = field(default_factory=StageTimeouts)
    embedding_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_retries=2))
    search_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_retries=2))
    generation_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_retries=1))
    assembly: AssemblyConfig = field(default_factory=AssemblyConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    escalation: EscalationConfig = field(default_factory=EscalationConfig)
    citations: CitationConfig = field(default_factory=CitationConfig)
    top_k: int = 5
    filter_by_language: bool = True
    default_language: str = "en"
    max_query_chars: int = 2000
    workers: int = 8
    degraded_messages: Mapping[Language, str] = field(default_factory=lambda: dict(DEGRADED_MESSAGES))

    def degraded_message(self, language: Language) -> str:
        return self.degraded_messages.get(language) or DEGRADED_MESSAGES[Language.EN]


class _Run:
    """Per-invocation bookkeeping; never shared between queries."""

    def __init__(self, query: Query, deadline: Deadline) -> None:
        self.query = query
        self.deadline = deadline
        self.started = time.perf_counter()
        self.stage = PipelineStage.RECEIVED
        self.language: Language | None = query.language
        self.stage_ms: dict[str, int] = {}

    def enter(self, stage: PipelineStage) -> None:
        self.stage = stage

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)


class QueryPipeline:
    """Orchestrates retrieval-augmented answering under a global deadline.

    ``process_query`` only ever raises ``ValidationError``. Every other failure
    (retries exhausted, fatal service errors, deadline expiry, unexpected bugs)
    produces a degraded ``QueryResult`` with zero confidence and an escalation
    suggestion.
    """

    def __init__(
        self,
        embedder: EmbeddingBackend,
        search: HybridSearchClient,
        *,
        generator: AnswerGenerator | None = None,
        assembler: ContextAssembler | None = None,
        scorer: ConfidenceScorer | None = None,
        escalation: EscalationPolicy | None = None,
        citations: CitationFormatter | None = None,
        session_store: SessionStore | None = None,
        config: PipelineConfig | None = None,
        executor: Executor | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config or PipelineConfig()
        self._embedder = embedder
        self._search = search
        self._generator = generator or AnswerGenerator()
        self._assembler = assembler or ContextAssembler(self._config.assembly)
        self._scorer = scorer or ConfidenceScorer(self._config.scoring)
        self._escalation = escalation or EscalationPolicy(self._config.escalation)
        self._citations = citations or CitationFormatter(self._config.citations)
        self._session_store = session_store
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self._config.workers,
            thread_name_prefix="groundrag",
        )
        self._sleep = sleep
        self._rng = rng
        self._logger = get_logger("pipeline")

    @property
    def config(self) -> PipelineConfig:
        return self._config

    def process_query(
        self,
        query: Query,
        *,
        filters: Mapping[str, str] | None = None,
        top_k: int | None = None,
    ) -> QueryResult:
        self._validate(query)
        run = _Run(query, Deadline(self._config.timeouts.deadline))
        try:
            session_future = self._start_session_lookup(query)
            return self._execute(run, session_future, filters, top_k)
        except DeadlineExceededError as exc:
            return self._degraded(run, "deadline_exceeded", exc)
        except TransientServiceError as exc:
            return self._degraded(run, "retries_exhausted", exc)
        except FatalServiceError as exc:
            return self._degraded(run, "fatal_service_error", exc)
        except Exception as exc:  # noqa: BLE001 - callers must always receive a result
            self._logger.exception("pipeline.unexpected_error", stage=run.stage.value)
            return self._degraded(run, "internal_error", exc)

    def close(self) -> None:
        if self._owns_executor and isinstance(self._executor, ThreadPoolExecutor):
            self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "QueryPipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _validate(self, query: Query) -> None:
        if len(query.text) > self._config.max_query_chars:
            raise ValidationError(f"Query text exceeds {self._config.max_query_chars} characters")

    def _execute(
        self,
        run: _Run,
        session_future: Future[SessionContext | None] | None,
        filters: Mapping[str, str] | None,
        top_k: int | None,
    ) -> QueryResult:
        query = run.query
        timeouts = self._config.timeouts

        run.enter(PipelineStage.EMBEDDING)
        vector = self._call_stage(
            run,
            lambda timeout: self._embedder.embed(query.text, timeout=timeout),
            timeout=timeouts.embedding,
            policy=self._config.embedding_retry,
            on_timeout=EmbeddingServiceError,
        )
        session = self._await_session(session_future, run)
        language = self._resolve_language(query, session)
        run.language = language

        run.enter(PipelineStage.SEARCHING)
        effective_filters = dict(filters or {})
        if self._config.filter_by_language:
            effective_filters.setdefault("language", language.value)
        candidates = self._call_stage(
            run,
            lambda timeout: self._search.search(
                vector,
                effective_filters,
                top_k or self._config.top_k,
                timeout=timeout,
            ),
            timeout=timeouts.search,
            policy=self._config.search_retry,
            on_timeout=SearchTimeoutError,
        )
        PipelineMetrics.observe_retrieval(len(candidates), (c.similarity for c in candidates))

        run.enter(PipelineStage.ASSEMBLING)
        run.deadline.check(run.stage.value)
        context = self._assembler.assemble(candidates)
        for dropped in context.dropped:
            PipelineMetrics.context_dropped.labels(reason=dropped.reason.value).inc()
        self._logger.info(
            "context.assembled",
            retrieved=len(candidates),
            retained=len(context.chunks),
            dropped=len(context.dropped),
            used=context.used,
            budget=context.budget,
        )

        run.enter(PipelineStage.GENERATING)
        answer = self._call_stage(
            run,
            lambda timeout: self._generator.generate(query.text, context, language=language, timeout=timeout),
            timeout=timeouts.generation,
            policy=self._config.generation_retry,
            on_timeout=GenerationServiceError,
        )

        run.enter(PipelineStage.SCORING)
        run.deadline.check(run.stage.value)
        confidence = self._scorer.score(context.chunks, answer)
        sources = tuple(self._citations.format(context))
        prior_turns = session.prior_turns if session else ()
        decision = self._escalation.decide(confidence, query.text, len(context.chunks), prior_turns)

        run.enter(PipelineStage.COMPLETED)
        result = QueryResult(
            response=answer.text,
            confidence=confidence,
            sources=sources,
            escalated=decision.escalated,
            escalation_suggested=decision.escalation_suggested,
            session_id=query.session_id,
            language=language,
            timestamp=datetime.now(timezone.utc),
            processing_time_ms=run.elapsed_ms(),
            escalation_reason=decision.reason,
        )
        PipelineMetrics.observe_result(
            result.processing_time_ms / 1000,
            confidence,
            escalated=result.escalated,
            suggested=result.escalation_suggested,
        )
        self._logger.info(
            "pipeline.complete",
            session_id=query.session_id,
            confidence=round(confidence, 3),
            sources=len(sources),
            escalated=result.escalated,
            escalation_suggested=result.escalation_suggested,
            escalation_reason=decision.reason,
            processing_time_ms=result.processing_time_ms,
            stage_ms=run.stage_ms,
        )
        return result

    def _call_stage(
        self,
        run: _Run,
        fn: Callable[[float], T],
        *,
        timeout: float,
        policy: RetryPolicy,
        on_timeout: Callable[[str], Exception],
    ) -> T:
        stage = run.stage.value
        attempts = 0
        start = time.perf_counter()

        def attempt() -> T:
            nonlocal attempts
            attempts += 1
            return call_with_timeout(
                self._executor,
                fn,
                timeout=timeout,
                deadline=run.deadline,
                stage=stage,
                on_timeout=on_timeout,
            )

        def on_retry(retry: int, wait: float, exc: TransientServiceError) -> None:
            PipelineMetrics.stage_retries.labels(stage=stage).inc()
            self._logger.warning("stage.retry", stage=stage, retry=retry, wait_ms=round(wait * 1000), error=str(exc))

        try:
            result = policy.call(
                attempt,
                stage=stage,
                deadline=run.deadline,
                sleep=self._sleep,
                rng=self._rng,
                on_retry=on_retry,
            )
        except GroundRAGError as exc:
            PipelineMetrics.stage_failures.labels(stage=stage, kind=type(exc).__name__).inc()
            raise
        finally:
            duration = time.perf_counter() - start
            PipelineMetrics.observe_stage(stage, duration)
            run.stage_ms[stage] = int(duration * 1000)
        self._logger.info("stage.complete", stage=stage, attempts=attempts, duration_ms=run.stage_ms[stage])
        return result

    def _start_session_lookup(self, query: Query) -> Future[SessionContext | None] | None:
        if self._session_store is None:
            return None
        store = self._session_store
        timeout = self._config.timeouts.session
        return self._executor.submit(lambda: store.get(query.session_id, timeout=timeout))

    def _await_session(self, future: Future[SessionContext | None] | None, run: _Run) -> SessionContext | None:
        # the session only seeds defaults; failing to read it never fails the query
        if future is None:
            return None
        try:
            return future.result(timeout=run.deadline.bound(self._config.timeouts.session))
        except FutureTimeoutError:
            future.cancel()
            self._logger.warning("session.timeout", session_id=run.query.session_id)
        except Exception as exc:  # noqa: BLE001 - logged and ignored
            self._logger.warning("session.unavailable", session_id=run.query.session_id, error=str(exc))
        return None

    def _resolve_language(self, query: Query, session: SessionContext | None) -> Language:
        if query.language is not None:
            return query.language
        if session is not None and session.language is not None:
            return session.language
        return estimate_language(query.text, default=self._default_language())

    def _default_language(self) -> Language:
        return Language.parse(self._config.default_language) or Language.EN

    def _degraded(self, run: _Run, reason: str, exc: BaseException) -> QueryResult:
        failed_stage = run.stage.value
        run.enter(PipelineStage.FAILED)
        query = run.query
        language = run.language or estimate_language(query.text, default=self._default_language())
        decision = self._escalation.decide_degraded(query.text)
        result = QueryResult(
            response=self._config.degraded_message(language),
            confidence=0.0,
            sources=(),
            escalated=decision.escalated,
            escalation_suggested=True,
            session_id=query.session_id,
            language=language,
            timestamp=datetime.now(timezone.utc),
            processing_time_ms=run.elapsed_ms(),
            degraded=True,
            escalation_reason=decision.reason,
        )
        PipelineMetrics.degraded_results.labels(reason=reason).inc()
        PipelineMetrics.observe_result(
            result.processing_time_ms / 1000,
            0.0,
            escalated=result.escalated,
            suggested=True,
        )
        self._logger.warning(
            "pipeline.degraded",
            session_id=query.session_id,
            reason=reason,
            failed_stage=failed_stage,
            error=str(exc),
            processing_time_ms=result.processing_time_ms,
        )
        return result
