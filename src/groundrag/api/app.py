"""FastAPI application exposing the groundrag pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable
from uuid import uuid4

import chromadb
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from groundrag import errors
from groundrag.api.schemas import QueryRequest, QueryResponse
from groundrag.config import Settings, get_settings
from groundrag.embeddings import (
    EmbeddingBackend,
    EmbeddingConfig,
    HashEmbeddingBackend,
    HttpEmbeddingClient,
    LangChainEmbeddingClient,
)
from groundrag.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from groundrag.models import Language, Query
from groundrag.retrieval import ChromaSearchBackend, HttpSearchBackend, HybridSearchClient, SearchBackend, SearchConfig
from groundrag.services.generation import (
    AnswerGenerator,
    GenerationBackend,
    GenerationConfig,
    HttpGenerationBackend,
    TemplateGenerator,
)
from groundrag.services.query import QueryPipeline
from groundrag.services.session import HttpSessionStore


@dataclass(frozen=True)
class AppDependencies:
    pipeline: QueryPipeline


class RateLimiter:
    """Sliding-window request limiter keyed by client address and path."""

    def __init__(self, requests: int, window_seconds: int, *, clock: Callable[[], float] = time.time) -> None:
        self.requests = requests
        self.window = window_seconds
        self._clock = clock
        self._buckets: dict[str, list[float]] = {}

    def __call__(self, request: Request) -> None:
        client_ip = request.headers.get("x-forwarded-for") or (request.client.host if request.client else "-")
        key = f"{client_ip}:{request.url.path}"
        now = self._clock()
        cutoff = now - self.window
        # drop buckets whose newest hit is outside the window
        for stale in [k for k, hits in self._buckets.items() if not hits or hits[-1] < cutoff]:
            del self._buckets[stale]
        bucket = self._buckets.setdefault(key, [])
        while bucket and bucket[0] < cutoff:
            bucket.pop(0)
        if len(bucket) >= self.requests:
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
        bucket.append(now)

    def bucket_count(self) -> int:
        return len(self._buckets)


def _require(value: str | None, name: str) -> str:
    if not value:
        raise ValueError(f"GROUNDRAG_{name.upper()} must be set for the configured backend")
    return value


def _build_embedder(settings: Settings) -> EmbeddingBackend:
    config = EmbeddingConfig(model=settings.embedding_model, dim=settings.embedding_dim)
    if settings.embedding_backend == "http":
        return HttpEmbeddingClient(_require(settings.embedding_url, "embedding_url"), config)
    if settings.embedding_backend == "huggingface":
        return LangChainEmbeddingClient.huggingface(config)
    return HashEmbeddingBackend(config)


def _build_search_backend(settings: Settings) -> SearchBackend:
    if settings.search_backend == "http":
        return HttpSearchBackend(
            _require(settings.search_url, "search_url"),
            supports_filters=settings.search_supports_filters,
        )
    chroma_client = None
    if settings.chroma_host:
        chroma_client = chromadb.HttpClient(
            host=settings.chroma_host,
            port=settings.chroma_port or 8000,
            ssl=settings.chroma_ssl,
        )
    return ChromaSearchBackend(
        settings.chroma_collection,
        client=chroma_client,
        persist_directory=None if chroma_client else settings.chroma_persist_dir,
    )


def _build_generation_backend(settings: Settings) -> GenerationBackend:
    if settings.generator_backend == "http":
        return HttpGenerationBackend(
            _require(settings.generator_url, "generator_url"),
            GenerationConfig(
                max_tokens=settings.generator_max_tokens,
                temperature=settings.generator_temperature,
            ),
        )
    return TemplateGenerator()


def _build_dependencies(settings: Settings) -> AppDependencies:
    search = HybridSearchClient(
        _build_search_backend(settings),
        SearchConfig(top_k=settings.search_top_k, max_k=settings.search_max_k),
    )
    pipeline = QueryPipeline(
        _build_embedder(settings),
        search,
        generator=AnswerGenerator(_build_generation_backend(settings)),
        session_store=HttpSessionStore(settings.session_url) if settings.session_url else None,
        config=settings.pipeline_config(),
    )
    return AppDependencies(pipeline=pipeline)


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or _build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")
    app = FastAPI(title="groundrag API", version="0.1.0")
    app.state.dependencies = deps

    # Optional CORS
    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_allow_origins),
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=list(settings.cors_allow_methods),
            allow_headers=list(settings.cors_allow_headers),
        )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    rate_limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)

    @app.exception_handler(errors.ValidationError)
    async def handle_validation_error(request: Request, exc: errors.ValidationError) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.info("query.rejected", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc), "correlation_id": correlation_id},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error("unhandled.error", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error", "correlation_id": correlation_id},
        )

    def get_pipeline(request: Request) -> QueryPipeline:
        return request.app.state.dependencies.pipeline

    @app.post("/query", response_model=QueryResponse)
    def query(
        payload: QueryRequest,
        pipeline: QueryPipeline = Depends(get_pipeline),
        _rl: None = Depends(rate_limiter),
    ) -> QueryResponse:
        question = Query(
            text=payload.question,
            session_id=payload.session_id,
            language=Language.parse(payload.language),
        )
        result = pipeline.process_query(question, filters=payload.filters, top_k=payload.top_k)
        return QueryResponse.from_result(result)

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from groundrag import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.head("/healthz")
    async def healthcheck_head() -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    @app.on_event("shutdown")
    def close_pipeline() -> None:
        deps.pipeline.close()

    return app


app = create_app()
