"""Runtime configuration for the groundrag services."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:  # pragma: no cover
    from groundrag.services.query import PipelineConfig


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="groundrag_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"
    default_language: Literal["en", "es"] = "en"
    max_query_chars: int = 2000

    # Embedding service
    embedding_backend: Literal["hash", "http", "huggingface"] = "hash"
    embedding_url: str | None = None
    embedding_model: str = "BAAI/bge-large-en-v1.5"
    embedding_dim: int = 1024

    # Search index
    search_backend: Literal["chroma", "http"] = "chroma"
    search_url: str | None = None
    search_supports_filters: bool = False
    search_top_k: int = 5
    search_max_k: int = 100
    search_filter_by_language: bool = True
    chroma_persist_dir: Path = Path("./.chroma")
    chroma_collection: str = "groundrag-default"
    chroma_host: str | None = None
    chroma_port: int | None = None
    chroma_ssl: bool = False

    # Generation service
    generator_backend: Literal["template", "http"] = "template"
    generator_url: str | None = None
    generator_max_tokens: int = 1000
    generator_temperature: float = 0.1

    # Session store
    session_url: str | None = None

    # Context assembly and citations
    context_budget: int = 6000
    context_budget_unit: Literal["chars", "tokens"] = "chars"
    duplicate_threshold: float = 0.95
    excerpt_chars: int = 200

    # Confidence & escalation policy
    min_corroborating: int = 2
    corroboration_penalty: float = 0.15
    uncertainty_penalty: float = 0.2
    low_confidence_threshold: float = 0.5
    hard_confidence_threshold: float = 0.2

    # Latency budget (milliseconds)
    embedding_timeout_ms: int = 300
    search_timeout_ms: int = 300
    generation_timeout_ms: int = 2000
    session_timeout_ms: int = 200
    deadline_ms: int = 5000
    retry_base_ms: int = 100
    retry_factor: float = 2.0
    retry_jitter: float = 0.25
    embedding_retries: int = 2
    search_retries: int = 2
    generation_retries: int = 1
    pipeline_workers: int = 8

    evaluation_min_recall: float = 0.5

    # CORS
    cors_allow_origins: tuple[str, ...] = ()  # e.g., ("*") to allow all
    cors_allow_credentials: bool = False
    cors_allow_methods: tuple[str, ...] = ("GET", "POST", "OPTIONS")
    cors_allow_headers: tuple[str, ...] = ("*",)

    rate_limit_requests: int = 120  # per window per client
    rate_limit_window_seconds: int = 60

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    def pipeline_config(self) -> "PipelineConfig":
        """Build the immutable pipeline configuration injected into the orchestrator."""

        from groundrag.resilience import RetryPolicy
        from groundrag.services.assembly import AssemblyConfig
        from groundrag.services.citations import CitationConfig
        from groundrag.services.escalation import EscalationConfig
        from groundrag.services.query import PipelineConfig, StageTimeouts
        from groundrag.services.scoring import ScoringConfig

        def policy(retries: int) -> RetryPolicy:
            return RetryPolicy(
                max_retries=retries,
                base_delay=self.retry_base_ms / 1000,
                factor=self.retry_factor,
                jitter=self.retry_jitter,
            )

        return PipelineConfig(
            timeouts=StageTimeouts(
                embedding=self.embedding_timeout_ms / 1000,
                search=self.search_timeout_ms / 1000,
                generation=self.generation_timeout_ms / 1000,
                session=self.session_timeout_ms / 1000,
                deadline=self.deadline_ms / 1000,
            ),
            embedding_retry=policy(self.embedding_retries),
            search_retry=policy(self.search_retries),
            generation_retry=policy(self.generation_retries),
            assembly=AssemblyConfig(
                budget=self.context_budget,
                unit=self.context_budget_unit,
                duplicate_threshold=self.duplicate_threshold,
            ),
            scoring=ScoringConfig(
                min_corroborating=self.min_corroborating,
                corroboration_penalty=self.corroboration_penalty,
                uncertainty_penalty=self.uncertainty_penalty,
            ),
            escalation=EscalationConfig(
                low_confidence_threshold=self.low_confidence_threshold,
                hard_confidence_threshold=self.hard_confidence_threshold,
            ),
            citations=CitationConfig(excerpt_chars=self.excerpt_chars),
            top_k=self.search_top_k,
            filter_by_language=self.search_filter_by_language,
            default_language=self.default_language,
            max_query_chars=self.max_query_chars,
            workers=self.pipeline_workers,
        )


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
