"""Service layer orchestrations for groundrag."""

from .assembly import AssemblyConfig, ContextAssembler
from .citations import CitationConfig, CitationFormatter
from .escalation import EscalationConfig, EscalationPolicy
from .generation import (
    AnswerGenerator,
    GenerationBackend,
    GenerationConfig,
    HttpGenerationBackend,
    PromptBuilder,
    PromptBuilderConfig,
    TemplateGenerator,
)
from .query import PipelineConfig, PipelineStage, QueryPipeline, StageTimeouts
from .scoring import ConfidenceScorer, ScoringConfig
from .session import HttpSessionStore, InMemorySessionStore, SessionStore

__all__ = [
    "AnswerGenerator",
    "AssemblyConfig",
    "CitationConfig",
    "CitationFormatter",
    "ConfidenceScorer",
    "ContextAssembler",
    "EscalationConfig",
    "EscalationPolicy",
    "GenerationBackend",
    "GenerationConfig",
    "HttpGenerationBackend",
    "HttpSessionStore",
    "InMemorySessionStore",
    "PipelineConfig",
    "PipelineStage",
    "PromptBuilder",
    "PromptBuilderConfig",
    "QueryPipeline",
    "ScoringConfig",
    "SessionStore",
    "StageTimeouts",
    "TemplateGenerator",
]
