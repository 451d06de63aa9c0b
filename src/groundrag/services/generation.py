"""Answer generation backends for groundrag."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Protocol, Sequence

import httpx

from groundrag.errors import GenerationRejectedError, GenerationServiceError
from groundrag.models import AssembledContext, GeneratedAnswer, Language

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationConfig:
    """Configuration for answer generation."""

    max_tokens: int = 1000
    temperature: float = 0.1


@dataclass(frozen=True)
class PromptBuilderConfig:
    """Configuration for prompt construction."""

    assistant_name: str = "the knowledge assistant"
    citation_prefix: str = "["
    citation_suffix: str = "]"


_LANGUAGE_INSTRUCTIONS = {
    Language.EN: "Respond in English.",
    Language.ES: "Responde en español.",
}


class PromptBuilder:
    """Builds grounding prompts for the generation backend."""

    def __init__(self, config: PromptBuilderConfig | None = None) -> None:
        self._config = config or PromptBuilderConfig()

    def render_chunks(self, context: AssembledContext) -> list[str]:
        rendered = []
        for index, chunk in enumerate(context.chunks, start=1):
            prefix = f"{self._config.citation_prefix}{index}{self._config.citation_suffix}"
            title = chunk.metadata.title or "Untitled"
            source = chunk.metadata.url or chunk.id
            rendered.append(f"{prefix} {title}\n{chunk.content}\nSource: {source}")
        return rendered

    def build(self, question: str, context: AssembledContext, language: Language = Language.EN) -> str:
        instructions = [
            _LANGUAGE_INSTRUCTIONS.get(language, _LANGUAGE_INSTRUCTIONS[Language.EN]),
            "Answer the question using ONLY the passages below.",
            "Cite passages with their [index]; never cite a source that is not listed.",
            "If the passages do not contain the answer, say so clearly.",
        ]
        if context.is_empty:
            passages = "(no passages were found)"
            instructions.append(
                "No passages are available: give a brief best-effort answer, state plainly that it is not "
                "based on verified sources, and suggest talking to a person for a reliable answer.",
            )
        else:
            passages = "\n\n".join(self.render_chunks(context))
        numbered = "\n".join(f"{index}. {line}" for index, line in enumerate(instructions, start=1))
        return (
            f"You are {self._config.assistant_name}. Provide accurate, helpful information grounded in the "
            f"supplied passages.\n\nINSTRUCTIONS:\n{numbered}\n\nPASSAGES:\n{passages}\n\n"
            f"USER QUESTION: {question}\n\nRESPONSE:"
        )


class GenerationBackend(Protocol):
    """Protocol describing the external completion service."""

    def complete(self, *, prompt: str, context_chunks: Sequence[str], timeout: float | None = None) -> str:
        """Return generated text for ``prompt``."""


class TemplateGenerator:
    """Simple deterministic generator used for tests and offline environments."""

    def complete(self, *, prompt: str, context_chunks: Sequence[str], timeout: float | None = None) -> str:
        if not context_chunks:
            return (
                "I could not find verified information about this. This answer is not based on our "
                "sources; please consider talking to a person for a reliable answer."
            )
        summary = context_chunks[0].split("\n", 2)[1] if context_chunks[0].count("\n") >= 2 else context_chunks[0]
        sources = " ".join(f"[{index}]" for index in range(1, len(context_chunks) + 1))
        return f"{summary}\n\nBased on the provided passages {sources}."


class HttpGenerationBackend:
    """Client for the external completion service (``POST generate``)."""

    def __init__(
        self,
        base_url: str,
        config: GenerationConfig | None = None,
        *,
        client: httpx.Client | None = None,
    ) -> None:
        self._config = config or GenerationConfig()
        self._client = client or httpx.Client()
        self._url = f"{base_url.rstrip('/')}/generate"

    def complete(self, *, prompt: str, context_chunks: Sequence[str], timeout: float | None = None) -> str:
        body = {
            "prompt": prompt,
            "contextChunks": list(context_chunks),
            "maxTokens": self._config.max_tokens,
            "temperature": self._config.temperature,
        }
        try:
            response = self._client.post(self._url, json=body, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise GenerationServiceError(f"Generation request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise GenerationServiceError(f"Generation transport failure: {exc}") from exc
        if response.status_code >= 500 or response.status_code == 429:
            raise GenerationServiceError(f"Generation service returned {response.status_code}")
        if response.status_code >= 400:
            raise GenerationRejectedError(f"Generation service rejected prompt ({response.status_code})")
        try:
            text = response.json()["text"]
        except (ValueError, KeyError, TypeError) as exc:
            raise GenerationRejectedError(f"Malformed generation response: {exc}") from exc
        if not isinstance(text, str):
            raise GenerationRejectedError("Generation response text is not a string")
        return text.strip()

    def close(self) -> None:
        self._client.close()


class AnswerGenerator:
    """Turns a query and its assembled context into a grounded answer."""

    def __init__(self, backend: GenerationBackend | None = None, prompt_builder: PromptBuilder | None = None) -> None:
        self._backend = backend or TemplateGenerator()
        self._prompt_builder = prompt_builder or PromptBuilder()

    def generate(
        self,
        question: str,
        context: AssembledContext,
        *,
        language: Language = Language.EN,
        timeout: float | None = None,
    ) -> GeneratedAnswer:
        prompt = self._prompt_builder.build(question, context, language)
        chunks = self._prompt_builder.render_chunks(context)
        start = time.perf_counter()
        text = self._backend.complete(prompt=prompt, context_chunks=chunks, timeout=timeout)
        latency_ms = int((time.perf_counter() - start) * 1000)
        LOGGER.debug("Generated %d characters in %dms", len(text), latency_ms)
        return GeneratedAnswer(text=text, model_latency_ms=latency_ms)
