"""Error taxonomy shared by the groundrag pipeline and its service clients."""

from __future__ import annotations


class GroundRAGError(RuntimeError):
    """Base class for all pipeline errors."""


class ValidationError(GroundRAGError):
    """Raised when a query is rejected before entering the pipeline."""


class ServiceError(GroundRAGError):
    """Raised when an external collaborator call fails."""

    retryable = False

    def __init__(self, message: str, *, service: str = "unknown") -> None:
        super().__init__(message)
        self.service = service


class TransientServiceError(ServiceError):
    """Timeouts and 5xx-equivalent failures; retried per stage policy."""

    retryable = True


class FatalServiceError(ServiceError):
    """Explicit rejections and malformed responses; never retried."""


class EmbeddingServiceError(TransientServiceError):
    """Raised when the embedding service cannot be reached or times out."""

    def __init__(self, message: str) -> None:
        super().__init__(message, service="embedding")


class EmbeddingRejectedError(FatalServiceError):
    """Raised when the embedding service rejects the request or answers garbage."""

    def __init__(self, message: str) -> None:
        super().__init__(message, service="embedding")


class DimensionMismatchError(FatalServiceError):
    """Raised when a returned vector disagrees with the configured dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Expected embedding dimension {expected}, got {actual}", service="embedding")
        self.expected = expected
        self.actual = actual


class SearchTimeoutError(TransientServiceError):
    """Raised when the search index does not answer in time."""

    def __init__(self, message: str) -> None:
        super().__init__(message, service="search")


class SearchServiceError(TransientServiceError):
    """Raised on a transient search failure that is not a timeout."""

    def __init__(self, message: str) -> None:
        super().__init__(message, service="search")


class SearchUnavailableError(FatalServiceError):
    """Raised when the search index is unavailable for the current request."""

    def __init__(self, message: str) -> None:
        super().__init__(message, service="search")


class GenerationServiceError(TransientServiceError):
    """Raised when the completion service fails or times out."""

    def __init__(self, message: str) -> None:
        super().__init__(message, service="generation")


class GenerationRejectedError(FatalServiceError):
    """Raised when the completion service rejects the prompt."""

    def __init__(self, message: str) -> None:
        super().__init__(message, service="generation")


class DeadlineExceededError(GroundRAGError):
    """Raised when the global request budget is exhausted."""

    def __init__(self, stage: str) -> None:
        super().__init__(f"Request deadline exceeded during {stage}")
        self.stage = stage


__all__ = [
    "DeadlineExceededError",
    "DimensionMismatchError",
    "EmbeddingRejectedError",
    "EmbeddingServiceError",
    "FatalServiceError",
    "GenerationRejectedError",
    "GenerationServiceError",
    "GroundRAGError",
    "SearchServiceError",
    "SearchTimeoutError",
    "SearchUnavailableError",
    "ServiceError",
    "TransientServiceError",
    "ValidationError",
]
