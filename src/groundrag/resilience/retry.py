"""Explicit retry policy with exponential backoff and jitter."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from groundrag.errors import DeadlineExceededError, TransientServiceError
from groundrag.resilience.deadline import Deadline

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times a stage is retried and how long to wait in between."""

    max_retries: int = 2
    base_delay: float = 0.1
    factor: float = 2.0
    max_delay: float = 2.0
    jitter: float = 0.25

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay(self, retry: int, rng: random.Random | None = None) -> float:
        """Seconds to wait before the ``retry``-th retry (1-based)."""

        delay = min(self.max_delay, self.base_delay * (self.factor ** max(0, retry - 1)))
        if self.jitter:
            roll = (rng or random).random()
            delay *= 1.0 - self.jitter + roll * self.jitter * 2
        return max(0.0, delay)

    def call(
        self,
        operation: Callable[[], T],
        *,
        stage: str = "operation",
        deadline: Deadline | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
        on_retry: Callable[[int, float, TransientServiceError], None] | None = None,
    ) -> T:
        """Invoke ``operation``, retrying transient failures only.

        Fatal errors and deadline expiry propagate immediately. A backoff that
        would not fit in the remaining request budget is not slept; the
        deadline error is raised instead.
        """

        retry = 0
        while True:
            try:
                return operation()
            except TransientServiceError as exc:
                if retry >= self.max_retries:
                    raise
                retry += 1
                wait = self.delay(retry, rng)
                if deadline is not None and wait >= deadline.remaining():
                    raise DeadlineExceededError(stage) from exc
                if on_retry is not None:
                    on_retry(retry, wait, exc)
                sleep(wait)
