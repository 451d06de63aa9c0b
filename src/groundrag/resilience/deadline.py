"""Global request deadline and timeout-bounded calls."""

from __future__ import annotations

import time
from concurrent.futures import Executor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar

from groundrag.errors import DeadlineExceededError

T = TypeVar("T")


class Deadline:
    """Wall-clock budget for one pipeline invocation."""

    def __init__(self, budget_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.budget_seconds = budget_seconds
        self._expires_at = clock() + budget_seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self, stage: str) -> None:
        if self.expired:
            raise DeadlineExceededError(stage)

    def bound(self, timeout: float) -> float:
        """Clamp a stage timeout so it never outlives the request."""

        return min(timeout, self.remaining())


def call_with_timeout(
    executor: Executor,
    fn: Callable[[float], T],
    *,
    timeout: float,
    deadline: Deadline,
    stage: str,
    on_timeout: Callable[[str], Exception],
) -> T:
    """Run ``fn(timeout)`` on ``executor`` and wait at most ``timeout`` seconds.

    ``fn`` receives the effective timeout so clients that support it can bind
    their own transport timeout. A call that outlives its timeout is cancelled
    if it has not started yet; otherwise it keeps running and its result is
    discarded. Running out of request budget raises ``DeadlineExceededError``,
    running out of stage budget raises whatever ``on_timeout`` builds.
    """

    deadline.check(stage)
    effective = deadline.bound(timeout)
    future = executor.submit(fn, effective)
    try:
        return future.result(timeout=effective)
    except FutureTimeoutError:
        future.cancel()
        if deadline.expired:
            raise DeadlineExceededError(stage) from None
        raise on_timeout(f"{stage} timed out after {effective * 1000:.0f}ms") from None
