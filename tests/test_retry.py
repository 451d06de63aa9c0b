from __future__ import annotations

import random
from concurrent.futures import ThreadPoolExecutor

import pytest

from groundrag.errors import (
    DeadlineExceededError,
    EmbeddingRejectedError,
    EmbeddingServiceError,
    SearchTimeoutError,
)
from groundrag.resilience import Deadline, RetryPolicy, call_with_timeout


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_backoff_monotonic_without_jitter():
    policy = RetryPolicy(base_delay=0.1, factor=2.0, max_delay=10.0, jitter=0.0)
    vals = [policy.delay(i) for i in range(1, 5)]
    assert vals == sorted(vals)
    assert vals[0] == pytest.approx(0.1)
    assert vals[2] == pytest.approx(0.4)


def test_backoff_is_capped_and_jitter_bounded():
    policy = RetryPolicy(base_delay=1.0, factor=10.0, max_delay=2.0, jitter=0.25)
    rng = random.Random(7)
    for retry in range(1, 6):
        assert 1.5 <= policy.delay(retry, rng) <= 2.5


def test_transient_errors_are_retried_until_success():
    calls = []
    sleeps = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise EmbeddingServiceError("boom")
        return "ok"

    policy = RetryPolicy(max_retries=2, jitter=0.0)
    assert policy.call(flaky, sleep=sleeps.append) == "ok"
    assert len(calls) == 3
    assert sleeps == [pytest.approx(0.1), pytest.approx(0.2)]


def test_exhausted_retries_reraise_last_error():
    calls = []

    def failing():
        calls.append(1)
        raise SearchTimeoutError("slow")

    with pytest.raises(SearchTimeoutError):
        RetryPolicy(max_retries=2, jitter=0.0).call(failing, sleep=lambda _: None)
    assert len(calls) == 3


def test_fatal_errors_are_not_retried():
    calls = []

    def rejected():
        calls.append(1)
        raise EmbeddingRejectedError("bad input")

    with pytest.raises(EmbeddingRejectedError):
        RetryPolicy(max_retries=5).call(rejected, sleep=lambda _: None)
    assert len(calls) == 1


def test_backoff_that_exceeds_deadline_raises_deadline_error():
    clock = FakeClock()
    deadline = Deadline(0.05, clock=clock)
    slept = []

    def failing():
        raise EmbeddingServiceError("boom")

    with pytest.raises(DeadlineExceededError) as excinfo:
        RetryPolicy(max_retries=3, base_delay=0.1, jitter=0.0).call(
            failing, stage="embedding", deadline=deadline, sleep=slept.append,
        )
    assert excinfo.value.stage == "embedding"
    assert slept == []


def test_deadline_bounds_stage_timeouts():
    clock = FakeClock()
    deadline = Deadline(1.0, clock=clock)
    assert deadline.bound(2.0) == pytest.approx(1.0)
    clock.now += 0.75
    assert deadline.bound(2.0) == pytest.approx(0.25)
    clock.now += 1.0
    assert deadline.expired
    with pytest.raises(DeadlineExceededError):
        deadline.check("search")


def test_call_with_timeout_passes_effective_timeout():
    seen = []
    with ThreadPoolExecutor(max_workers=1) as executor:
        result = call_with_timeout(
            executor,
            lambda timeout: seen.append(timeout) or "done",
            timeout=0.5,
            deadline=Deadline(10.0),
            stage="search",
            on_timeout=SearchTimeoutError,
        )
    assert result == "done"
    assert seen == [pytest.approx(0.5, abs=0.01)]


def test_call_with_timeout_maps_stage_timeout():
    import threading

    release = threading.Event()
    with ThreadPoolExecutor(max_workers=1) as executor:
        with pytest.raises(SearchTimeoutError):
            call_with_timeout(
                executor,
                lambda timeout: release.wait(5),
                timeout=0.05,
                deadline=Deadline(10.0),
                stage="search",
                on_timeout=SearchTimeoutError,
            )
        release.set()
