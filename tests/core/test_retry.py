from __future__ import annotations

import pytest

from miniagent.core.errors import FatalProviderError, RetryableProviderError, RetryExhaustedError
from miniagent.core.retry import RetryPhase, RetryPolicy, RetryState, call_with_retry


def _failing(errors: list[Exception], result: str = "ok"):
    calls = {"count": 0}

    def operation() -> str:
        calls["count"] += 1
        if errors:
            raise errors.pop(0)
        return result

    return operation, calls


def test_retryable_failures_exhaust_after_max_retries_plus_one_attempts() -> None:
    sleeps: list[float] = []
    errors = [RetryableProviderError("rate limited", status_code=429) for _ in range(10)]
    operation, calls = _failing(errors)
    policy = RetryPolicy(max_retries=3, initial_delay=1.0, max_delay=3.0, exponential_base=2.0)
    state = RetryState()

    with pytest.raises(RetryExhaustedError) as exc_info:
        call_with_retry(operation, policy, sleep=sleeps.append, state=state)

    assert calls["count"] == 4
    assert sleeps == [1.0, 2.0, 3.0]
    assert sleeps == sorted(sleeps)
    assert exc_info.value.attempts == 4
    assert exc_info.value.last_error.status_code == 429
    assert state.phase is RetryPhase.EXHAUSTED


def test_fatal_failure_is_not_retried() -> None:
    sleeps: list[float] = []
    operation, calls = _failing([FatalProviderError("bad key", status_code=401)])
    state = RetryState()

    with pytest.raises(FatalProviderError):
        call_with_retry(operation, RetryPolicy(), sleep=sleeps.append, state=state)

    assert calls["count"] == 1
    assert sleeps == []
    assert state.phase is RetryPhase.FAILED


def test_success_after_transient_failures_reports_retries() -> None:
    sleeps: list[float] = []
    retries: list[tuple[int, float]] = []
    operation, calls = _failing([RetryableProviderError("timeout"), RetryableProviderError("timeout")], result="done")

    result = call_with_retry(
        operation,
        RetryPolicy(initial_delay=0.5),
        sleep=sleeps.append,
        on_retry=lambda attempt, delay, _exc: retries.append((attempt, delay)),
    )

    assert result == "done"
    assert calls["count"] == 3
    assert retries == [(1, 0.5), (2, 1.0)]


def test_disabled_policy_makes_a_single_attempt() -> None:
    operation, calls = _failing([RetryableProviderError("boom")])

    with pytest.raises(RetryExhaustedError) as exc_info:
        call_with_retry(operation, RetryPolicy(enabled=False), sleep=lambda _s: None)

    assert calls["count"] == 1
    assert exc_info.value.attempts == 1


def test_non_provider_errors_propagate_unchanged() -> None:
    operation, calls = _failing([ValueError("bug")])

    with pytest.raises(ValueError):
        call_with_retry(operation, RetryPolicy(), sleep=lambda _s: None)

    assert calls["count"] == 1


def test_delay_is_capped_by_max_delay() -> None:
    policy = RetryPolicy(initial_delay=1.0, max_delay=60.0, exponential_base=2.0)

    assert [policy.delay_for(attempt) for attempt in range(8)] == [1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 60.0, 60.0]
