"""Bounded exponential backoff around a single provider call."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from .errors import ProviderError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, float, ProviderError], None]


class RetryPhase(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Backoff parameters; ``enabled=False`` means a single attempt."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    enabled: bool = True

    @property
    def effective_retries(self) -> int:
        return max(self.max_retries, 0) if self.enabled else 0

    def delay_for(self, attempt: int) -> float:
        """Sleep before the retry that follows failed ``attempt`` (0-based)."""
        return min(self.max_delay, self.initial_delay * (self.exponential_base**attempt))


@dataclass(slots=True)
class RetryState:
    """Transient bookkeeping for one wrapped call."""

    attempt: int = 0
    delay: float = 0.0
    phase: RetryPhase = RetryPhase.IDLE


def call_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] | None = None,
    on_retry: RetryCallback | None = None,
    state: RetryState | None = None,
) -> T:
    """Run ``operation`` until it succeeds, fails fatally, or retries run out.

    Retryable ``ProviderError`` failures are retried; any other exception is
    treated as fatal and propagates unchanged on the first occurrence.
    """
    sleeper = sleep or time.sleep
    retry_state = state or RetryState()
    max_retries = policy.effective_retries

    while True:
        retry_state.phase = RetryPhase.ATTEMPTING
        try:
            result = operation()
        except ProviderError as exc:
            if not exc.retryable:
                retry_state.phase = RetryPhase.FAILED
                logger.error("LLM request failed (non-retryable): %s", exc)
                raise
            if retry_state.attempt >= max_retries:
                retry_state.phase = RetryPhase.EXHAUSTED
                raise RetryExhaustedError(retry_state.attempt + 1, exc) from exc
            retry_state.delay = policy.delay_for(retry_state.attempt)
            logger.warning(
                "LLM request failed (attempt %d): %s; retrying in %.1fs",
                retry_state.attempt + 1,
                exc,
                retry_state.delay,
            )
            if on_retry is not None:
                on_retry(retry_state.attempt + 1, retry_state.delay, exc)
            sleeper(retry_state.delay)
            retry_state.attempt += 1
            continue
        except Exception:
            retry_state.phase = RetryPhase.FAILED
            raise
        retry_state.phase = RetryPhase.SUCCEEDED
        return result


__all__ = ["RetryCallback", "RetryPhase", "RetryPolicy", "RetryState", "call_with_retry"]
