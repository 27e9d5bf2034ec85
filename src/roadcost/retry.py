"""Retry helpers for calls to live price sources and the language model."""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .errors import TransientSourceError

T = TypeVar("T")

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff with jitter.

    ``max_attempts`` counts the first call.  The delay before attempt ``n + 1``
    is ``min(max_delay, base_delay * 2 ** (n - 1))`` plus up to ``jitter``
    seconds, unless the failure carried a ``retry_after`` hint, which wins
    (still capped at ``max_delay``).
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 1.0
    timeout_seconds: float = 10.0
    circuit_breaker_failures: int = 5

    def delay_for(self, attempt: int, retry_after: Optional[float] = None, rng: Callable[[float, float], float] = random.uniform) -> float:
        if retry_after is not None and retry_after >= 0:
            return min(self.max_delay, float(retry_after))
        backoff = min(self.max_delay, self.base_delay * (2 ** max(0, attempt - 1)))
        if self.jitter > 0:
            backoff += rng(0, self.jitter)
        return max(0.0, backoff)


class CircuitBreakerOpen(TransientSourceError):
    """Raised when a circuit breaker has been tripped for the operation."""


@dataclass
class CircuitBreaker:
    """Tracks consecutive failures for a source within a pipeline run."""

    threshold: int
    consecutive_failures: int = 0

    def record_success(self) -> None:
        self.consecutive_failures = 0

    def record_failure(self) -> None:
        if self.threshold <= 0:
            return
        self.consecutive_failures += 1

    @property
    def is_open(self) -> bool:
        return self.threshold > 0 and self.consecutive_failures >= self.threshold


def execute_with_retry(
    action: Callable[[float], T],
    *,
    policy: RetryPolicy,
    description: str,
    logger: Optional[logging.Logger] = None,
    breaker: Optional[CircuitBreaker] = None,
    sleeper: Callable[[float], None] = time.sleep,
    retry_on: tuple = (TransientSourceError,),
) -> T:
    """Execute ``action(timeout)`` with retry/backoff semantics.

    Only exceptions listed in ``retry_on`` are retried; anything else
    propagates on the first failure.
    """

    log = logger or LOGGER
    if breaker and breaker.is_open:
        raise CircuitBreakerOpen(f"Circuit breaker open for {description}")

    attempts = max(1, policy.max_attempts)
    attempt = 0
    while True:
        attempt += 1
        try:
            result = action(policy.timeout_seconds)
        except retry_on as exc:
            if attempt >= attempts:
                if breaker:
                    breaker.record_failure()
                log.warning("Giving up on %s after %d attempts: %s", description, attempt, exc)
                raise
            delay = policy.delay_for(attempt, getattr(exc, "retry_after", None))
            log.warning(
                "Retrying %s in %.2fs (%d/%d attempts) after error: %s",
                description,
                delay,
                attempt,
                attempts,
                exc,
            )
            if delay:
                sleeper(delay)
            continue
        else:
            if breaker:
                breaker.record_success()
            return result


__all__ = ["RetryPolicy", "CircuitBreaker", "CircuitBreakerOpen", "execute_with_retry"]
