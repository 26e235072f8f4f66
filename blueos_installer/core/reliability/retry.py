"""
Bounded retry — capped attempts with exponential backoff and jitter.

Every remote fetch goes through a RetryPolicy: at most ``attempts``
tries, each bounded by ``attempt_timeout`` seconds, with
``min(base_delay * 2**(n-1), max_delay)`` plus jitter between tries.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from blueos_installer.core.config.loader import FetchPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt and time budget for one retried operation.

    Args:
        attempts: Maximum number of tries (first try included).
        attempt_timeout: Per-attempt cap in seconds, passed to the operation.
        base_delay: Delay before the second try.
        max_delay: Upper bound for any single delay.
        jitter: Fraction of the delay added at random.
    """

    attempts: int = 6
    attempt_timeout: float = 15.0
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: float = 0.3

    @classmethod
    def from_fetch_policy(cls, policy: FetchPolicy) -> RetryPolicy:
        return cls(
            attempts=policy.attempts,
            attempt_timeout=policy.attempt_timeout,
            base_delay=policy.base_delay,
            max_delay=policy.max_delay,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return delay + random.uniform(0, delay * self.jitter)


@dataclass
class RetryOutcome(Generic[T]):
    """What a retried call produced."""

    value: T | None = None
    ok: bool = False
    attempts: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def last_error(self) -> str:
        return self.errors[-1] if self.errors else ""


def call_with_retry(
    operation: Callable[[float], T],
    policy: RetryPolicy,
    *,
    is_retryable: Callable[[Exception], bool] = lambda exc: True,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "operation",
) -> RetryOutcome[T]:
    """Call ``operation(attempt_timeout)`` until it returns or the budget runs out.

    Exceptions from ``operation`` are captured, never re-raised: the
    caller inspects ``RetryOutcome.ok``. A non-retryable exception ends
    the loop immediately.
    """
    outcome: RetryOutcome[T] = RetryOutcome()

    for attempt in range(1, policy.attempts + 1):
        outcome.attempts = attempt
        try:
            outcome.value = operation(policy.attempt_timeout)
            outcome.ok = True
            if attempt > 1:
                logger.info("%s succeeded on attempt %d/%d", label, attempt, policy.attempts)
            return outcome
        except Exception as e:
            outcome.errors.append(str(e) or e.__class__.__name__)
            if not is_retryable(e):
                logger.debug("%s failed with non-retryable error: %s", label, e)
                return outcome
            if attempt == policy.attempts:
                break
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                label,
                attempt,
                policy.attempts,
                e,
                delay,
            )
            sleep(delay)

    logger.warning("%s exhausted after %d attempts", label, outcome.attempts)
    return outcome
