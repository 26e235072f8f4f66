"""
Readiness polling — bounded, cancellable wait for a condition.

The only suspension point of a run. The wait happens on a
``threading.Event``, so a signal handler that sets the event wakes the
poll immediately instead of after the next interval.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PollTimeout(Exception):
    """The condition did not become true within the time budget."""

    def __init__(self, label: str, timeout: float, attempts: int):
        self.timeout = timeout
        self.attempts = attempts
        super().__init__(f"{label} not ready after {timeout:.0f}s ({attempts} checks)")


class PollCancelled(Exception):
    """The cancel event was set while polling."""


def poll_until(
    check: Callable[[], bool],
    *,
    timeout: float,
    interval: float = 1.0,
    cancel_event: threading.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
    label: str = "condition",
) -> int:
    """Call ``check()`` every ``interval`` seconds until it returns True.

    Args:
        check: Readiness probe. Exceptions count as "not ready".
        timeout: Total seconds allowed before giving up.
        interval: Seconds between probes.
        cancel_event: Setting this event aborts the wait.
        clock: Monotonic clock (injectable for tests).
        label: Name used in log lines and errors.

    Returns:
        Number of probes made (the last one succeeded).

    Raises:
        PollTimeout: ``timeout`` elapsed without a successful probe.
        PollCancelled: ``cancel_event`` was set.
    """
    waiter = cancel_event if cancel_event is not None else threading.Event()
    deadline = clock() + timeout
    attempts = 0

    while True:
        if waiter.is_set():
            raise PollCancelled(f"Waiting for {label} was cancelled")

        attempts += 1
        try:
            if check():
                logger.debug("%s ready after %d check(s)", label, attempts)
                return attempts
        except Exception as e:
            logger.debug("%s probe raised: %s", label, e)

        remaining = deadline - clock()
        if remaining <= 0:
            raise PollTimeout(label, timeout, attempts)

        logger.info("==> Waiting for %s to come online...", label)
        if waiter.wait(min(interval, remaining)):
            raise PollCancelled(f"Waiting for {label} was cancelled")
