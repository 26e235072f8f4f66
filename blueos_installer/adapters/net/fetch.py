"""
HTTP adapter — bounded-retry fetch of remote scripts and resources.

Every fetch is capped twice: at most ``attempts`` tries, and each try
bounded by ``attempt_timeout`` seconds of wall-clock time. Transient
failures (connection errors, timeouts, 5xx, 408, 429) are retried;
other client errors (404, 403, ...) fail immediately.
"""

from __future__ import annotations

import http.client
import logging
import time
import urllib.error
import urllib.request
from collections.abc import Callable

from blueos_installer import __version__
from blueos_installer.adapters.base import Adapter, ExecutionContext
from blueos_installer.core.models.action import Receipt
from blueos_installer.core.reliability.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {408, 429}
_CHUNK_SIZE = 64 * 1024


def is_transient(exc: Exception) -> bool:
    """Whether a fetch error is worth another attempt."""
    if isinstance(exc, urllib.error.HTTPError):
        return exc.code >= 500 or exc.code in _RETRYABLE_STATUS
    # URLError, socket timeouts and connection resets are all OSErrors
    return isinstance(exc, (OSError, http.client.HTTPException))


class HttpFetchAdapter(Adapter):
    """Fetch a URL and return its body as text.

    Action params:
        url (str): The URL to fetch.
        attempts (int): Override the policy's attempt count.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "http"

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        url = context.param("url", "")
        if not url:
            return False, "Missing required param: 'url'"
        if not url.startswith(("https://", "http://")):
            return False, f"Unsupported URL scheme: {url}"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        url = context.param("url")
        policy = self._policy
        if context.param("attempts"):
            policy = RetryPolicy(
                attempts=context.param("attempts"),
                attempt_timeout=policy.attempt_timeout,
                base_delay=policy.base_delay,
                max_delay=policy.max_delay,
            )

        start = time.monotonic()
        outcome = call_with_retry(
            lambda timeout: self._fetch_once(url, timeout),
            policy,
            is_retryable=is_transient,
            sleep=self._sleep,
            label=f"GET {url}",
        )
        elapsed_ms = int((time.monotonic() - start) * 1000)

        if not outcome.ok:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=outcome.last_error,
                duration_ms=elapsed_ms,
                metadata={"url": url, "attempts": outcome.attempts},
            )

        body = outcome.value or ""
        return Receipt.success(
            adapter=self.name,
            action_id=context.action.id,
            output=body,
            duration_ms=elapsed_ms,
            metadata={"url": url, "attempts": outcome.attempts, "size": len(body)},
        )

    @staticmethod
    def _fetch_once(url: str, timeout: float) -> str:
        """One GET, bounded by ``timeout`` seconds of wall-clock time.

        The body is read in chunks and the deadline checked between them;
        each socket read is also bounded by ``timeout``.
        """
        deadline = time.monotonic() + timeout
        req = urllib.request.Request(
            url,
            headers={"User-Agent": f"blueos-installer/{__version__}"},
        )
        chunks: list[bytes] = []
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            while True:
                if time.monotonic() > deadline:
                    raise TimeoutError(f"GET {url} exceeded {timeout:g}s")
                chunk = resp.read1(_CHUNK_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks).decode("utf-8", errors="replace")
