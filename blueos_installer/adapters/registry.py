"""
Adapter registry — the one door from services to the host.

Every side effect of a run (fetch, shell command, file edit, docker
call) is an Action dispatched here. The registry picks the adapter by
name, checks it can run, validates the params and executes. Whatever
goes wrong comes back as a failed Receipt.

At DEBUG every dispatched action is traced, which is how ``--ci-run``
shows each command the installer runs.
"""

from __future__ import annotations

import logging
import time

from blueos_installer.adapters.base import Adapter, ExecutionContext
from blueos_installer.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)

_MARKERS = {"ok": "✓", "skipped": "⊘", "failed": "✗"}


class AdapterRegistry:
    """Adapters by name, and dispatch of Actions to them."""

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter %r", adapter.name)
        self._adapters[adapter.name] = adapter

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def host_tools(self) -> dict[str, bool]:
        """Whether each registered adapter's host tool is usable right now."""
        tools = {}
        for name, adapter in self._adapters.items():
            try:
                tools[name] = bool(adapter.is_available())
            except Exception as e:
                logger.debug("Availability check for %s raised: %s", name, e)
                tools[name] = False
        return tools

    def execute_action(self, action: Action) -> Receipt:
        """Run ``action`` through its adapter. Never raises."""
        start = time.monotonic()
        receipt = self._execute(action)
        receipt.duration_ms = int((time.monotonic() - start) * 1000)
        logger.debug(
            "%s %s (%s) %dms%s",
            _MARKERS[receipt.status],
            action.id,
            action.name,
            receipt.duration_ms,
            f": {receipt.error}" if receipt.error else "",
        )
        return receipt

    def _execute(self, action: Action) -> Receipt:
        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                action.adapter, action.id, f"No adapter registered for '{action.adapter}'"
            )

        context = ExecutionContext(action=action, params=action.params)
        try:
            if not adapter.is_available():
                return Receipt.failure(
                    action.adapter, action.id, f"{action.adapter} is not available on this host"
                )
            is_valid, reason = adapter.validate(context)
        except Exception as e:
            return Receipt.failure(action.adapter, action.id, f"Validation error: {e}")
        if not is_valid:
            return Receipt.failure(action.adapter, action.id, f"Validation failed: {reason}")

        try:
            return adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised on %s: %s", action.adapter, action.id, e)
            return Receipt.failure(action.adapter, action.id, f"Unexpected error: {e}")
