"""
Mock adapter — stands in for a host tool in tests.

Registered under a real adapter name ("docker", "shell", "http"), it
records every context it receives and answers from canned receipts
keyed by action id. Anything not configured succeeds with
``default_output``.
"""

from __future__ import annotations

from blueos_installer.adapters.base import Adapter, ExecutionContext
from blueos_installer.core.models.action import Receipt


class MockAdapter(Adapter):
    """Canned receipts per action id, plus a call log."""

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    # ── Inspection ──────────────────────────────────────────────

    @property
    def call_log(self) -> list[ExecutionContext]:
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def action_ids(self) -> list[str]:
        """Executed action ids, in call order."""
        return [ctx.action.id for ctx in self._call_log]

    def called(self, action_id: str) -> bool:
        return action_id in self.action_ids

    # ── Configuration ───────────────────────────────────────────

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        self._responses[action_id] = receipt

    def set_output(self, action_id: str, output: str) -> None:
        """``action_id`` succeeds and prints ``output``."""
        self.set_response(action_id, Receipt.success(self._name, action_id, output=output))

    def set_failure(self, action_id: str, error: str = "Mock failure", **metadata) -> None:
        """``action_id`` fails; ``metadata`` lands on the receipt (``conflict=True``, ``attempts=6``)."""
        self.set_response(action_id, Receipt.failure(self._name, action_id, error, metadata=metadata))

    def set_skip(self, action_id: str, reason: str = "Mock skip") -> None:
        self.set_response(action_id, Receipt.skip(self._name, action_id, reason=reason))

    def reset(self) -> None:
        self._call_log.clear()
        self._responses.clear()

    # ── Adapter protocol ────────────────────────────────────────

    def is_available(self) -> bool:
        return self._available

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        canned = self._responses.get(context.action.id)
        if canned is not None:
            return canned.model_copy()
        return context.receipt(output=self._default_output, metadata={"mock": True})
