"""
Action and Receipt — what a service asks the host to do, and what happened.

Services never call subprocess, urllib or the filesystem themselves:
they describe the side effect as an Action and hand it to the adapter
registry, which answers with a Receipt. Whether a failed receipt is a
warning or an installer error is decided at the call site.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

ReceiptStatus = Literal["ok", "skipped", "failed"]


class Action(BaseModel):
    """One side effect, addressed to one adapter.

    Ids are built from the adapter name and the operation's subject
    (``docker:pull:<ref>``, ``filesystem:write:<path>``), so the same
    step of two runs always has the same id.
    """

    id: str
    adapter: str
    name: str = ""
    params: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def build(cls, adapter: str, *parts: str, name: str = "", **params: Any) -> Action:
        """Action whose id is ``adapter:part:part...`` (empty parts dropped)."""
        action_id = ":".join([adapter, *(p for p in parts if p)])
        return cls(id=action_id, adapter=adapter, name=name or action_id, params=params)


class Receipt(BaseModel):
    """What an adapter reports back. Adapters never raise."""

    adapter: str
    action_id: str
    status: ReceiptStatus = "ok"
    output: str = ""
    error: str | None = None
    duration_ms: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        """Nothing to do (file already edited, line already present...)."""
        return self.status == "skipped"

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action_id: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, adapter: str, action_id: str, reason: str = "", **kwargs: Any) -> Receipt:
        # the reason travels in ``output`` so log lines read the same for ok and skipped
        return cls(adapter=adapter, action_id=action_id, status="skipped", output=reason, **kwargs)
