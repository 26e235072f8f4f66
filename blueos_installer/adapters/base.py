"""
Adapter base — the contract every host-facing adapter implements.

An adapter wraps one host tool (sh, the filesystem, the docker CLI,
HTTP). It is reached only through the AdapterRegistry and answers
every Action with a Receipt: failures are data, not exceptions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from blueos_installer.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """The action being executed and its parameters."""

    action: Action
    params: dict[str, Any] = Field(default_factory=dict)

    def param(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)

    def missing(self, *keys: str) -> list[str]:
        """Required params that are absent or empty."""
        return [k for k in keys if self.params.get(k) in (None, "", [])]

    def receipt(self, **kwargs: Any) -> Receipt:
        """Receipt for this action; ``status``/``output``/``error`` as kwargs."""
        return Receipt(adapter=self.action.adapter, action_id=self.action.id, **kwargs)


class Adapter(ABC):
    """One host tool behind the registry.

    ``execute`` must not raise. The registry still converts a stray
    exception into a failed Receipt, but that is logged as an error.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry key; also the first segment of action ids."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying tool can be used on this host. Fast."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Check params before executing. Returns (ok, reason)."""

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Perform the side effect."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name!r}>"
