"""
SystemState — what the host looks like right now.

Read fresh at every Preflight (see ``core.services.system_state``);
never persisted, never cached between runs.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class SystemState(BaseModel):
    """Transient host facts checked before any mutation."""

    model_config = ConfigDict(frozen=True)

    architecture: str
    euid: int
    free_space_mb: int

    @property
    def is_root(self) -> bool:
        return self.euid == 0
