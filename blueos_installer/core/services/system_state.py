"""
Host probes — read the transient SystemState.

Read-only. Called on every Preflight; results are never cached.
"""

from __future__ import annotations

import os
import platform

from blueos_installer.core.models.system import SystemState


def read_free_space_mb(path: str = "/") -> int:
    """Free space available to unprivileged users, in MB.

    Free block count times fragment size, like ``stat -f --format=%a*%S``.
    """
    st = os.statvfs(path)
    return (st.f_bavail * st.f_frsize) // (1024 * 1024)


def read_system_state(root: str = "/") -> SystemState:
    """Probe the running host."""
    return SystemState(
        architecture=platform.machine(),
        euid=os.geteuid(),
        free_space_mb=read_free_space_mb(root),
    )
