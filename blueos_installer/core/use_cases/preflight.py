"""
Preflight use case — run the host checks without installing anything.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from blueos_installer.adapters.registry import AdapterRegistry
from blueos_installer.core.config.loader import (
    InstallerSettings,
    find_config_file,
    load_settings,
    resolve_request,
)
from blueos_installer.core.errors import ConfigError
from blueos_installer.core.models.request import InstallationRequest
from blueos_installer.core.models.system import SystemState
from blueos_installer.core.services.preflight import PreflightCheck, PreflightValidator
from blueos_installer.core.services.system_state import read_system_state


@dataclass
class PreflightResult:
    """Result of a standalone preflight."""

    state: SystemState | None = None
    request: InstallationRequest | None = None
    checks: list[PreflightCheck] = field(default_factory=list)
    tools: dict[str, bool] = field(default_factory=dict)
    error: str | None = None

    @property
    def passed(self) -> bool:
        return self.error is None and bool(self.checks) and all(c.passed for c in self.checks)

    def to_dict(self) -> dict:
        if self.error:
            return {"passed": False, "error": self.error}
        return {
            "passed": self.passed,
            "root_url": self.request.root_url if self.request else None,
            "system": self.state.model_dump() if self.state else None,
            "checks": [c.to_dict() for c in self.checks],
            "host_tools": self.tools,
        }


def run_preflight(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    settings: InstallerSettings | None = None,
    registry: AdapterRegistry | None = None,
    state_reader: Callable[[], SystemState] = read_system_state,
) -> PreflightResult:
    """Check this host the way the PREFLIGHT stage would.

    Args:
        config_path: Optional explicit settings file.
        environ: Environment for request overrides (default: os.environ).
        settings: Pre-loaded settings (skips file loading).
        registry: Optional pre-configured adapter registry.
        state_reader: Host probe.

    Returns:
        PreflightResult with one entry per check.
    """
    result = PreflightResult()

    try:
        if settings is None:
            settings = load_settings(config_path or find_config_file(environ))
        result.request = resolve_request(environ=environ)
    except ConfigError as e:
        result.error = str(e)
        return result

    if registry is None:
        from blueos_installer.core.use_cases.install import default_registry

        registry = default_registry(settings)

    result.tools = registry.host_tools()
    result.state = state_reader()
    result.checks = PreflightValidator(registry, settings).report(result.state, result.request)
    return result
