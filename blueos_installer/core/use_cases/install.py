"""
Install use case — one provisioning run, end to end.

Resolves settings and the request, wires the services to the adapter
registry, runs the state machine under the run lock, and records the
outcome in the run history. The full vertical slice from CLI flags to
a rebooting device.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from blueos_installer.adapters.registry import AdapterRegistry
from blueos_installer.core.config.loader import (
    InstallerSettings,
    find_config_file,
    load_settings,
    resolve_request,
)
from blueos_installer.core.engine.orchestrator import Orchestrator, StageDefinition
from blueos_installer.core.errors import ConfigError, InstallerLocked
from blueos_installer.core.models.outcome import InstallReport, Stage, StepPolicy
from blueos_installer.core.models.request import InstallationRequest
from blueos_installer.core.models.system import SystemState
from blueos_installer.core.persistence.history import HistoryLedger, InstallRecord
from blueos_installer.core.reliability.retry import RetryPolicy
from blueos_installer.core.reliability.run_lock import RunLock
from blueos_installer.core.services.containers import ContainerManager
from blueos_installer.core.services.preflight import PreflightValidator
from blueos_installer.core.services.runtime_bootstrap import RuntimeBootstrapper
from blueos_installer.core.services.system_integration import SystemIntegrator
from blueos_installer.core.services.system_state import read_system_state

logger = logging.getLogger(__name__)


@dataclass
class InstallResult:
    """Result of an install invocation."""

    report: InstallReport | None = None
    error: str | None = None
    history_written: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.report is not None and self.report.succeeded

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        result: dict = {"history_written": self.history_written}
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def default_registry(settings: InstallerSettings) -> AdapterRegistry:
    """Registry with the real host adapters."""
    from blueos_installer.adapters.containers.docker import DockerAdapter
    from blueos_installer.adapters.net.fetch import HttpFetchAdapter
    from blueos_installer.adapters.shell.command import ShellCommandAdapter
    from blueos_installer.adapters.shell.filesystem import FilesystemAdapter

    registry = AdapterRegistry()
    registry.register(ShellCommandAdapter())
    registry.register(FilesystemAdapter())
    registry.register(DockerAdapter())
    registry.register(HttpFetchAdapter(policy=RetryPolicy.from_fetch_policy(settings.fetch)))
    return registry


def build_stages(
    request: InstallationRequest,
    settings: InstallerSettings,
    registry: AdapterRegistry,
    *,
    state_reader: Callable[[], SystemState] = read_system_state,
    sleep: Callable[[float], None] = time.sleep,
    cancel_event: threading.Event | None = None,
) -> list[StageDefinition]:
    """The provisioning state machine, wired to its services."""
    validator = PreflightValidator(registry, settings)
    bootstrapper = RuntimeBootstrapper(registry, settings, request, cancel_event=cancel_event)
    containers = ContainerManager(registry, settings, request)
    integrator = SystemIntegrator(registry, settings, request, sleep=sleep)

    def preflight() -> list[str]:
        # SystemState is read fresh on every run
        validator.validate(state_reader(), request)
        return []

    return [
        StageDefinition(Stage.PREFLIGHT, StepPolicy.FATAL, preflight),
        StageDefinition(
            Stage.BOARD_CONFIG,
            StepPolicy.SKIPPABLE,
            integrator.configure_board,
            enabled=not request.skip_board_config,
            skip_reason="--skip-board-config",
        ),
        StageDefinition(
            Stage.RUNTIME_READY,
            StepPolicy.DEGRADED,
            bootstrapper.provision,
            fallback=bootstrapper.provision_nested,
            fallback_enabled=request.ci_run,
        ),
        StageDefinition(
            Stage.CLEANUP,
            StepPolicy.SKIPPABLE,
            containers.cleanup,
            enabled=not request.no_clean,
            skip_reason="NO_CLEAN is set",
        ),
        StageDefinition(Stage.IMAGE_PULL, StepPolicy.FATAL, containers.pull_images),
        StageDefinition(Stage.CONTAINER_CREATE, StepPolicy.FATAL, containers.create_control_container),
        StageDefinition(Stage.SYSTEM_FILES, StepPolicy.FATAL, integrator.install_system_files),
        StageDefinition(Stage.NETWORK_CONFIG, StepPolicy.FATAL, integrator.configure_network),
        StageDefinition(Stage.DONE, StepPolicy.FATAL, integrator.schedule_reboot),
    ]


def build_orchestrator(
    request: InstallationRequest,
    settings: InstallerSettings,
    registry: AdapterRegistry | None = None,
    *,
    cancel_event: threading.Event | None = None,
    **kwargs,
) -> Orchestrator:
    if registry is None:
        registry = default_registry(settings)
    stages = build_stages(request, settings, registry, cancel_event=cancel_event, **kwargs)
    return Orchestrator(stages, request, cancel_event=cancel_event)


def run_install(
    *,
    skip_board_config: bool = False,
    ci_run: bool = False,
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    settings: InstallerSettings | None = None,
    registry: AdapterRegistry | None = None,
    state_reader: Callable[[], SystemState] = read_system_state,
    sleep: Callable[[float], None] = time.sleep,
    cancel_event: threading.Event | None = None,
) -> InstallResult:
    """Provision this host.

    Args:
        skip_board_config: Bypass the BOARD_CONFIG stage.
        ci_run: Allow the nested-runtime fallback for RUNTIME_READY.
        config_path: Explicit settings file (default: auto-detect).
        environ: Environment for request overrides (default: os.environ).
        settings: Pre-loaded settings (skips file loading).
        registry: Optional pre-configured adapter registry.
        state_reader: Host probe for the Preflight stage.
        sleep: Used for the reboot delay.
        cancel_event: Set to abort the nested-runtime readiness wait.

    Returns:
        InstallResult with the run report, or an error when the run
        could not start at all.
    """
    result = InstallResult()

    # ── Resolve settings and request ────────────────────────────
    try:
        if settings is None:
            settings = load_settings(config_path or find_config_file(environ))
        request = resolve_request(
            skip_board_config=skip_board_config,
            ci_run=ci_run,
            environ=environ,
        )
    except ConfigError as e:
        result.error = str(e)
        return result

    orchestrator = build_orchestrator(
        request,
        settings,
        registry,
        state_reader=state_reader,
        sleep=sleep,
        cancel_event=cancel_event,
    )

    # ── Run under the lock ──────────────────────────────────────
    lock = RunLock(settings.paths.lock_file)
    try:
        lock.acquire()
    except InstallerLocked as e:
        result.error = str(e)
        return result
    except OSError as e:
        result.error = f"Cannot take run lock {lock.path}: {e}"
        return result

    try:
        report = orchestrator.run()
    finally:
        lock.release()

    result.report = report

    # ── Record ──────────────────────────────────────────────────
    ledger = HistoryLedger(settings.paths.history_file)
    result.history_written = ledger.write(InstallRecord.from_report(report))

    return result
