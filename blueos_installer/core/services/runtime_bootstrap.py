"""
Runtime bootstrapper — make sure a container engine answers.

Primary path:
    docker --version → present: done
                     → absent:  fetch the engine install script and run
                                it with ``sh`` (VERSION removed from its
                                environment — the install script reads
                                VERSION as the *engine* version)

Degraded path (CI only, chosen by the orchestrator when the primary
path raises RuntimeBootstrapFailed):
    fetch the pinned nested-runtime helper → chmod +x → provision the
    dockremap uid/gid range → launch ``dind dockerd`` in the background
    → poll ``docker info`` (bounded, cancellable)

Both paths end by registering the engine with the service manager.
"""

from __future__ import annotations

import logging
import os
import signal
import threading

from blueos_installer.adapters.registry import AdapterRegistry
from blueos_installer.core.config.loader import InstallerSettings
from blueos_installer.core.errors import (
    InstallCancelled,
    RuntimeBootstrapFailed,
    RuntimeBootstrapTimeout,
    SystemIntegrationError,
    TransientFetchError,
)
from blueos_installer.core.models.request import InstallationRequest
from blueos_installer.core.reliability.polling import PollCancelled, PollTimeout, poll_until
from blueos_installer.core.services.base import RegistryService

logger = logging.getLogger(__name__)

REMAP_USER = "dockremap"
REMAP_RANGE = "165536:65536"

# Install script timeout (it runs a package manager)
INSTALL_TIMEOUT = 1800


class RuntimeBootstrapper(RegistryService):
    """Ensures a functioning container engine by the end of its stage."""

    def __init__(
        self,
        registry: AdapterRegistry,
        settings: InstallerSettings,
        request: InstallationRequest,
        cancel_event: threading.Event | None = None,
    ):
        super().__init__(registry, settings)
        self._request = request
        self._cancel_event = cancel_event
        self._nested_pid: int | None = None

    @property
    def nested_pid(self) -> int | None:
        """PID of the nested daemon launched by the degraded path, if any."""
        return self._nested_pid

    # ── Stage entry points ──────────────────────────────────────

    def provision(self) -> list[str]:
        """Primary path: engine present or installed, then registered."""
        self.ensure_engine()
        return self.register_engine(strict=True)

    def provision_nested(self) -> list[str]:
        """Degraded path: nested daemon launched and answering, then registered."""
        warnings = self.start_nested_runtime()
        return warnings + self.register_engine(strict=False)

    # ── Primary path ────────────────────────────────────────────

    def engine_present(self) -> bool:
        receipt = self._docker("version")
        if receipt.ok:
            logger.info("Found %s", receipt.output or "docker")
        return receipt.ok

    def ensure_engine(self) -> None:
        """Probe for the engine; install it if absent.

        Raises:
            RuntimeBootstrapFailed: the engine is absent and could not be installed.
        """
        logger.info("Checking for docker.")
        if self.engine_present():
            return

        url = self._request.artifacts.runtime_installer_url
        logger.info("Docker not found, installing it from %s", url)
        try:
            script = self._fetch(url)
        except TransientFetchError as e:
            raise RuntimeBootstrapFailed(f"Failed to download docker install script: {e}") from e

        receipt = self._shell(
            "runtime-install",
            ["sh"],
            input=script,
            unset_env=["VERSION"],
            timeout=INSTALL_TIMEOUT,
        )
        if not receipt.ok:
            raise RuntimeBootstrapFailed(
                f"Failed to start docker, something may be wrong: {receipt.error}"
            )

    def register_engine(self, strict: bool = True) -> list[str]:
        """Enable the engine at boot and let the service user talk to it.

        With ``strict=False`` failures become warnings (the nested daemon
        of the degraded path is not a service-manager unit).
        """
        warnings: list[str] = []
        user = self.settings.service_user
        steps = [
            ("systemctl-enable-docker", ["systemctl", "enable", "docker"]),
            (f"usermod-docker-{user}", ["usermod", "-aG", "docker", user]),
        ]
        for label, argv in steps:
            receipt = self._shell(label, argv)
            if receipt.ok:
                continue
            message = f"'{' '.join(argv)}' failed: {receipt.error}"
            if strict:
                raise SystemIntegrationError(message)
            logger.warning(message)
            warnings.append(message)
        return warnings

    # ── Degraded path ───────────────────────────────────────────

    def start_nested_runtime(self) -> list[str]:
        """Launch a nested engine and wait until it answers.

        Raises:
            RuntimeBootstrapFailed: the helper could not be fetched or launched.
            RuntimeBootstrapTimeout: the daemon never answered in time.
            InstallCancelled: the wait was cancelled.
        """
        logger.info("Running in CI is enabled, trying dind.")
        self._install_nested_helper()
        warnings = self._provision_remap_range()
        self._launch_nested_daemon()
        self._wait_for_engine()
        return warnings

    def _install_nested_helper(self) -> None:
        paths = self.settings.paths
        try:
            helper = self._fetch(self._request.artifacts.nested_runtime_url)
        except TransientFetchError as e:
            raise RuntimeBootstrapFailed(f"Failed to download dind helper: {e}") from e

        receipt = self._files("write", paths.dind_binary, content=helper, mode=0o755)
        if not receipt.ok:
            raise RuntimeBootstrapFailed(f"Failed to install dind helper: {receipt.error}")

    def _provision_remap_range(self) -> list[str]:
        """Unprivileged remapped uid/gid range for container isolation.

        The group and user may already exist from an earlier run; that
        is a warning, not a failure. The id ranges are appended once.
        """
        warnings: list[str] = []
        for label, argv in (
            ("addgroup-dockremap", ["addgroup", "--system", REMAP_USER]),
            ("adduser-dockremap", ["adduser", "--system", "--ingroup", REMAP_USER, REMAP_USER]),
        ):
            receipt = self._shell(label, argv)
            if not receipt.ok:
                message = f"'{' '.join(argv)}' failed: {receipt.error}"
                logger.warning(message)
                warnings.append(message)

        entry = f"{REMAP_USER}:{REMAP_RANGE}"
        for path in (self.settings.paths.subuid, self.settings.paths.subgid):
            receipt = self._files("append_unique", path, line=entry)
            if receipt.failed:
                raise RuntimeBootstrapFailed(f"Failed to write {path}: {receipt.error}")
        return warnings

    def _launch_nested_daemon(self) -> None:
        paths = self.settings.paths
        argv = [paths.dind_binary, "dockerd", *self._request.docker_extra_opts]
        receipt = self._dispatch(
            "shell",
            "spawn",
            "dind-dockerd",
            name="dind dockerd",
            operation="spawn",
            argv=argv,
            log_path=paths.nested_daemon_log,
        )
        if not receipt.ok:
            raise RuntimeBootstrapFailed(f"Failed to launch nested docker daemon: {receipt.error}")
        self._nested_pid = receipt.metadata.get("pid")
        logger.info("Nested docker daemon launched (pid %s)", self._nested_pid)

    def _wait_for_engine(self) -> None:
        try:
            poll_until(
                lambda: self._docker("info").ok,
                timeout=self.settings.readiness_timeout,
                interval=self.settings.readiness_interval,
                cancel_event=self._cancel_event,
                label="the Docker daemon",
            )
        except PollTimeout as e:
            self._stop_nested_daemon()
            raise RuntimeBootstrapTimeout(str(e)) from e
        except PollCancelled as e:
            self._stop_nested_daemon()
            raise InstallCancelled(str(e)) from e

    def _stop_nested_daemon(self) -> None:
        if self._nested_pid is None:
            return
        try:
            os.killpg(self._nested_pid, signal.SIGTERM)
            logger.info("Stopped nested docker daemon (pid %d)", self._nested_pid)
        except ProcessLookupError:
            logger.debug("Nested docker daemon (pid %d) already gone", self._nested_pid)
        except PermissionError as e:
            logger.warning("Could not stop nested docker daemon: %s", e)
        self._nested_pid = None
