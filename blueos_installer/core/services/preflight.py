"""
Preflight validator — host checks run before any mutation.

Checks, in order, each a hard fail:

    1. architecture   — one of the supported ARM variants
    2. privilege      — effective uid is root
    3. remote         — the root artifact URL answers (bounded retry)
    4. space          — at least 1024MB free on /

Architecture and privilege are checked before any network call. The
remote probe is the only side effect.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from blueos_installer.core.errors import (
    FatalPreflightError,
    InsufficientPrivilege,
    InsufficientSpace,
    RemoteUnreachable,
    TransientFetchError,
    UnsupportedArchitecture,
)
from blueos_installer.core.models.request import InstallationRequest
from blueos_installer.core.models.system import SystemState
from blueos_installer.core.services.base import RegistryService

logger = logging.getLogger(__name__)

SUPPORTED_ARCHITECTURES: tuple[str, ...] = (
    "armhf",    # Pi, Pi2, Pi3, Pi4
    "armv7",    # Pi2, Pi3, Pi4
    "armv7l",   # Pi2, Pi3, Pi4 (Raspberry Pi OS Bullseye)
    "aarch64",  # Pi3, Pi4
)

NECESSARY_SPACE_MB = 1024


@dataclass(frozen=True)
class PreflightCheck:
    """Result of one preflight check."""

    name: str
    passed: bool
    detail: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "passed": self.passed, "detail": self.detail}


def check_architecture(state: SystemState) -> None:
    if state.architecture not in SUPPORTED_ARCHITECTURES:
        raise UnsupportedArchitecture(state.architecture, SUPPORTED_ARCHITECTURES)


def check_privilege(state: SystemState) -> None:
    if not state.is_root:
        raise InsufficientPrivilege(state.euid)


def check_space(state: SystemState, required_mb: int = NECESSARY_SPACE_MB) -> None:
    if state.free_space_mb < required_mb:
        raise InsufficientSpace(state.free_space_mb, required_mb)


class PreflightValidator(RegistryService):
    """Runs the four host checks against a freshly read SystemState."""

    def check_remote(self, request: InstallationRequest) -> None:
        url = request.artifacts.probe_url
        logger.info("Checking if network and remote are available: %s", request.root_url)
        try:
            self._fetch(url)
        except TransientFetchError as e:
            raise RemoteUnreachable(request.root_url, str(e)) from e

    def _checks(
        self, state: SystemState, request: InstallationRequest
    ) -> list[tuple[str, Callable[[], None]]]:
        return [
            ("architecture", lambda: check_architecture(state)),
            ("privilege", lambda: check_privilege(state)),
            ("remote", lambda: self.check_remote(request)),
            ("space", lambda: check_space(state)),
        ]

    def validate(self, state: SystemState, request: InstallationRequest) -> None:
        """Run every check in order.

        Raises:
            FatalPreflightError: the first failing check.
        """
        for name, check in self._checks(state, request):
            logger.debug("Preflight check: %s", name)
            check()
        logger.info(
            "Preflight passed (arch=%s, free=%dMB)", state.architecture, state.free_space_mb
        )

    def report(self, state: SystemState, request: InstallationRequest) -> list[PreflightCheck]:
        """Run the checks in order, stopping at the first failure.

        Never raises for a failing check; checks after the first failure
        are reported as not run.
        """
        results: list[PreflightCheck] = []
        failed = False
        for name, check in self._checks(state, request):
            if failed:
                results.append(PreflightCheck(name=name, passed=False, detail="not run"))
                continue
            try:
                check()
                results.append(PreflightCheck(name=name, passed=True))
            except FatalPreflightError as e:
                failed = True
                results.append(PreflightCheck(name=name, passed=False, detail=str(e)))
        return results
