"""
Installer error taxonomy.

Adapters never raise; services turn failed receipts into these at the
call sites where a failure must propagate. The orchestrator turns them
into fatal (or degraded) stage outcomes.
"""

from __future__ import annotations


class InstallerError(Exception):
    """Base class for every error that can halt a provisioning run."""


# ── Preflight ───────────────────────────────────────────────────────


class FatalPreflightError(InstallerError):
    """A host check failed. Always raised before any mutation."""


class UnsupportedArchitecture(FatalPreflightError):
    def __init__(self, architecture: str, supported: tuple[str, ...]):
        self.architecture = architecture
        self.supported = supported
        super().__init__(
            f"Invalid architecture: {architecture}. "
            f"Supported architectures: {' '.join(supported)}"
        )


class InsufficientPrivilege(FatalPreflightError):
    def __init__(self, euid: int):
        self.euid = euid
        super().__init__(f"Script must run as root (effective uid is {euid}).")


class RemoteUnreachable(FatalPreflightError):
    def __init__(self, url: str, detail: str = ""):
        self.url = url
        message = f"Remote is not available or install.sh does not exist: {url}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class InsufficientSpace(FatalPreflightError):
    def __init__(self, available_mb: int, required_mb: int):
        self.available_mb = available_mb
        self.required_mb = required_mb
        super().__init__(
            f"Not enough free space to install blueos, at least {required_mb}MB required "
            f"({available_mb}MB available)."
        )


# ── Runtime ─────────────────────────────────────────────────────────


class RecoverableRuntimeError(InstallerError):
    """The container engine is missing and could not be installed.

    Escalates to fatal unless the degraded (CI) path is enabled.
    """


class RuntimeBootstrapFailed(RecoverableRuntimeError):
    pass


class RuntimeBootstrapTimeout(InstallerError):
    """The nested runtime daemon never answered within the readiness window."""


class InstallCancelled(InstallerError):
    """The run was cancelled while blocked on a suspension point."""


# ── Network ─────────────────────────────────────────────────────────


class TransientFetchError(InstallerError):
    """A remote fetch kept failing after the retry policy was exhausted."""

    def __init__(self, url: str, attempts: int, detail: str = ""):
        self.url = url
        self.attempts = attempts
        message = f"Failed to fetch {url} after {attempts} attempt(s)"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# ── Images & containers ─────────────────────────────────────────────


class ContainerCleanupFailed(InstallerError):
    pass


class ImagePullFailed(InstallerError):
    pass


class ImageTagFailed(InstallerError):
    pass


class ContainerCreateFailed(InstallerError):
    pass


class ContainerNameConflict(ContainerCreateFailed):
    def __init__(self, name: str, detail: str = ""):
        self.name = name
        message = (
            f"A container named '{name}' already exists; "
            "it is only removed by the cleanup stage (unset NO_CLEAN to enable it)"
        )
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# ── System integration ──────────────────────────────────────────────


class SystemIntegrationError(InstallerError):
    """An external collaborator (script, config file, service manager) failed."""


# ── Process-level ───────────────────────────────────────────────────


class InstallerLocked(InstallerError):
    """Another installer run holds the run lock."""


class ConfigError(InstallerError):
    """Raised when installer configuration is invalid or unreadable."""
