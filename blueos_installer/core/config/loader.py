"""
Configuration loader — installer settings and the installation request.

Two things are resolved here, once, at startup:

    InstallerSettings   — how to install: host paths, fetch policy,
                          timeouts. Read from an optional YAML file and
                          validated against Pydantic schemas.
    InstallationRequest — what to install: version, repository, flags.
                          CLI flags plus environment overrides.

Precedence for request values:
    CLI flag  >  environment variable  >  built-in default
"""

from __future__ import annotations

import logging
import os
import shlex
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from blueos_installer.core.errors import ConfigError
from blueos_installer.core.models.request import InstallationRequest

logger = logging.getLogger(__name__)

# Default config location (optional; defaults apply when absent)
DEFAULT_CONFIG_FILE = Path("/etc/blueos/installer.yml")
CONFIG_ENV_VAR = "BLUEOS_INSTALLER_CONFIG"


class HostPaths(BaseModel):
    """Host file locations the installer reads or writes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    udev_rules: str = "/etc/udev/rules.d/100.autopilot.rules"
    dhcpcd_conf: str = "/etc/dhcpcd.conf"
    rc_local: str = "/etc/rc.local"
    dind_binary: str = "/usr/local/bin/dind"
    subuid: str = "/etc/subuid"
    subgid: str = "/etc/subgid"
    docker_socket: str = "/var/run/docker.sock"
    nested_daemon_log: str = "/var/log/blueos-dind.log"
    lock_file: str = "/run/blueos-installer.lock"
    history_file: str = "/var/lib/blueos-installer/history.ndjson"


class FetchPolicy(BaseModel):
    """Bounded retry policy applied to every remote fetch."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    attempts: int = Field(default=6, ge=1)
    attempt_timeout: float = Field(default=15.0, gt=0)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)


class InstallerSettings(BaseModel):
    """Everything about *how* a run executes on this host."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    paths: HostPaths = Field(default_factory=HostPaths)
    fetch: FetchPolicy = Field(default_factory=FetchPolicy)

    readiness_timeout: float = Field(default=120.0, gt=0)
    readiness_interval: float = Field(default=1.0, gt=0)
    reboot_delay: float = Field(default=10.0, ge=0)

    # "all" stops and removes every container on the host; "blueos"
    # restricts cleanup to containers whose name matches "blueos".
    cleanup_scope: Literal["all", "blueos"] = "all"

    service_user: str = "pi"
    home: str = Field(default_factory=lambda: os.path.expanduser("~"))


def find_config_file(environ: Mapping[str, str] | None = None) -> Path | None:
    """Locate the settings file: env var first, then the default location.

    Returns:
        Path to the YAML file, or None when no file is configured.
    """
    env = os.environ if environ is None else environ
    explicit = env.get(CONFIG_ENV_VAR)
    if explicit:
        return Path(explicit)
    if DEFAULT_CONFIG_FILE.is_file():
        return DEFAULT_CONFIG_FILE
    return None


def load_settings(path: Path | None = None) -> InstallerSettings:
    """Load and validate installer settings.

    Args:
        path: Explicit path to a YAML settings file. If None, built-in
            defaults are used.

    Returns:
        Validated InstallerSettings.

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid.
    """
    if path is None:
        logger.debug("No settings file, using defaults")
        return InstallerSettings()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading installer settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under an "installer" key or be flat
    settings_data = data.get("installer", data)

    try:
        settings = InstallerSettings.model_validate(settings_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid installer configuration: {e}") from e

    logger.info("Loaded installer settings from %s", path)
    return settings


def _env_value(env: Mapping[str, str], key: str) -> str | None:
    """Environment lookup where an empty value counts as unset."""
    value = env.get(key)
    return value if value else None


def _split_opts(value: str) -> tuple[str, ...]:
    """Split DOCKER_EXTRA_OPTS the way a shell would."""
    try:
        return tuple(shlex.split(value))
    except ValueError as e:
        raise ConfigError(f"Invalid DOCKER_EXTRA_OPTS {value!r}: {e}") from e


def resolve_request(
    *,
    skip_board_config: bool = False,
    ci_run: bool = False,
    environ: Mapping[str, str] | None = None,
) -> InstallationRequest:
    """Build the immutable request from CLI flags and the environment.

    Environment overrides:
        VERSION            target BlueOS version (default: release)
        GITHUB_REPOSITORY  artifact repository (owner/name)
        REMOTE             root artifact URL override
        NO_CLEAN           any non-empty value disables the cleanup stage
        DOCKER_EXTRA_OPTS  extra options for the nested runtime daemon,
                           split with shell quoting rules

    Raises:
        ConfigError: If DOCKER_EXTRA_OPTS has unbalanced quotes.
    """
    env = os.environ if environ is None else environ

    request = InstallationRequest(
        version=_env_value(env, "VERSION") or "",
        repository=_env_value(env, "GITHUB_REPOSITORY") or "",
        remote=_env_value(env, "REMOTE") or "",
        skip_board_config=skip_board_config,
        ci_run=ci_run,
        no_clean=_env_value(env, "NO_CLEAN") is not None,
        docker_extra_opts=_split_opts(env.get("DOCKER_EXTRA_OPTS", "")),
    )
    logger.debug("Resolved request: %s", request.model_dump(mode="json"))
    return request
