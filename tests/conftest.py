"""
Shared test fixtures and configuration.

Host tools (docker, shell commands, HTTP) are MockAdapters registered
under the real adapter names; file edits go through the real
FilesystemAdapter against files under tmp_path.
"""

from pathlib import Path

import pytest

from blueos_installer.adapters.mock import MockAdapter
from blueos_installer.adapters.registry import AdapterRegistry
from blueos_installer.adapters.shell.filesystem import FilesystemAdapter
from blueos_installer.core.config.loader import HostPaths, InstallerSettings
from blueos_installer.core.models.request import InstallationRequest
from blueos_installer.core.models.system import SystemState

RC_LOCAL = """#!/bin/sh -e
#
# rc.local
#
exit 0
"""

DHCPCD_CONF = """hostname
clientid
persistent
"""


@pytest.fixture
def host_paths(tmp_path: Path) -> HostPaths:
    """Host files under tmp_path, with dhcpcd.conf and rc.local present."""
    etc = tmp_path / "etc"
    etc.mkdir()
    (etc / "dhcpcd.conf").write_text(DHCPCD_CONF)
    (etc / "rc.local").write_text(RC_LOCAL)
    return HostPaths(
        udev_rules=str(etc / "udev" / "rules.d" / "100.autopilot.rules"),
        dhcpcd_conf=str(etc / "dhcpcd.conf"),
        rc_local=str(etc / "rc.local"),
        dind_binary=str(tmp_path / "usr" / "local" / "bin" / "dind"),
        subuid=str(etc / "subuid"),
        subgid=str(etc / "subgid"),
        nested_daemon_log=str(tmp_path / "dind.log"),
        lock_file=str(tmp_path / "run" / "blueos-installer.lock"),
        history_file=str(tmp_path / "var" / "history.ndjson"),
    )


@pytest.fixture
def settings(host_paths: HostPaths) -> InstallerSettings:
    return InstallerSettings(
        paths=host_paths,
        readiness_timeout=0.2,
        readiness_interval=0.01,
        home="/home/pi",
    )


@pytest.fixture
def install_request() -> InstallationRequest:
    return InstallationRequest()


@pytest.fixture
def docker() -> MockAdapter:
    return MockAdapter(adapter_name="docker", default_output="")


@pytest.fixture
def shell() -> MockAdapter:
    return MockAdapter(adapter_name="shell", default_output="")


@pytest.fixture
def http() -> MockAdapter:
    return MockAdapter(adapter_name="http", default_output="#!/bin/sh\necho remote\n")


@pytest.fixture
def registry(docker: MockAdapter, shell: MockAdapter, http: MockAdapter) -> AdapterRegistry:
    reg = AdapterRegistry()
    reg.register(docker)
    reg.register(shell)
    reg.register(http)
    reg.register(FilesystemAdapter())
    return reg


@pytest.fixture
def host_state() -> SystemState:
    """A supported, privileged host with plenty of space."""
    return SystemState(architecture="aarch64", euid=0, free_space_mb=8192)
