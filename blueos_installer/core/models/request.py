"""
InstallationRequest — the immutable description of one provisioning run.

Resolved once at startup from CLI flags and environment overrides
(see ``core.config.loader.resolve_request``) and then handed, read-only,
to every component. Frozen: assigning to a field raises.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, computed_field, model_validator

DEFAULT_VERSION = "release"
DEFAULT_REPOSITORY = "sakthivelj/coratiaos-docker"
GITHUB_RAW_URL = "https://raw.githubusercontent.com"

RUNTIME_INSTALL_URL = "https://get.docker.com"

# Nested-runtime helper, pinned to a fixed upstream revision.
NESTED_RUNTIME_COMMIT = "52379fa76dee07ca038624d639d9e14f4fb719ff"
NESTED_RUNTIME_URL = (
    f"{GITHUB_RAW_URL}/moby/moby/{NESTED_RUNTIME_COMMIT}/hack/dind"
)

# Sub-paths fetched under the root URL.
ARTIFACT_PATHS: dict[str, str] = {
    "probe": "install/install.sh",
    "board_config": "install/boards/configure_board.sh",
    "udev_rules": "install/udev/100.autopilot.rules",
    "network_config": "install/network/avahi.sh",
}


class RemoteArtifactSet(BaseModel):
    """The remote resources a run fetches.

    Everything but the runtime installer and the nested-runtime helper
    lives under ``root_url``. The ``probe`` artifact is fetched at
    Preflight; no other fetch is trusted before it succeeds.
    """

    model_config = ConfigDict(frozen=True)

    root_url: str
    runtime_installer_url: str = RUNTIME_INSTALL_URL
    nested_runtime_url: str = NESTED_RUNTIME_URL

    def url(self, name: str) -> str:
        """Absolute URL of a named artifact under the root."""
        try:
            sub_path = ARTIFACT_PATHS[name]
        except KeyError:
            raise KeyError(
                f"Unknown artifact '{name}'. Known: {', '.join(sorted(ARTIFACT_PATHS))}"
            ) from None
        return f"{self.root_url.rstrip('/')}/{sub_path}"

    @property
    def probe_url(self) -> str:
        return self.url("probe")

    @property
    def board_config_url(self) -> str:
        return self.url("board_config")

    @property
    def udev_rules_url(self) -> str:
        return self.url("udev_rules")

    @property
    def network_config_url(self) -> str:
        return self.url("network_config")


class InstallationRequest(BaseModel):
    """What to install, from where, and how.

    ``remote`` defaults to the raw-content URL of ``repository``; the
    resolved ``root_url`` is ``<remote>/<version>``.
    """

    model_config = ConfigDict(frozen=True)

    version: str = DEFAULT_VERSION
    repository: str = DEFAULT_REPOSITORY
    remote: str = ""

    skip_board_config: bool = False
    ci_run: bool = False
    no_clean: bool = False

    # Extra nested runtime daemon arguments (degraded path only).
    docker_extra_opts: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _default_remote(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for key, default in (("version", DEFAULT_VERSION), ("repository", DEFAULT_REPOSITORY)):
                if not data.get(key):
                    data[key] = default
            if not data.get("remote"):
                data["remote"] = f"{GITHUB_RAW_URL}/{data['repository']}"
        return data

    @computed_field  # type: ignore[prop-decorator]
    @property
    def root_url(self) -> str:
        return f"{self.remote.rstrip('/')}/{self.version}"

    @property
    def artifacts(self) -> RemoteArtifactSet:
        """The remote artifact set rooted at this request's URL."""
        return RemoteArtifactSet(root_url=self.root_url)
