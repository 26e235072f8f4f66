"""
Container models — image references and the control container spec.

These values are built by the container manager for one run and have
no existence outside it.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

IMAGE_NAMESPACE = "sakthiveljayabal"
BOOTSTRAP_REPOSITORY = f"{IMAGE_NAMESPACE}/blueos-bootstrap"
CORE_REPOSITORY = f"{IMAGE_NAMESPACE}/blueos-core"
FACTORY_TAG = "factory"

CONTROL_CONTAINER_NAME = "blueos-bootstrap"
DOCKER_SOCKET = "/var/run/docker.sock"


class ContainerImageRef(BaseModel):
    """A (repository, tag) pair."""

    model_config = ConfigDict(frozen=True)

    repository: str
    tag: str

    @property
    def reference(self) -> str:
        return f"{self.repository}:{self.tag}"

    def retag(self, tag: str) -> ContainerImageRef:
        """Same repository, different tag."""
        return ContainerImageRef(repository=self.repository, tag=tag)

    def __str__(self) -> str:
        return self.reference


class ImageSet(BaseModel):
    """The three live image refs of a run.

    ``factory`` is the rollback alias. It is only ever produced by
    retagging the already-pulled ``core`` image, never pulled.
    """

    model_config = ConfigDict(frozen=True)

    bootstrap: ContainerImageRef
    core: ContainerImageRef
    factory: ContainerImageRef

    @classmethod
    def for_version(cls, version: str) -> ImageSet:
        core = ContainerImageRef(repository=CORE_REPOSITORY, tag=version)
        return cls(
            bootstrap=ContainerImageRef(repository=BOOTSTRAP_REPOSITORY, tag=version),
            core=core,
            factory=core.retag(FACTORY_TAG),
        )


class BindMount(BaseModel):
    """A host path bound into the container."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str

    def to_arg(self) -> str:
        return f"{self.source}:{self.target}"


class ContainerSpec(BaseModel):
    """The persistent control container.

    Fixed by design; only ``home`` (path expansion) varies per host.
    """

    model_config = ConfigDict(frozen=True)

    name: str = CONTROL_CONTAINER_NAME
    image: ContainerImageRef
    tty: bool = True
    restart_policy: str = "unless-stopped"
    network_mode: str = "host"
    mounts: tuple[BindMount, ...] = ()
    environment: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def control(
        cls,
        image: ContainerImageRef,
        home: str,
        docker_socket: str = DOCKER_SOCKET,
    ) -> ContainerSpec:
        """The control container spec for a host whose admin home is ``home``."""
        config_root = f"{home.rstrip('/')}/.config/blueos"
        return cls(
            image=image,
            mounts=(
                BindMount(source=f"{config_root}/bootstrap", target="/root/.config/bootstrap"),
                BindMount(source=docker_socket, target="/var/run/docker.sock"),
            ),
            environment={"BLUEOS_CONFIG_PATH": config_root},
        )

    def to_create_args(self) -> list[str]:
        """Arguments for ``docker create`` (without the leading ``create``)."""
        args: list[str] = []
        if self.tty:
            args.append("-t")
        args += ["--restart", self.restart_policy]
        args += ["--name", self.name]
        args.append(f"--net={self.network_mode}")
        for mount in self.mounts:
            args += ["-v", mount.to_arg()]
        for key, value in self.environment.items():
            args += ["-e", f"{key}={value}"]
        args.append(self.image.reference)
        return args
