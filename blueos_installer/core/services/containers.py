"""
Image & container manager — pinned images and the control container.

    cleanup  (optional)  stop + remove containers, prune images
    pull                 bootstrap and core images at the requested version
    tag                  core → factory alias (only after the core pull)
    create               the control container, not started

The container inventory is read from the engine at the moment cleanup
needs it, never cached.
"""

from __future__ import annotations

import logging

from blueos_installer.adapters.registry import AdapterRegistry
from blueos_installer.core.config.loader import InstallerSettings
from blueos_installer.core.errors import (
    ContainerCleanupFailed,
    ContainerCreateFailed,
    ContainerNameConflict,
    ImagePullFailed,
    ImageTagFailed,
)
from blueos_installer.core.models.containers import ContainerImageRef, ContainerSpec, ImageSet
from blueos_installer.core.models.request import InstallationRequest
from blueos_installer.core.services.base import RegistryService

logger = logging.getLogger(__name__)

# Name filter used when cleanup is scoped to this system's containers
SCOPED_NAME_FILTER = "blueos"


class ContainerManager(RegistryService):
    """Brings exactly one control container into existence."""

    def __init__(
        self,
        registry: AdapterRegistry,
        settings: InstallerSettings,
        request: InstallationRequest,
    ):
        super().__init__(registry, settings)
        self._request = request
        self._images = ImageSet.for_version(request.version)

    @property
    def images(self) -> ImageSet:
        return self._images

    @property
    def control_spec(self) -> ContainerSpec:
        return ContainerSpec.control(
            image=self._images.bootstrap,
            home=self.settings.home,
            docker_socket=self.settings.paths.docker_socket,
        )

    # ── Cleanup ─────────────────────────────────────────────────

    def list_containers(self) -> list[str]:
        """Container ids on the host (scoped by ``cleanup_scope``)."""
        params = {}
        if self.settings.cleanup_scope == "blueos":
            params["name_filter"] = SCOPED_NAME_FILTER
        receipt = self._docker("ps", **params)
        if not receipt.ok:
            raise ContainerCleanupFailed(f"Failed to list containers: {receipt.error}")
        return receipt.output.split()

    def cleanup(self) -> list[str]:
        """Stop and remove containers, then prune images.

        Returns:
            Warnings (an empty inventory is reported, not raised).
        """
        containers = self.list_containers()
        if not containers:
            message = "No containers to clean up."
            logger.info(message)
            return [message]

        logger.info("Stopping running dockers.")
        receipt = self._docker("stop", containers=containers)
        if not receipt.ok:
            raise ContainerCleanupFailed(f"Failed to stop containers: {receipt.error}")

        logger.info("Removing dockers.")
        receipt = self._docker("rm", containers=containers)
        if not receipt.ok:
            raise ContainerCleanupFailed(f"Failed to remove containers: {receipt.error}")

        receipt = self._docker(
            "image_prune", all_images=self.settings.cleanup_scope == "all"
        )
        if not receipt.ok:
            raise ContainerCleanupFailed(f"Failed to prune images: {receipt.error}")
        return []

    # ── Images ──────────────────────────────────────────────────

    def pull(self, image: ContainerImageRef) -> None:
        logger.info("Pulling %s", image)
        receipt = self._docker("pull", image.reference, image=image.reference)
        if not receipt.ok:
            raise ImagePullFailed(f"Failed to pull {image}: {receipt.error}")

    def pull_images(self) -> list[str]:
        """Pull bootstrap and core, then alias core as the factory image.

        The factory tag is only attempted after the core pull succeeded,
        so the alias can never point at a missing image.
        """
        logger.info("Going to install blueos-docker version %s.", self._request.version)
        logger.info("Downloading bootstrap")
        self.pull(self._images.bootstrap)
        self.pull(self._images.core)
        self.tag_factory()
        return []

    def tag_factory(self) -> None:
        core, factory = self._images.core, self._images.factory
        receipt = self._docker(
            "tag", factory.reference, source=core.reference, target=factory.reference
        )
        if not receipt.ok:
            raise ImageTagFailed(f"Failed to tag {core} as {factory}: {receipt.error}")
        logger.info("Tagged %s as %s (factory reset target)", core, factory)

    # ── Control container ───────────────────────────────────────

    def create_control_container(self) -> list[str]:
        """Create (not start) the control container.

        A same-named container is not removed first; outside the
        cleanup stage that is a ContainerNameConflict.
        """
        spec = self.control_spec
        logger.info("Creating %s container", spec.name)
        receipt = self._docker("create", spec.name, args=spec.to_create_args())
        if receipt.ok:
            return []
        if receipt.metadata.get("conflict"):
            raise ContainerNameConflict(spec.name, receipt.error or "")
        raise ContainerCreateFailed(f"Failed to create {spec.name}: {receipt.error}")
