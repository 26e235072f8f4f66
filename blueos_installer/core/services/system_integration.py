"""
System integration — invoke the external collaborators.

The installer does not implement board configuration, the udev rules or
the network setup; it fetches them from the artifact root and runs or
places them. Best-effort call sites (radio unblock, Raspberry Pi camera
support, rc.local autostart) turn failures into warnings; everything
else raises SystemIntegrationError.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from blueos_installer.adapters.registry import AdapterRegistry
from blueos_installer.core.config.loader import InstallerSettings
from blueos_installer.core.errors import SystemIntegrationError
from blueos_installer.core.models.containers import CONTROL_CONTAINER_NAME
from blueos_installer.core.models.request import InstallationRequest
from blueos_installer.core.services.base import RegistryService

logger = logging.getLogger(__name__)

SCRIPT_TIMEOUT = 1800

LINK_LOCAL_POLICY = "noipv4ll"
AUTOSTART_LINE = f"docker start {CONTROL_CONTAINER_NAME}"
AUTOSTART_ANCHOR = r"^exit 0"

LEGACY_CAMERA_RELEASE = "bullseye"


class SystemIntegrator(RegistryService):
    """Runs the board, system-file, network and reboot steps."""

    def __init__(
        self,
        registry: AdapterRegistry,
        settings: InstallerSettings,
        request: InstallationRequest,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(registry, settings)
        self._request = request
        self._sleep = sleep

    # ── Board configuration ─────────────────────────────────────

    def configure_board(self) -> list[str]:
        logger.info("Starting hardware configuration.")
        self._run_remote_script("board-config", self._request.artifacts.board_config_url)
        return []

    # ── System files ────────────────────────────────────────────

    def install_system_files(self) -> list[str]:
        warnings: list[str] = []
        warnings += self.unblock_radios()
        self.install_udev_rules()
        self.disable_link_local()
        warnings += self.enable_legacy_camera()
        warnings += self.register_autostart()
        return warnings

    def unblock_radios(self) -> list[str]:
        logger.info("Checking for blocked wifi and bluetooth.")
        if not self._which("rfkill"):
            return ["rfkill not available; wifi and bluetooth left as they are"]
        receipt = self._shell("rfkill-unblock", ["rfkill", "unblock", "all"])
        if not receipt.ok:
            message = f"rfkill unblock failed: {receipt.error}"
            logger.warning(message)
            return [message]
        return []

    def install_udev_rules(self) -> None:
        logger.info("Downloading and installing udev rules.")
        rules = self._fetch(self._request.artifacts.udev_rules_url)
        path = self.settings.paths.udev_rules
        receipt = self._files("write", path, content=rules)
        if not receipt.ok:
            raise SystemIntegrationError(f"Failed to install udev rules: {receipt.error}")

    def disable_link_local(self) -> None:
        """Remove every existing policy line, then append exactly one."""
        logger.info("Disabling automatic Link-local configuration in dhcpcd.conf.")
        path = self.settings.paths.dhcpcd_conf
        receipt = self._files("remove_lines", path, contains=LINK_LOCAL_POLICY)
        if receipt.failed:
            raise SystemIntegrationError(f"Failed to edit {path}: {receipt.error}")
        receipt = self._files("append_line", path, line=LINK_LOCAL_POLICY)
        if not receipt.ok:
            raise SystemIntegrationError(f"Failed to edit {path}: {receipt.error}")

    def enable_legacy_camera(self) -> list[str]:
        """Legacy camera stack on Raspberry Pi OS bullseye. Best-effort."""
        if not self._which("raspi-config"):
            logger.debug("raspi-config not found; not a Raspberry Pi")
            return []

        logger.info("Running in a Raspberry Pi.")
        release = self._shell("lsb-release-codename", ["lsb_release", "-sc"])
        if not release.ok or release.output.strip() != LEGACY_CAMERA_RELEASE:
            logger.info("Not on bullseye - no need to enable legacy camera support")
            return []

        probe = self._shell("raspi-config-get-legacy", ["raspi-config", "nonint", "get_legacy"])
        if not probe.ok:
            return []

        logger.info("Enabling legacy camera support.")
        receipt = self._shell("raspi-config-do-legacy", ["raspi-config", "nonint", "do_legacy", "0"])
        if not receipt.ok:
            message = f"Failed to enable legacy camera support: {receipt.error}"
            logger.warning(message)
            return [message]
        return []

    def register_autostart(self) -> list[str]:
        """Start the control container from rc.local, inserted once."""
        path = self.settings.paths.rc_local
        receipt = self._files("insert_before", path, pattern=AUTOSTART_ANCHOR, line=AUTOSTART_LINE)
        if receipt.ok:
            return []
        if receipt.skipped and receipt.metadata.get("already_present"):
            logger.debug("Autostart entry already present in %s", path)
            return []
        message = f"Failed to add '{AUTOSTART_LINE}' entry in {path}: {receipt.error or receipt.output}"
        logger.warning(message)
        return [message]

    # ── Network ─────────────────────────────────────────────────

    def configure_network(self) -> list[str]:
        logger.info("Starting network configuration.")
        self._run_remote_script("network-config", self._request.artifacts.network_config_url)
        return []

    # ── Reboot ──────────────────────────────────────────────────

    def schedule_reboot(self) -> None:
        delay = self.settings.reboot_delay
        logger.info("Installation finished successfully.")
        logger.info("You can access after the reboot:")
        logger.info("- The computer webpage: http://blueos.local")
        logger.info("- The ssh client: %s@blueos.local", self.settings.service_user)
        logger.info("System will reboot in %d seconds.", delay)
        self._sleep(delay)
        receipt = self._shell("reboot", ["reboot"])
        if not receipt.ok:
            raise SystemIntegrationError(f"Failed to reboot: {receipt.error}")

    # ── Helpers ─────────────────────────────────────────────────

    def _run_remote_script(self, label: str, url: str) -> None:
        script = self._fetch(url)
        receipt = self._shell(label, ["bash"], input=script, timeout=SCRIPT_TIMEOUT)
        if not receipt.ok:
            raise SystemIntegrationError(f"{url} failed: {receipt.error}")
