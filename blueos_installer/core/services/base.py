"""
Registry-backed service base.

Services describe side effects as Actions with deterministic ids and
dispatch them through the adapter registry:

    http:fetch:<url>
    shell:<label>                 shell:which:<program>
    filesystem:<operation>:<path>
    docker:<operation>[:<subject>]
"""

from __future__ import annotations

import logging
from typing import Any

from blueos_installer.adapters.registry import AdapterRegistry
from blueos_installer.core.config.loader import InstallerSettings
from blueos_installer.core.errors import TransientFetchError
from blueos_installer.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class RegistryService:
    """Base for components that act on the host through adapters."""

    def __init__(self, registry: AdapterRegistry, settings: InstallerSettings):
        self._registry = registry
        self._settings = settings

    @property
    def settings(self) -> InstallerSettings:
        return self._settings

    def _dispatch(self, adapter: str, *parts: str, name: str = "", **params: Any) -> Receipt:
        return self._registry.execute_action(Action.build(adapter, *parts, name=name, **params))

    def _fetch(self, url: str) -> str:
        """Fetch ``url`` under the bounded retry policy.

        Raises:
            TransientFetchError: the policy was exhausted.
        """
        receipt = self._dispatch("http", "fetch", url, name=f"GET {url}", url=url)
        if not receipt.ok:
            raise TransientFetchError(
                url, receipt.metadata.get("attempts", 1), receipt.error or ""
            )
        return receipt.output

    def _shell(self, label: str, argv: list[str], **params: Any) -> Receipt:
        return self._dispatch("shell", label, name=" ".join(argv), argv=argv, **params)

    def _which(self, program: str) -> bool:
        receipt = self._dispatch("shell", "which", program, operation="which", program=program)
        return receipt.ok

    def _files(self, operation: str, path: str, **params: Any) -> Receipt:
        return self._dispatch(
            "filesystem", operation, path, operation=operation, path=path, **params
        )

    def _docker(self, operation: str, subject: str = "", **params: Any) -> Receipt:
        return self._dispatch("docker", operation, subject, operation=operation, **params)
