"""
History use case — read recent provisioning runs from the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from blueos_installer.core.config.loader import InstallerSettings, find_config_file, load_settings
from blueos_installer.core.errors import ConfigError
from blueos_installer.core.persistence.history import HistoryLedger, InstallRecord


@dataclass
class HistoryResult:
    records: list[InstallRecord] = field(default_factory=list)
    ledger_path: Path | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "ledger": str(self.ledger_path) if self.ledger_path else None,
            "records": [r.model_dump(mode="json") for r in self.records],
        }


def read_history(
    n: int = 10,
    config_path: Path | None = None,
    settings: InstallerSettings | None = None,
) -> HistoryResult:
    """Return the ``n`` most recent run records, oldest first."""
    result = HistoryResult()
    try:
        if settings is None:
            settings = load_settings(config_path or find_config_file())
    except ConfigError as e:
        result.error = str(e)
        return result

    ledger = HistoryLedger(settings.paths.history_file)
    result.ledger_path = ledger.path
    result.records = ledger.read_recent(n)
    return result
