"""
Run history — append-only ledger of provisioning runs.

Every run, successful or halted, appends one NDJSON (newline-delimited
JSON) record. The ledger is append-only: entries are never modified or
deleted. Failing to write it never fails a run.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from blueos_installer.core.models.outcome import InstallReport

logger = logging.getLogger(__name__)


class InstallRecord(BaseModel):
    """A single history entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""

    # What was requested
    version: str = ""
    root_url: str = ""
    flags: dict[str, bool] = Field(default_factory=dict)

    # What happened
    status: str = ""               # ok, degraded, failed
    failed_stage: str | None = None
    stages: list[dict[str, Any]] = Field(default_factory=list)
    duration_ms: int = 0

    # Errors and warnings (if any)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: InstallReport) -> InstallRecord:
        request = report.request
        failed = report.failed_outcome
        return cls(
            run_id=report.run_id,
            version=request.version,
            root_url=request.root_url,
            flags={
                "skip_board_config": request.skip_board_config,
                "ci_run": request.ci_run,
                "no_clean": request.no_clean,
            },
            status=report.status,
            failed_stage=failed.stage.value if failed else None,
            stages=[
                {"stage": o.stage.value, "status": o.status, "duration_ms": o.duration_ms}
                for o in report.outcomes
            ],
            duration_ms=sum(o.duration_ms for o in report.outcomes),
            errors=[failed.reason] if failed else [],
            warnings=[w for o in report.outcomes for w in o.warnings],
        )


class HistoryLedger:
    """Append-only run history writer/reader.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist.
    """

    def __init__(self, path: Path | str):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, record: InstallRecord) -> bool:
        """Append a record to the ledger.

        Returns:
            True if the record was written.
        """
        data = record.model_dump(mode="json")
        line = json.dumps(data, ensure_ascii=False) + "\n"

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("History record written: %s", record.run_id)
            return True
        except OSError as e:
            logger.error("Failed to write history record: %s", e)
            return False

    def read_all(self) -> list[InstallRecord]:
        """Read all records from the ledger, oldest first."""
        if not self._path.is_file():
            return []

        records = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(InstallRecord.model_validate(json.loads(line)))
                    except ValueError as e:
                        logger.warning("Skipping corrupt history entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read history ledger: %s", e)

        return records

    def read_recent(self, n: int = 10) -> list[InstallRecord]:
        """Read the most recent N records."""
        if n <= 0:
            return []
        return self.read_all()[-n:]
