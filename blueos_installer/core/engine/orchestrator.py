"""
Orchestrator — the provisioning state machine.

Stages run in one fixed order, each under a failure policy:

    PREFLIGHT → BOARD_CONFIG → RUNTIME_READY → CLEANUP → IMAGE_PULL
      → CONTAINER_CREATE → SYSTEM_FILES → NETWORK_CONFIG → DONE

    fatal       an InstallerError halts the run
    skippable   bypassed when disabled, otherwise fatal on failure
    degraded    a RecoverableRuntimeError runs the fallback (if enabled)

Stage callables return a list of warnings (or None) and raise
InstallerError on failure. The orchestrator turns every result into a
StepOutcome; nothing after a fatal outcome runs and nothing is rolled
back.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from blueos_installer.core.errors import InstallCancelled, InstallerError, RecoverableRuntimeError
from blueos_installer.core.models.outcome import (
    STAGE_ORDER,
    InstallReport,
    Stage,
    StepOutcome,
    StepPolicy,
)
from blueos_installer.core.models.request import InstallationRequest

logger = logging.getLogger(__name__)

StageRunner = Callable[[], list[str] | None]

_MARKERS = {"success": "✓", "skipped": "⊘", "degraded": "~", "fatal": "✗"}


@dataclass
class StageDefinition:
    """One state of the machine and how to run it."""

    stage: Stage
    policy: StepPolicy
    run: StageRunner
    enabled: bool = True
    skip_reason: str = ""
    fallback: StageRunner | None = None
    fallback_enabled: bool = False

    def __post_init__(self) -> None:
        if not self.enabled and self.policy is not StepPolicy.SKIPPABLE:
            raise ValueError(f"Stage {self.stage} cannot be disabled (policy {self.policy})")
        if self.fallback is not None and self.policy is not StepPolicy.DEGRADED:
            raise ValueError(f"Stage {self.stage} has a fallback but policy {self.policy}")


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"install-{now}-{short}"


def _check_order(stages: Sequence[StageDefinition]) -> None:
    positions = [STAGE_ORDER.index(d.stage) for d in stages]
    if positions != sorted(set(positions)):
        names = " → ".join(d.stage.value for d in stages)
        raise ValueError(f"Stages out of order or repeated: {names}")


class Orchestrator:
    """Runs stage definitions in order and collects their outcomes."""

    def __init__(
        self,
        stages: Sequence[StageDefinition],
        request: InstallationRequest,
        run_id: str | None = None,
        cancel_event: threading.Event | None = None,
    ):
        _check_order(stages)
        self._stages = list(stages)
        self._request = request
        self._run_id = run_id or generate_run_id()
        self._cancel_event = cancel_event

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def stages(self) -> list[Stage]:
        return [d.stage for d in self._stages]

    def run(self) -> InstallReport:
        report = InstallReport(run_id=self._run_id, request=self._request)
        logger.debug("Run %s: %s", self._run_id, " → ".join(self.stages))

        for definition in self._stages:
            if self._cancel_event is not None and self._cancel_event.is_set():
                outcome = StepOutcome.fatal(
                    definition.stage, "Installation cancelled", error_type=InstallCancelled.__name__
                )
            else:
                outcome = self.run_stage(definition)
            report.outcomes.append(outcome)
            logger.log(
                logging.ERROR if outcome.halted else logging.INFO,
                "%s %s → %s%s",
                _MARKERS[outcome.status],
                outcome.stage,
                outcome.status,
                f" ({outcome.reason})" if outcome.reason else "",
            )
            for warning in outcome.warnings:
                logger.debug("%s warning: %s", outcome.stage, warning)
            if outcome.halted:
                break

        return report

    def run_stage(self, definition: StageDefinition) -> StepOutcome:
        """Run one stage under its policy. Never raises InstallerError."""
        stage = definition.stage
        if not definition.enabled:
            return StepOutcome.skipped(stage, definition.skip_reason or "disabled")

        start = time.monotonic()
        try:
            warnings = definition.run() or []
            return StepOutcome.success(stage, warnings, duration_ms=_elapsed_ms(start))
        except RecoverableRuntimeError as e:
            if definition.fallback is None or not definition.fallback_enabled:
                return _fatal(stage, e, start)
            logger.warning("%s: %s; switching to the fallback path", stage, e)
            try:
                warnings = definition.fallback() or []
            except InstallerError as fallback_error:
                return _fatal(stage, fallback_error, start)
            return StepOutcome.degraded(stage, str(e), warnings, duration_ms=_elapsed_ms(start))
        except InstallerError as e:
            return _fatal(stage, e, start)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _fatal(stage: Stage, error: InstallerError, start: float) -> StepOutcome:
    return StepOutcome.fatal(
        stage, str(error), error_type=type(error).__name__, duration_ms=_elapsed_ms(start)
    )
