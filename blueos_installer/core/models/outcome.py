"""
Stage outcomes — the typed result of every orchestrator step.

A run is an ordered list of StepOutcomes. The orchestrator never
inspects exceptions after a stage finishes; it only reads outcomes.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from blueos_installer.core.models.request import InstallationRequest


class Stage(StrEnum):
    """Provisioning stages, in their only legal order."""

    PREFLIGHT = "PREFLIGHT"
    BOARD_CONFIG = "BOARD_CONFIG"
    RUNTIME_READY = "RUNTIME_READY"
    CLEANUP = "CLEANUP"
    IMAGE_PULL = "IMAGE_PULL"
    CONTAINER_CREATE = "CONTAINER_CREATE"
    SYSTEM_FILES = "SYSTEM_FILES"
    NETWORK_CONFIG = "NETWORK_CONFIG"
    DONE = "DONE"


STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)


class StepPolicy(StrEnum):
    """What a stage failure means for the run."""

    FATAL = "fatal"            # failure halts the run
    SKIPPABLE = "skippable"    # bypassed when disabled, otherwise fatal
    DEGRADED = "degraded"      # failure substitutes an alternate path


OutcomeStatus = Literal["success", "skipped", "fatal", "degraded"]


class StepOutcome(BaseModel):
    """Result of one stage."""

    stage: Stage
    status: OutcomeStatus
    reason: str = ""
    error_type: str | None = None
    warnings: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def halted(self) -> bool:
        return self.status == "fatal"

    @classmethod
    def success(cls, stage: Stage, warnings: list[str] | None = None, **kwargs) -> StepOutcome:
        return cls(stage=stage, status="success", warnings=list(warnings or []), **kwargs)

    @classmethod
    def skipped(cls, stage: Stage, reason: str) -> StepOutcome:
        return cls(stage=stage, status="skipped", reason=reason)

    @classmethod
    def fatal(cls, stage: Stage, reason: str, error_type: str | None = None, **kwargs) -> StepOutcome:
        return cls(stage=stage, status="fatal", reason=reason, error_type=error_type, **kwargs)

    @classmethod
    def degraded(cls, stage: Stage, reason: str, warnings: list[str] | None = None, **kwargs) -> StepOutcome:
        return cls(
            stage=stage, status="degraded", reason=reason, warnings=list(warnings or []), **kwargs
        )


class InstallReport(BaseModel):
    """Everything a run did, in order."""

    run_id: str
    request: InstallationRequest
    outcomes: list[StepOutcome] = Field(default_factory=list)

    @property
    def failed_outcome(self) -> StepOutcome | None:
        for outcome in self.outcomes:
            if outcome.halted:
                return outcome
        return None

    @property
    def failed_stage(self) -> Stage | None:
        failed = self.failed_outcome
        return failed.stage if failed else None

    @property
    def succeeded(self) -> bool:
        return self.failed_outcome is None and self.reached(Stage.DONE)

    @property
    def status(self) -> str:
        if self.failed_outcome is not None:
            return "failed"
        if any(o.status == "degraded" for o in self.outcomes):
            return "degraded"
        return "ok"

    def reached(self, stage: Stage) -> bool:
        """Whether ``stage`` produced an outcome in this run."""
        return any(o.stage == stage for o in self.outcomes)

    def outcome_for(self, stage: Stage) -> StepOutcome | None:
        for outcome in self.outcomes:
            if outcome.stage == stage:
                return outcome
        return None

    @property
    def stages_run(self) -> list[Stage]:
        return [o.stage for o in self.outcomes]

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "request": self.request.model_dump(mode="json"),
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
        }
