"""
Domain models — Pydantic types for the installer.

All models are re-exported here for convenient access:

    from blueos_installer.core.models import InstallationRequest, Receipt, Stage
"""

from blueos_installer.core.models.action import Action, Receipt
from blueos_installer.core.models.containers import (
    BindMount,
    ContainerImageRef,
    ContainerSpec,
    ImageSet,
)
from blueos_installer.core.models.outcome import (
    STAGE_ORDER,
    InstallReport,
    Stage,
    StepOutcome,
    StepPolicy,
)
from blueos_installer.core.models.request import InstallationRequest, RemoteArtifactSet
from blueos_installer.core.models.system import SystemState

__all__ = [
    # action.py
    "Action",
    "Receipt",
    # containers.py
    "BindMount",
    "ContainerImageRef",
    "ContainerSpec",
    "ImageSet",
    # outcome.py
    "InstallReport",
    "STAGE_ORDER",
    "Stage",
    "StepOutcome",
    "StepPolicy",
    # request.py
    "InstallationRequest",
    "RemoteArtifactSet",
    # system.py
    "SystemState",
]
