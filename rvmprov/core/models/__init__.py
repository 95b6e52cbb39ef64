"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from rvmprov.core.models import DesiredState, ObservedState, Action, Receipt
"""

from rvmprov.core.models.action import Action, ActionTag, Fact, Receipt
from rvmprov.core.models.desired import (
    DesiredState,
    InstallerSource,
    ProvisionInput,
)
from rvmprov.core.models.observed import ObservedState

__all__ = [
    # action.py
    "Action",
    "ActionTag",
    # desired.py
    "DesiredState",
    "Fact",
    "InstallerSource",
    # observed.py
    "ObservedState",
    "ProvisionInput",
    "Receipt",
]
