"""
Status use case — probe one user and show what a run would do.

Read-only: nothing is planned for execution, nothing is written.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from rvmprov.adapters.registry import AdapterRegistry
from rvmprov.core.engine.executor import ActionPlan, plan
from rvmprov.core.errors import InvalidInputError
from rvmprov.core.models.desired import DesiredState, InstallerSource, ProvisionInput
from rvmprov.core.models.observed import ObservedState
from rvmprov.core.services.probes import probe
from rvmprov.core.services.resolver import resolve


@dataclass
class StatusResult:
    desired: DesiredState | None = None
    observed: ObservedState | None = None
    pending: ActionPlan | None = None
    error: str | None = None

    @property
    def converged(self) -> bool:
        return self.pending is not None and len(self.pending) == 0

    def to_dict(self) -> dict[str, Any]:
        if self.error:
            return {"error": self.error}
        assert self.desired is not None and self.observed is not None
        return {
            "user": self.desired.user,
            "home": self.desired.home,
            "entry_point": self.desired.entry_point,
            "observed": self.observed.to_dict(),
            "pending": [t.value for t in self.pending.tags] if self.pending else [],
            "converged": self.converged,
        }


def get_status(
    raw: ProvisionInput,
    registry: AdapterRegistry,
    source: InstallerSource | None = None,
) -> StatusResult:
    result = StatusResult()
    try:
        result.desired = resolve(raw)
    except InvalidInputError as e:
        result.error = str(e)
        return result

    result.observed = probe(result.desired, registry, source)
    result.pending = plan(result.desired, result.observed, source)
    return result
