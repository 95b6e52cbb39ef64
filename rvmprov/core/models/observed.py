"""
Observed state — the three facts probed from the live host.

Re-probed on every run and never cached. A probe that could not read
its fact reports False and leaves the reason in ``probe_errors``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rvmprov.core.models.action import Fact


class ObservedState(BaseModel):
    """What is already true for one user."""

    key_imported: bool = False
    tool_installed: bool = False
    config_matches: bool = False

    probe_errors: dict[Fact, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def satisfied(self, fact: Fact) -> bool:
        return bool(getattr(self, fact.value))

    def unsatisfied(self) -> list[Fact]:
        """Facts that are not yet true, in declaration order."""
        return [f for f in Fact if not self.satisfied(f)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "key_imported": self.key_imported,
            "tool_installed": self.tool_installed,
            "config_matches": self.config_matches,
            "probe_errors": {f.value: msg for f, msg in self.probe_errors.items()},
        }
