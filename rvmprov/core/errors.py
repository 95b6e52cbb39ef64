"""
Error taxonomy for provisioning runs.

Adapters never raise: they return Receipts. These exceptions live one
layer up, where the engine turns a failed receipt into a named failure:

    InvalidInputError        bad operator input (empty user, relative home)
    ProbeError               a probe could not read host state; absorbed by
                             the checker and reported as "not satisfied"
    ActionExecutionError     the adapter failure behind a failed step
    PrerequisiteFailedError  a step failed and halted everything after it
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rvmprov.core.models.action import ActionTag, Receipt


class ProvisionError(Exception):
    """Base class for every provisioning error."""


class InvalidInputError(ProvisionError, ValueError):
    """Raised when operator input cannot become a DesiredState."""


class ProbeError(ProvisionError):
    """Raised by a single probe when host state cannot be read."""

    def __init__(self, fact: str, message: str):
        super().__init__(f"{fact}: {message}")
        self.fact = fact
        self.message = message


class ActionExecutionError(ProvisionError):
    """Wraps the receipt of the adapter call that failed a step."""

    def __init__(self, step: ActionTag, receipt: Receipt):
        detail = receipt.error or "no error output"
        super().__init__(f"{step.value} failed: {detail}")
        self.step = step
        self.receipt = receipt


class PrerequisiteFailedError(ProvisionError):
    """A plan step failed; the steps after it were not attempted."""

    def __init__(self, step: ActionTag, skipped: list[ActionTag] | None = None):
        self.step = step
        self.skipped = list(skipped or [])
        message = f"Step '{step.value}' failed"
        if self.skipped:
            message += "; skipped " + ", ".join(s.value for s in self.skipped)
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        cause = self.__cause__
        return {
            "type": type(self).__name__,
            "step": self.step.value,
            "skipped": [s.value for s in self.skipped],
            "message": str(self),
            "cause": str(cause) if cause else None,
        }
