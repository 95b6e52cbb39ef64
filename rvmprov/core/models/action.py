"""
Action and Receipt models — the execution contract.

An Action names one host operation by its semantic tag; the shell text
that carries it out is a parameter, never its identity. Adapters take
Actions and hand back Receipts. Never exceptions.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Fact(str, Enum):
    """One piece of observed host state."""

    KEY_IMPORTED = "key_imported"
    TOOL_INSTALLED = "tool_installed"
    CONFIG_MATCHES = "config_matches"


class ActionTag(str, Enum):
    """The three mutating steps a plan can contain."""

    IMPORT_KEY = "import_key"
    INSTALL_TOOL = "install_tool"
    WRITE_CONFIG = "write_config"

    @property
    def fact(self) -> Fact:
        """The observed fact this step makes true."""
        return _TAG_FACTS[self]


_TAG_FACTS = {
    ActionTag.IMPORT_KEY: Fact.KEY_IMPORTED,
    ActionTag.INSTALL_TOOL: Fact.TOOL_INSTALLED,
    ActionTag.WRITE_CONFIG: Fact.CONFIG_MATCHES,
}


class Action(BaseModel):
    """A requested operation to be executed by an adapter.

    Plan steps carry a ``tag``; read-only probes leave it empty.
    """

    id: str                         # unique action identifier
    name: str = ""                  # human-readable name
    adapter: str                    # which adapter handles this
    tag: ActionTag | None = None
    params: dict[str, Any] = Field(default_factory=dict)


class Receipt(BaseModel):
    """Result of an adapter execution.

    The adapter NEVER raises — failures are captured here.
    """

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the action succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the action failed."""
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def skip(
        cls,
        adapter: str,
        action_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a skip receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="skipped",
            output=reason,
            **kwargs,
        )
