"""
Adapter base — the protocol contract between engine and host.

The engine only talks to the host through adapters: a process
executor and a file-system accessor. Every adapter call runs on behalf
of one target user, inside that user's home directory.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any

from pydantic import BaseModel, Field

from rvmprov.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action.

    ``user`` and ``home`` identify whose environment is touched;
    subprocesses run as ``user`` with cwd and HOME set to ``home``.
    """

    action: Action
    user: str
    home: str
    dry_run: bool = False
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def working_dir(self) -> str:
        return self.home

    @property
    def env(self) -> dict[str, str]:
        """Environment overrides for every subprocess of this user."""
        return {"HOME": self.home, "USER": self.user, "LOGNAME": self.user}

    def resolve_path(self, raw: str) -> PurePosixPath:
        """Resolve ``raw`` against the home directory.

        Works on the path text alone and raises ValueError for paths
        that escape the home directory. Host access goes through
        ``real_path``, which also follows symlinks.
        """
        home = PurePosixPath(self.home)
        path = PurePosixPath(raw)
        if not path.is_absolute():
            path = home / path
        if ".." in path.parts:
            raise ValueError(f"Path may not contain '..': {raw}")
        if path != home and home not in path.parents:
            raise ValueError(f"Path {path} is outside {home}")
        return path

    def real_path(self, raw: str) -> Path:
        """Like resolve_path, but with symlinks followed on the host.

        A link anywhere along the way that leads out of the home
        directory is rejected, so ``~alice/.rvmrc -> ~bob/.rvmrc``
        cannot turn alice's run into a write to bob's file.

        Raises:
            ValueError: if the followed path leaves the home directory.
        """
        lexical = Path(self.resolve_path(raw))
        try:
            home = Path(self.home).resolve()
            path = lexical.resolve()
        except (OSError, RuntimeError) as e:
            raise ValueError(f"Cannot resolve {lexical}: {e}") from e
        if path != home and home not in path.parents:
            raise ValueError(f"Path {lexical} resolves to {path}, outside {home}")
        return path


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'shell', 'filesystem')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.

        MUST never raise exceptions.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
