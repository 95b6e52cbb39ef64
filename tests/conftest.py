"""
Shared test fixtures and configuration.

Host side effects are simulated by FakeHostShell: a per-home keyring and
an "installer" that drops the rvm entry point, so whole provisioning runs
can be replayed against ``tmp_path``.
"""

import threading
from pathlib import Path

import pytest

from rvmprov.adapters.base import Adapter, ExecutionContext
from rvmprov.adapters.registry import AdapterRegistry
from rvmprov.adapters.shell.filesystem import FilesystemAdapter
from rvmprov.core.models.action import ActionTag, Receipt
from rvmprov.core.models.desired import RVM_KEY_FINGERPRINTS


def colon_listing(fingerprints) -> str:
    """Minimal ``gpg --with-colons --list-keys`` output."""
    lines = []
    for fpr in fingerprints:
        lines.append(f"pub:-:4096:1:{fpr[-16:]}:1400000000:::-:::scSC::::::23::0:")
        lines.append(f"fpr:::::::::{fpr}:")
    return "\n".join(lines) + ("\n" if lines else "")


class FakeHostShell(Adapter):
    """Scripted stand-in for the process executor."""

    def __init__(self):
        self.keyrings: dict[str, set[str]] = {}
        self.installed_versions: dict[str, str] = {}
        self.fail_steps: set[ActionTag] = set()
        self.broken_keyring = False
        self.calls: list[ExecutionContext] = []
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def steps(self, user: str | None = None) -> list[ActionTag]:
        """Mutating steps executed so far, in order."""
        return [
            c.action.tag for c in self.calls
            if c.action.tag is not None and (user is None or c.user == user)
        ]

    def execute(self, context: ExecutionContext) -> Receipt:
        with self._lock:
            self.calls.append(context)
        action = context.action
        home = context.home

        if action.tag in self.fail_steps:
            return Receipt.failure(adapter=self.name, action_id=action.id, error="simulated failure")

        if action.tag is None and "--list-keys" in action.params["command"]:
            if self.broken_keyring:
                return Receipt.failure(
                    adapter=self.name, action_id=action.id, error="gpg: keyblock resource: Permission denied"
                )
            return Receipt.success(
                adapter=self.name,
                action_id=action.id,
                output=colon_listing(sorted(self.keyrings.get(home, set()))),
            )

        if action.tag is ActionTag.IMPORT_KEY:
            keys = action.params["command"].split("--recv-keys", 1)[1].split()
            self.keyrings.setdefault(home, set()).update(keys)
            return Receipt.success(adapter=self.name, action_id=action.id, output="imported")

        if action.tag is ActionTag.INSTALL_TOOL:
            entry = Path(home) / ".rvm" / "bin" / "rvm"
            entry.parent.mkdir(parents=True, exist_ok=True)
            entry.write_text("#!/bin/sh\n")
            self.installed_versions[home] = action.params["version"]
            return Receipt.success(adapter=self.name, action_id=action.id, output="installed")

        return Receipt.failure(adapter=self.name, action_id=action.id, error="unexpected command")


@pytest.fixture
def fake_shell() -> FakeHostShell:
    return FakeHostShell()


@pytest.fixture
def registry(fake_shell: FakeHostShell) -> AdapterRegistry:
    """Fake process executor plus the real file accessor, no chown."""
    reg = AdapterRegistry()
    reg.register(fake_shell)
    reg.register(FilesystemAdapter(chown=False))
    return reg


@pytest.fixture
def homes(tmp_path: Path) -> Path:
    """A fake /home with directories for alice and bob."""
    root = tmp_path / "home"
    for user in ("alice", "bob"):
        (root / user).mkdir(parents=True)
    return root


@pytest.fixture
def rvm_keys() -> list[str]:
    return list(RVM_KEY_FINGERPRINTS)
