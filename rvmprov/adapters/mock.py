"""
Mock adapter — records provisioning calls instead of touching a host.

Responses are keyed by action id (``alice:install_tool``) or, for a
failure that should hit every user, by step tag.
"""

from __future__ import annotations

import threading

from rvmprov.adapters.base import Adapter, ExecutionContext
from rvmprov.core.models.action import ActionTag, Receipt


class MockAdapter(Adapter):
    """Stand-in for the shell or filesystem adapter.

    Safe to share between threads provisioning different users.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._by_id: dict[str, Receipt] = {}
        self._failing_steps: dict[ActionTag, str] = {}
        self._calls: list[ExecutionContext] = []
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        with self._lock:
            return list(self._calls)

    @property
    def call_count(self) -> int:
        return len(self._calls)

    def calls_for(self, user: str) -> list[ActionTag | None]:
        """Step tags this mock ran for ``user``, in call order."""
        return [ctx.action.tag for ctx in self.call_log if ctx.user == user]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        self._by_id[action_id] = receipt

    def set_failure(self, action_id: str, error: str = "Mock failure") -> None:
        self._by_id[action_id] = Receipt.failure(
            adapter=self._name, action_id=action_id, error=error
        )

    def fail_step(self, tag: ActionTag, error: str = "Mock failure") -> None:
        """Fail ``tag`` for every user."""
        self._failing_steps[tag] = error

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        action = context.action
        with self._lock:
            self._calls.append(context)

        if action.id in self._by_id:
            return self._by_id[action.id]
        if action.tag in self._failing_steps:
            return Receipt.failure(
                adapter=self._name,
                action_id=action.id,
                error=self._failing_steps[action.tag],
            )
        return Receipt.success(
            adapter=self._name,
            action_id=action.id,
            output=self._default_output,
            metadata={"mock": True, "user": context.user},
        )

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()
        self._by_id.clear()
        self._failing_steps.clear()
