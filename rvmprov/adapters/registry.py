"""
Adapter registry — central dispatch for all adapter operations.

Probes and the engine never hold adapter references; they hand an
Action plus the target user to the registry, which builds that user's
execution context, validates, honours mock mode and dry-run, and times
the call. Whatever happens, the caller gets a Receipt back.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from rvmprov.adapters.base import Adapter, ExecutionContext
from rvmprov.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Named adapters plus the per-user dispatch around them.

    In mock mode nothing registered is called: a supplied mock adapter
    handles every action, or, without one, every action succeeds.
    """

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode
        self._mock_adapter: Adapter | None = None

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def set_mock_mode(self, enabled: bool, mock_adapter: Adapter | None = None) -> None:
        self._mock_mode = enabled
        self._mock_adapter = mock_adapter

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter %s", adapter.name)
        self._adapters[adapter.name] = adapter
        logger.debug("Registered adapter %s (%s)", adapter.name, type(adapter).__name__)

    def unregister(self, name: str) -> None:
        self._adapters.pop(name, None)

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def list_adapters(self) -> list[str]:
        return sorted(self._adapters)

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Availability of each registered adapter on this host."""
        return {
            name: {
                "name": name,
                "available": self._probe_available(adapter),
                "type": type(adapter).__name__,
            }
            for name, adapter in self._adapters.items()
        }

    @staticmethod
    def _probe_available(adapter: Adapter) -> bool:
        try:
            return bool(adapter.is_available())
        except Exception as e:
            logger.debug("%s availability check raised: %s", adapter.name, e)
            return False

    def _select(self, action: Action) -> Adapter | None:
        if self._mock_mode:
            return self._mock_adapter
        return self._adapters.get(action.adapter)

    def execute_action(
        self,
        action: Action,
        user: str,
        home: str,
        dry_run: bool = False,
    ) -> Receipt:
        """Run ``action`` on behalf of ``user`` inside ``home``.

        Never raises: a missing adapter, a rejected action or an adapter
        that blows up all come back as failed receipts.
        """
        started = time.monotonic()
        context = ExecutionContext(
            action=action, user=user, home=home, dry_run=dry_run, params=action.params
        )

        adapter = self._select(action)
        if adapter is None and self._mock_mode:
            return Receipt.success(
                adapter=action.adapter,
                action_id=action.id,
                output=f"[mock] {action.adapter}:{action.id} for {user}",
                metadata={"mock": True, "dry_run": dry_run},
            )
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        try:
            valid, reason = adapter.validate(context)
        except Exception as e:
            valid, reason = False, f"validator raised {e}"
        if not valid:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation failed: {reason}",
            )

        if dry_run:
            return Receipt.skip(
                adapter=action.adapter,
                action_id=action.id,
                reason=f"[dry-run] would run {action.name or action.id} as {user}",
                metadata={"dry_run": True},
            )

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            logger.error("%s: adapter %s raised on %s: %s", user, action.adapter, action.id, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - started) * 1000)
        logger.debug("%s: %s → %s in %dms", user, action.id, receipt.status, receipt.duration_ms)
        return receipt
