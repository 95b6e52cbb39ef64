"""
Provision use case — the single entry point of the core.

The full vertical slice for one user:

    operator input → resolve → probe → plan → execute → result (→ audit)

``provision_many`` runs that slice for several users in parallel.
Users share no resource, so their plans never need to coordinate.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rvmprov.adapters.registry import AdapterRegistry
from rvmprov.core.engine.executor import (
    ActionPlan,
    ExecutionReport,
    execute,
    generate_run_id,
    plan,
)
from rvmprov.core.errors import InvalidInputError, ProvisionError
from rvmprov.core.models.action import ActionTag, Fact
from rvmprov.core.models.desired import (
    DEFAULT_VERSION,
    DesiredState,
    InstallerSource,
    ProvisionInput,
)
from rvmprov.core.models.observed import ObservedState
from rvmprov.core.persistence.audit import AuditEntry, AuditWriter
from rvmprov.core.services.probes import probe
from rvmprov.core.services.resolver import resolve

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4


@dataclass
class ProvisionResult:
    """Outcome of provisioning one user."""

    user: str = ""
    run_id: str = ""
    desired: DesiredState | None = None
    observed: ObservedState | None = None
    plan: ActionPlan | None = None
    report: ExecutionReport | None = None
    error: ProvisionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def planned_actions(self) -> list[ActionTag]:
        return self.plan.tags if self.plan else []

    @property
    def performed_actions(self) -> list[ActionTag]:
        """Steps that actually ran and succeeded, in execution order."""
        return list(self.report.performed) if self.report else []

    @property
    def unsatisfied(self) -> list[Fact]:
        """Facts still not true after this run."""
        if self.observed is None:
            return []
        done = {tag.fact for tag in self.performed_actions}
        return [f for f in self.observed.unsatisfied() if f not in done]

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"user": self.user, "run_id": self.run_id}
        if self.desired:
            result["desired"] = {
                "version": self.desired.version,
                "home": self.desired.home,
                "entry_point": self.desired.entry_point,
                "manages_config": self.desired.manages_config,
            }
        if self.observed:
            result["observed"] = self.observed.to_dict()
        result["planned_actions"] = [t.value for t in self.planned_actions]
        result["performed_actions"] = [t.value for t in self.performed_actions]
        result["unsatisfied"] = [f.value for f in self.unsatisfied]
        if self.report and self.report.dry_run:
            result["dry_run"] = True
        if self.error is not None:
            to_dict = getattr(self.error, "to_dict", None)
            result["error"] = to_dict() if to_dict else {
                "type": type(self.error).__name__,
                "message": str(self.error),
            }
        else:
            result["error"] = None
        return result


def default_registry(mock_mode: bool = False) -> AdapterRegistry:
    """Registry wired to the real process executor and file accessor."""
    from rvmprov.adapters.shell.command import ShellCommandAdapter
    from rvmprov.adapters.shell.filesystem import FilesystemAdapter

    registry = AdapterRegistry(mock_mode=mock_mode)
    registry.register(ShellCommandAdapter())
    # Only root can give a file away; anyone else writes as themselves.
    registry.register(FilesystemAdapter(chown=os.geteuid() == 0))
    return registry


def _write_audit(result: ProvisionResult, writer: AuditWriter) -> None:
    failed_step = None
    if result.report and result.report.failed_step:
        failed_step = result.report.failed_step.value
    writer.write(
        AuditEntry(
            run_id=result.run_id,
            user=result.user,
            version=result.desired.version if result.desired else "",
            status=_status(result),
            dry_run=bool(result.report and result.report.dry_run),
            planned=[t.value for t in result.planned_actions],
            performed=[t.value for t in result.performed_actions],
            failed_step=failed_step,
            unsatisfied=[f.value for f in result.unsatisfied],
            errors=[str(result.error)] if result.error else [],
        )
    )


def _status(result: ProvisionResult) -> str:
    if result.report is not None:
        return result.report.status
    return "failed" if result.error else "ok"


def provision_input(
    raw: ProvisionInput,
    registry: AdapterRegistry | None = None,
    source: InstallerSource | None = None,
    dry_run: bool = False,
    audit: AuditWriter | None = None,
    desired: DesiredState | None = None,
) -> ProvisionResult:
    """Provision one user from an operator input record."""
    result = ProvisionResult(user=raw.user, run_id=generate_run_id())
    registry = registry or default_registry()
    source = source or InstallerSource()

    try:
        result.desired = desired if desired is not None else resolve(raw)
    except InvalidInputError as e:
        logger.error("Rejected input for user %r: %s", raw.user, e)
        result.error = e
        if audit:
            _write_audit(result, audit)
        return result

    desired = result.desired
    result.user = desired.user
    logger.info("Provisioning %s (rvm %s, home %s)", desired.user, desired.version, desired.home)

    result.observed = probe(desired, registry, source)
    result.plan = plan(desired, result.observed, source)

    if not result.plan:
        logger.info("%s: already in desired state", desired.user)

    result.report = execute(
        result.plan, desired, registry, dry_run=dry_run, run_id=result.run_id
    )
    result.error = result.report.error

    if audit:
        _write_audit(result, audit)
    return result


def provision(
    user: str,
    version: str = DEFAULT_VERSION,
    home: str = "",
    config_content: str = "",
    *,
    registry: AdapterRegistry | None = None,
    source: InstallerSource | None = None,
    dry_run: bool = False,
    audit_path: Path | None = None,
) -> ProvisionResult:
    """Bring ``user``'s RVM environment into the desired state.

    Re-running after success performs nothing; re-running after a
    failure only attempts the still-unsatisfied steps.

    Args:
        user: Target account name.
        version: RVM release or channel ("stable", "latest", "1.29.12").
        home: Home directory override; derived from ``user`` when empty.
        config_content: Desired ~/.rvmrc content; empty leaves it alone.
        registry: Adapter registry (default: real shell + filesystem).
        source: Installer URL, keyserver and signing keys.
        dry_run: Probe and plan, but perform nothing.
        audit_path: Optional NDJSON ledger to append the outcome to.

    Returns:
        ProvisionResult. Failures are reported in ``error``, not raised.
    """
    raw = ProvisionInput(
        user=user, version=version, home=home, config_content=config_content
    )
    audit = AuditWriter(audit_path) if audit_path else None
    return provision_input(raw, registry=registry, source=source, dry_run=dry_run, audit=audit)


def provision_many(
    inputs: Iterable[ProvisionInput],
    registry: AdapterRegistry | None = None,
    source: InstallerSource | None = None,
    max_workers: int = DEFAULT_WORKERS,
    dry_run: bool = False,
    audit_path: Path | None = None,
) -> list[ProvisionResult]:
    """Provision several users in parallel, one thread per user.

    Results come back in input order.

    Raises:
        InvalidInputError: if two inputs resolve to the same user.
    """
    inputs = list(inputs)
    registry = registry or default_registry()
    audit = AuditWriter(audit_path) if audit_path else None

    resolved: list[DesiredState | None] = []
    seen: set[str] = set()
    for raw in inputs:
        try:
            desired = resolve(raw)
        except InvalidInputError:
            resolved.append(None)  # reported by provision_input
            continue
        if desired.user in seen:
            raise InvalidInputError(f"User '{desired.user}' is listed more than once")
        seen.add(desired.user)
        resolved.append(desired)

    if not inputs:
        return []

    workers = max(1, min(max_workers, len(inputs)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="provision") as pool:
        futures = [
            pool.submit(
                provision_input,
                raw,
                registry=registry,
                source=source,
                dry_run=dry_run,
                audit=audit,
                desired=desired,
            )
            for raw, desired in zip(inputs, resolved)
        ]
        return [f.result() for f in futures]
