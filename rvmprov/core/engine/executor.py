"""
Engine executor — plan and run the ordered provisioning steps.

Flow:
    desired + observed → plan (minimal, ordered) → execute (sequential,
    halt on first failure) → report

Ordering comes from a fixed prerequisite graph, not from the order in
which facts happen to be checked:

    import_key   → install_tool   (the installer verifies its signature)
    install_tool → write_config   (the rvmrc belongs to an installed rvm)

Nothing is rolled back and nothing is retried. A re-run re-probes and
picks up the unsatisfied suffix.
"""

from __future__ import annotations

import logging
import shlex
import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from rvmprov.adapters.registry import AdapterRegistry
from rvmprov.core.errors import ActionExecutionError, PrerequisiteFailedError
from rvmprov.core.models.action import Action, ActionTag, Receipt
from rvmprov.core.models.desired import DesiredState, InstallerSource
from rvmprov.core.models.observed import ObservedState

logger = logging.getLogger(__name__)

IMPORT_KEY_TIMEOUT = 120
INSTALL_TIMEOUT = 600

# step → steps that must have completed before it (when planned)
PREREQUISITES: dict[ActionTag, tuple[ActionTag, ...]] = {
    ActionTag.IMPORT_KEY: (),
    ActionTag.INSTALL_TOOL: (ActionTag.IMPORT_KEY,),
    ActionTag.WRITE_CONFIG: (ActionTag.INSTALL_TOOL,),
}


def execution_order(
    graph: Mapping[ActionTag, tuple[ActionTag, ...]],
) -> tuple[ActionTag, ...]:
    """Topological order of ``graph`` (Kahn's algorithm).

    Ties are broken by ActionTag declaration order so the result is
    stable.

    Raises:
        ValueError: on unknown prerequisites or a cycle.
    """
    for tag, deps in graph.items():
        for dep in deps:
            if dep not in graph:
                raise ValueError(f"Step '{tag.value}' requires unknown step '{dep.value}'")

    rank = {tag: i for i, tag in enumerate(ActionTag)}
    in_degree = {tag: len(deps) for tag, deps in graph.items()}
    dependents: dict[ActionTag, list[ActionTag]] = {tag: [] for tag in graph}
    for tag, deps in graph.items():
        for dep in deps:
            dependents[dep].append(tag)

    ready = sorted((t for t, d in in_degree.items() if d == 0), key=rank.__getitem__)
    order: list[ActionTag] = []
    while ready:
        node = ready.pop(0)
        order.append(node)
        for successor in dependents[node]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                ready.append(successor)
        ready.sort(key=rank.__getitem__)

    if len(order) < len(graph):
        raise ValueError("Dependency cycle detected in provisioning steps")
    return tuple(order)


EXECUTION_ORDER = execution_order(PREREQUISITES)


@dataclass(frozen=True)
class ActionPlan:
    """The ordered, minimal set of steps for one user."""

    user: str
    actions: tuple[Action, ...] = ()

    @property
    def tags(self) -> list[ActionTag]:
        return [a.tag for a in self.actions if a.tag is not None]

    def __iter__(self) -> Iterator[Action]:
        return iter(self.actions)

    def __len__(self) -> int:
        return len(self.actions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user": self.user,
            "actions": [
                {"tag": a.tag.value if a.tag else None, "name": a.name, "adapter": a.adapter}
                for a in self.actions
            ],
        }


@dataclass
class ExecutionReport:
    """Result of executing a plan."""

    run_id: str = ""
    user: str = ""
    dry_run: bool = False
    receipts: list[tuple[ActionTag, Receipt]] = field(default_factory=list)
    performed: list[ActionTag] = field(default_factory=list)
    skipped: list[ActionTag] = field(default_factory=list)
    error: PrerequisiteFailedError | None = None

    @property
    def failed_step(self) -> ActionTag | None:
        return self.error.step if self.error else None

    @property
    def status(self) -> str:
        if self.error is None:
            return "ok"
        if self.performed:
            return "partial"
        return "failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "user": self.user,
            "dry_run": self.dry_run,
            "status": self.status,
            "performed": [t.value for t in self.performed],
            "skipped": [t.value for t in self.skipped],
            "error": self.error.to_dict() if self.error else None,
            "receipts": [
                {"step": tag.value, **r.model_dump(mode="json")} for tag, r in self.receipts
            ],
        }


def import_key_command(source: InstallerSource) -> str:
    keys = " ".join(shlex.quote(k) for k in source.key_fingerprints)
    return f"gpg --batch --keyserver {shlex.quote(source.keyserver)} --recv-keys {keys}"


def install_command(source: InstallerSource, version: str) -> str:
    return f"curl -sSL {shlex.quote(source.url)} | bash -s {shlex.quote(version)}"


def build_action(tag: ActionTag, desired: DesiredState, source: InstallerSource) -> Action:
    """The concrete adapter call behind one plan step."""
    action_id = f"{desired.user}:{tag.value}"
    if tag is ActionTag.IMPORT_KEY:
        return Action(
            id=action_id,
            name="import installer signing key",
            adapter="shell",
            tag=tag,
            params={"command": import_key_command(source), "timeout": IMPORT_KEY_TIMEOUT},
        )
    if tag is ActionTag.INSTALL_TOOL:
        return Action(
            id=action_id,
            name=f"install rvm {desired.version}",
            adapter="shell",
            tag=tag,
            params={
                "command": install_command(source, desired.version),
                "version": desired.version,
                "timeout": INSTALL_TIMEOUT,
            },
        )
    return Action(
        id=action_id,
        name=f"write {desired.config_path}",
        adapter="filesystem",
        tag=tag,
        params={
            "operation": "write",
            "path": desired.config_path,
            "content": desired.config_content,
            "owner": desired.user,
        },
    )


def _needed(tag: ActionTag, desired: DesiredState, observed: ObservedState) -> bool:
    if tag is ActionTag.WRITE_CONFIG and not desired.manages_config:
        return False
    return not observed.satisfied(tag.fact)


def plan(
    desired: DesiredState,
    observed: ObservedState,
    source: InstallerSource | None = None,
) -> ActionPlan:
    """Select the unsatisfied steps, in prerequisite order."""
    source = source or InstallerSource()
    actions = tuple(
        build_action(tag, desired, source)
        for tag in EXECUTION_ORDER
        if _needed(tag, desired, observed)
    )
    return ActionPlan(user=desired.user, actions=actions)


def _check_order(action_plan: ActionPlan) -> None:
    position = {tag: i for i, tag in enumerate(EXECUTION_ORDER)}
    tags = action_plan.tags
    if len(tags) != len(action_plan.actions) or len(set(tags)) != len(tags):
        raise ValueError("Plan steps must be tagged and unique")
    if tags != sorted(tags, key=position.__getitem__):
        raise ValueError(f"Plan order {[t.value for t in tags]} violates step prerequisites")


def execute(
    action_plan: ActionPlan,
    desired: DesiredState,
    registry: AdapterRegistry,
    dry_run: bool = False,
    run_id: str = "",
) -> ExecutionReport:
    """Run the plan sequentially as the target user.

    The first failed step halts the run: every later step is skipped
    and the report's error names the failed step, with the adapter
    failure chained as its cause.

    Raises:
        ValueError: if the plan is out of prerequisite order.
    """
    _check_order(action_plan)
    report = ExecutionReport(run_id=run_id, user=desired.user, dry_run=dry_run)
    planned = set(action_plan.tags)

    for index, action in enumerate(action_plan.actions):
        tag = action.tag
        assert tag is not None  # guaranteed by _check_order
        missing = [
            dep for dep in PREREQUISITES[tag]
            if dep in planned and dep not in report.performed and not dry_run
        ]
        if missing:
            raise ValueError(f"{tag.value} reached before {[m.value for m in missing]}")

        receipt = registry.execute_action(
            action, user=desired.user, home=desired.home, dry_run=dry_run
        )
        if receipt.skipped and not dry_run:
            # nothing happened on the host, so the step did not succeed
            receipt = Receipt.failure(
                adapter=receipt.adapter,
                action_id=receipt.action_id,
                error=f"Step skipped outside a dry run: {receipt.output or 'no reason given'}",
                metadata=receipt.metadata,
            )
        report.receipts.append((tag, receipt))

        status_marker = "✓" if receipt.ok else "✗" if receipt.failed else "⊘"
        logger.info("%s %s:%s → %s", status_marker, desired.user, tag.value, receipt.status)

        if receipt.ok:
            report.performed.append(tag)
            continue
        if receipt.skipped:
            continue

        remaining = [a.tag for a in action_plan.actions[index + 1:] if a.tag is not None]
        report.skipped.extend(remaining)
        error = PrerequisiteFailedError(tag, remaining)
        error.__cause__ = ActionExecutionError(tag, receipt)
        report.error = error
        logger.error("%s: halting, %s", desired.user, report.error)
        break

    return report


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"
