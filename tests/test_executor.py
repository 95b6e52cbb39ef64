"""
Tests for the engine executor — prerequisite graph, planning, execution.
"""

import pytest

from rvmprov.adapters.mock import MockAdapter
from rvmprov.adapters.registry import AdapterRegistry
from rvmprov.core.engine.executor import (
    EXECUTION_ORDER,
    PREREQUISITES,
    ActionPlan,
    ExecutionReport,
    execute,
    execution_order,
    generate_run_id,
    plan,
)
from rvmprov.core.errors import ActionExecutionError, PrerequisiteFailedError
from rvmprov.core.models.action import ActionTag, Receipt
from rvmprov.core.models.desired import InstallerSource, ProvisionInput
from rvmprov.core.models.observed import ObservedState
from rvmprov.core.services.resolver import resolve

ALL = [ActionTag.IMPORT_KEY, ActionTag.INSTALL_TOOL, ActionTag.WRITE_CONFIG]


def _desired(rvmrc: str | None = "rvm_autoupdate_flag=2\n", version: str = "stable"):
    return resolve(
        ProvisionInput(user="alice", home="/home/alice", version=version, config_content=rvmrc)
    )


def _mock_registry() -> tuple[AdapterRegistry, MockAdapter, MockAdapter]:
    shell = MockAdapter(adapter_name="shell")
    fs = MockAdapter(adapter_name="filesystem")
    registry = AdapterRegistry()
    registry.register(shell)
    registry.register(fs)
    return registry, shell, fs


# ── Prerequisite Graph ──────────────────────────────────────────────


class TestExecutionOrder:
    def test_fixed_order(self):
        assert EXECUTION_ORDER == tuple(ALL)

    def test_order_respects_every_edge(self):
        position = {tag: i for i, tag in enumerate(EXECUTION_ORDER)}
        for tag, deps in PREREQUISITES.items():
            for dep in deps:
                assert position[dep] < position[tag]

    def test_independent_of_declaration_order(self):
        graph = {
            ActionTag.WRITE_CONFIG: (ActionTag.INSTALL_TOOL,),
            ActionTag.INSTALL_TOOL: (ActionTag.IMPORT_KEY,),
            ActionTag.IMPORT_KEY: (),
        }
        assert execution_order(graph) == tuple(ALL)

    def test_cycle_rejected(self):
        graph = {
            ActionTag.IMPORT_KEY: (ActionTag.WRITE_CONFIG,),
            ActionTag.INSTALL_TOOL: (ActionTag.IMPORT_KEY,),
            ActionTag.WRITE_CONFIG: (ActionTag.INSTALL_TOOL,),
        }
        with pytest.raises(ValueError, match="cycle"):
            execution_order(graph)

    def test_unknown_prerequisite_rejected(self):
        with pytest.raises(ValueError, match="unknown"):
            execution_order({ActionTag.INSTALL_TOOL: (ActionTag.IMPORT_KEY,)})


# ── Planning ────────────────────────────────────────────────────────


class TestPlan:
    def test_nothing_observed(self):
        p = plan(_desired(), ObservedState())
        assert p.tags == ALL
        assert p.user == "alice"

    def test_all_satisfied(self):
        observed = ObservedState(key_imported=True, tool_installed=True, config_matches=True)
        assert len(plan(_desired(), observed)) == 0

    def test_only_missing_steps(self):
        observed = ObservedState(key_imported=True, tool_installed=False, config_matches=True)
        assert plan(_desired(), observed).tags == [ActionTag.INSTALL_TOOL]

    def test_config_without_install(self):
        observed = ObservedState(key_imported=True, tool_installed=True, config_matches=False)
        assert plan(_desired(), observed).tags == [ActionTag.WRITE_CONFIG]

    def test_unmanaged_config_never_written(self):
        observed = ObservedState(config_matches=False)
        assert ActionTag.WRITE_CONFIG not in plan(_desired(rvmrc=None), observed).tags

    def test_key_and_config_keep_order(self):
        observed = ObservedState(key_imported=False, tool_installed=True, config_matches=False)
        assert plan(_desired(), observed).tags == [ActionTag.IMPORT_KEY, ActionTag.WRITE_CONFIG]

    def test_install_command_carries_version(self):
        p = plan(_desired(version="1.29.12"), ObservedState())
        install = p.actions[1]
        assert install.adapter == "shell"
        assert install.params["version"] == "1.29.12"
        assert install.params["command"] == "curl -sSL https://get.rvm.io | bash -s 1.29.12"

    def test_version_is_shell_quoted(self):
        p = plan(_desired(version="1.0; rm -rf ~"), ObservedState())
        assert "bash -s '1.0; rm -rf ~'" in p.actions[1].params["command"]

    def test_import_command_uses_source(self):
        source = InstallerSource(keyserver="hkps://keys.example.org", key_fingerprints=["ABCD1234ABCD1234"])
        p = plan(_desired(), ObservedState(), source)
        assert p.actions[0].params["command"] == (
            "gpg --batch --keyserver hkps://keys.example.org --recv-keys ABCD1234ABCD1234"
        )

    def test_write_config_action(self):
        p = plan(_desired(rvmrc="x=1\n"), ObservedState())
        write = p.actions[2]
        assert write.adapter == "filesystem"
        assert write.params == {
            "operation": "write",
            "path": "/home/alice/.rvmrc",
            "content": "x=1\n",
            "owner": "alice",
        }

    def test_action_ids_are_semantic(self):
        p = plan(_desired(), ObservedState())
        assert [a.id for a in p] == [
            "alice:import_key",
            "alice:install_tool",
            "alice:write_config",
        ]

    def test_to_dict(self):
        data = plan(_desired(), ObservedState()).to_dict()
        assert [a["tag"] for a in data["actions"]] == [t.value for t in ALL]


# ── Execution ───────────────────────────────────────────────────────


class TestExecute:
    def test_all_succeed(self):
        registry, shell, fs = _mock_registry()
        desired = _desired()
        report = execute(plan(desired, ObservedState()), desired, registry)
        assert report.performed == ALL
        assert report.error is None
        assert report.status == "ok"
        assert shell.call_count == 2
        assert fs.call_count == 1

    def test_context_is_target_user(self):
        registry, shell, _ = _mock_registry()
        desired = _desired()
        execute(plan(desired, ObservedState()), desired, registry)
        for ctx in shell.call_log:
            assert ctx.user == "alice"
            assert ctx.working_dir == "/home/alice"
            assert ctx.env["HOME"] == "/home/alice"

    def test_install_failure_halts_config(self):
        registry, shell, fs = _mock_registry()
        shell.set_failure("alice:install_tool", error="signature mismatch")
        desired = _desired()

        report = execute(plan(desired, ObservedState()), desired, registry)

        assert report.performed == [ActionTag.IMPORT_KEY]
        assert report.skipped == [ActionTag.WRITE_CONFIG]
        assert report.failed_step is ActionTag.INSTALL_TOOL
        assert report.status == "partial"
        assert fs.call_count == 0

        error = report.error
        assert isinstance(error, PrerequisiteFailedError)
        assert error.step is ActionTag.INSTALL_TOOL
        assert "install_tool" in str(error)
        cause = error.__cause__
        assert isinstance(cause, ActionExecutionError)
        assert cause.receipt.error == "signature mismatch"

    def test_import_failure_halts_everything(self):
        registry, shell, fs = _mock_registry()
        shell.set_failure("alice:import_key", error="keyserver unreachable")
        desired = _desired()

        report = execute(plan(desired, ObservedState()), desired, registry)

        assert report.performed == []
        assert report.skipped == [ActionTag.INSTALL_TOOL, ActionTag.WRITE_CONFIG]
        assert report.failed_step is ActionTag.IMPORT_KEY
        assert report.status == "failed"
        assert shell.call_count == 1
        assert fs.call_count == 0

    def test_import_failure_halts_config_even_without_install(self):
        registry, shell, fs = _mock_registry()
        shell.set_failure("alice:import_key")
        desired = _desired()
        observed = ObservedState(key_imported=False, tool_installed=True)

        report = execute(plan(desired, observed), desired, registry)

        assert report.skipped == [ActionTag.WRITE_CONFIG]
        assert fs.call_count == 0

    def test_skipped_step_outside_dry_run_halts(self):
        registry, shell, fs = _mock_registry()
        shell.set_response(
            "alice:install_tool",
            Receipt.skip(adapter="shell", action_id="alice:install_tool", reason="installer busy"),
        )
        desired = _desired()

        report = execute(plan(desired, ObservedState()), desired, registry)

        assert report.performed == [ActionTag.IMPORT_KEY]
        assert report.failed_step is ActionTag.INSTALL_TOOL
        assert report.skipped == [ActionTag.WRITE_CONFIG]
        assert "installer busy" in report.error.__cause__.receipt.error
        assert fs.call_count == 0

    def test_dry_run_executes_nothing(self):
        registry, shell, fs = _mock_registry()
        desired = _desired()
        report = execute(plan(desired, ObservedState()), desired, registry, dry_run=True)
        assert report.performed == []
        assert report.error is None
        assert all(r.skipped for _, r in report.receipts)
        assert shell.call_count == 0
        assert fs.call_count == 0

    def test_empty_plan(self):
        registry, shell, _ = _mock_registry()
        desired = _desired()
        report = execute(ActionPlan(user="alice"), desired, registry)
        assert report.performed == []
        assert report.status == "ok"
        assert shell.call_count == 0

    def test_out_of_order_plan_rejected(self):
        registry, shell, _ = _mock_registry()
        desired = _desired()
        ordered = plan(desired, ObservedState())
        reversed_plan = ActionPlan(user="alice", actions=tuple(reversed(ordered.actions)))
        with pytest.raises(ValueError, match="prerequisites"):
            execute(reversed_plan, desired, registry)
        assert shell.call_count == 0

    def test_duplicate_steps_rejected(self):
        registry, _, _ = _mock_registry()
        desired = _desired()
        first = plan(desired, ObservedState()).actions[0]
        with pytest.raises(ValueError):
            execute(ActionPlan(user="alice", actions=(first, first)), desired, registry)

    def test_missing_adapter_is_a_failure(self):
        registry = AdapterRegistry()
        desired = _desired()
        report = execute(plan(desired, ObservedState()), desired, registry)
        assert report.failed_step is ActionTag.IMPORT_KEY
        assert "No adapter registered" in report.error.__cause__.receipt.error


# ── Report ──────────────────────────────────────────────────────────


class TestExecutionReport:
    def test_to_dict_success(self):
        report = ExecutionReport(
            run_id="run-1",
            user="alice",
            receipts=[(ActionTag.IMPORT_KEY, Receipt.success(adapter="shell", action_id="a"))],
            performed=[ActionTag.IMPORT_KEY],
        )
        data = report.to_dict()
        assert data["status"] == "ok"
        assert data["performed"] == ["import_key"]
        assert data["receipts"][0]["step"] == "import_key"
        assert data["error"] is None

    def test_to_dict_failure(self):
        registry, shell, _ = _mock_registry()
        shell.set_failure("alice:install_tool", error="boom")
        desired = _desired()
        data = execute(plan(desired, ObservedState()), desired, registry).to_dict()
        assert data["status"] == "partial"
        assert data["error"]["step"] == "install_tool"
        assert data["error"]["skipped"] == ["write_config"]
        assert "boom" in data["error"]["cause"]


def test_generate_run_id():
    run_id = generate_run_id()
    assert run_id.startswith("run-")
    assert run_id != generate_run_id()
