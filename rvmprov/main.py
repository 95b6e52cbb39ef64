"""
rvm-provisioner — CLI entrypoint.

Usage:
    python -m rvmprov.main --help
    python -m rvmprov.main provision alice --version 1.29.12
    python -m rvmprov.main apply --config provision.yml
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from rvmprov import __version__
from rvmprov.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    resolve_level,
    setup_logging,
)

_STATUS_COLORS = {"ok": "green", "partial": "yellow", "failed": "red"}


@click.group()
@click.version_option(version=__version__, prog_name="rvmprov")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to provision.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """rvm-provisioner — converge a user's RVM environment."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(
        level=resolve_level(debug, verbose, quiet),
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
    )


def _registry(mock: bool):
    from rvmprov.core.use_cases.provision import default_registry

    return default_registry(mock_mode=mock)


def _read_rvmrc(rvmrc: str | None, rvmrc_file: str | None) -> str:
    if rvmrc is not None and rvmrc_file is not None:
        raise click.UsageError("Use only one of --rvmrc and --rvmrc-file.")
    if rvmrc_file is not None:
        return Path(rvmrc_file).read_bytes().decode("utf-8")
    return rvmrc or ""


def _installer_source(ctx: click.Context):
    """Installer settings from provision.yml when one is around."""
    from rvmprov.core.config.loader import ConfigError, find_config_file, load_config
    from rvmprov.core.models.desired import InstallerSource

    config_path = ctx.obj.get("config_path") or find_config_file()
    if config_path is None:
        return InstallerSource()
    try:
        return load_config(config_path).installer
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


def _echo_result(ctx: click.Context, result) -> None:
    """Human-readable summary of one ProvisionResult."""
    dry_run = bool(result.report and result.report.dry_run)
    mode_label = "[dry-run] " if dry_run else ""
    click.secho(f"\n⚡ {mode_label}{result.user or '?'}", fg="cyan", bold=True)

    if result.desired is not None and not ctx.obj.get("quiet"):
        click.echo(f"   rvm {result.desired.version} → {result.desired.tool_root}")

    if result.report is None:
        click.secho(f"   ✗ {result.error}", fg="red")
        return

    if not result.planned_actions:
        click.secho("   ✓ already in desired state", fg="green")
        return

    for step, receipt in result.report.receipts:
        if receipt.ok:
            timing = f" ({receipt.duration_ms}ms)" if receipt.duration_ms else ""
            click.secho(f"   ✓ {step.value}", fg="green", nl=False)
            click.echo(timing)
            if ctx.obj.get("verbose") and receipt.output:
                for line in receipt.output.split("\n")[:10]:
                    click.echo(f"     │ {line}")
        elif receipt.failed:
            click.secho(f"   ✗ {step.value}", fg="red")
            if receipt.error:
                for line in receipt.error.split("\n")[:5]:
                    click.echo(f"     │ {line}")
        else:
            click.secho(f"   ⊘ {step.value} ", fg="yellow", nl=False)
            click.echo(f"({receipt.output})")

    for step in result.report.skipped:
        click.secho(f"   ⊘ {step.value} (not attempted)", fg="yellow")

    if result.error is not None:
        unsatisfied = ", ".join(f.value for f in result.unsatisfied) or "none"
        click.secho(f"   Result: {result.error}", fg="red", bold=True)
        click.echo(f"   Still unsatisfied: {unsatisfied} — re-run to resume")
    else:
        status = result.report.status
        click.secho(
            f"   Result: {len(result.performed_actions)}/{len(result.planned_actions)} performed",
            fg=_STATUS_COLORS.get(status, "white"),
            bold=True,
        )


@cli.command()
@click.argument("user")
@click.option("--version", "rvm_version", default="stable", show_default=True,
              help="RVM release or channel to install.")
@click.option("--home", default="", help="Home directory (default: derived from USER).")
@click.option("--rvmrc", default=None, help="Desired ~/.rvmrc content.")
@click.option("--rvmrc-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Read the desired ~/.rvmrc content from a file.")
@click.option("--dry-run", is_flag=True, help="Probe and plan but don't execute.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--audit-log", type=click.Path(dir_okay=False), default=None,
              help="Append the outcome to this NDJSON ledger.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def provision(
    ctx: click.Context,
    user: str,
    rvm_version: str,
    home: str,
    rvmrc: str | None,
    rvmrc_file: str | None,
    dry_run: bool,
    mock: bool,
    audit_log: str | None,
    as_json: bool,
) -> None:
    """Provision RVM for one USER.

    Examples:

        rvmprov provision alice

        rvmprov provision deploy --version 1.29.12 --rvmrc-file rvmrc
    """
    from rvmprov.core.use_cases.provision import provision as run_provision

    result = run_provision(
        user,
        version=rvm_version,
        home=home,
        config_content=_read_rvmrc(rvmrc, rvmrc_file),
        registry=_registry(mock),
        source=_installer_source(ctx),
        dry_run=dry_run,
        audit_path=Path(audit_log) if audit_log else None,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _echo_result(ctx, result)
        click.echo()

    if not result.ok:
        sys.exit(1)


@cli.command()
@click.option("--workers", "-w", default=4, show_default=True, type=click.IntRange(min=1),
              help="Users provisioned in parallel.")
@click.option("--dry-run", is_flag=True, help="Probe and plan but don't execute.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--audit-log", type=click.Path(dir_okay=False), default=None,
              help="Append outcomes to this NDJSON ledger.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def apply(
    ctx: click.Context,
    workers: int,
    dry_run: bool,
    mock: bool,
    audit_log: str | None,
    as_json: bool,
) -> None:
    """Provision every user declared in provision.yml."""
    from rvmprov.core.config.loader import ConfigError, load_config
    from rvmprov.core.errors import InvalidInputError
    from rvmprov.core.use_cases.provision import provision_many

    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    try:
        results = provision_many(
            config.inputs(),
            registry=_registry(mock),
            source=config.installer,
            max_workers=workers,
            dry_run=dry_run,
            audit_path=Path(audit_log) if audit_log else None,
        )
    except InvalidInputError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    failed = [r for r in results if not r.ok]

    if as_json:
        click.echo(json.dumps(
            {
                "total": len(results),
                "failed": len(failed),
                "results": [r.to_dict() for r in results],
            },
            indent=2,
        ))
    else:
        for result in results:
            _echo_result(ctx, result)
        click.echo()
        color = "green" if not failed else "red"
        click.secho(
            f"   Users: {len(results) - len(failed)}/{len(results)} converged",
            fg=color,
            bold=True,
        )
        click.echo()

    if failed:
        sys.exit(1)


@cli.command()
@click.argument("user")
@click.option("--version", "rvm_version", default="stable", show_default=True)
@click.option("--home", default="", help="Home directory (default: derived from USER).")
@click.option("--rvmrc", default=None, help="Desired ~/.rvmrc content.")
@click.option("--rvmrc-file", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(
    ctx: click.Context,
    user: str,
    rvm_version: str,
    home: str,
    rvmrc: str | None,
    rvmrc_file: str | None,
    mock: bool,
    as_json: bool,
) -> None:
    """Show which facts hold for USER and what a run would do."""
    from rvmprov.core.models.action import Fact
    from rvmprov.core.models.desired import ProvisionInput
    from rvmprov.core.use_cases.status import get_status

    raw = ProvisionInput(
        user=user,
        version=rvm_version,
        home=home,
        config_content=_read_rvmrc(rvmrc, rvmrc_file),
    )
    result = get_status(raw, _registry(mock), _installer_source(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    desired, observed = result.desired, result.observed
    assert desired is not None and observed is not None

    click.secho(f"\n📋 {desired.user}", fg="cyan", bold=True)
    click.echo(f"   Home: {desired.home}")
    click.echo()
    for fact in Fact:
        held = observed.satisfied(fact)
        marker, color = ("✓", "green") if held else ("✗", "red")
        click.secho(f"   {marker} {fact.value}", fg=color, nl=False)
        reason = observed.probe_errors.get(fact)
        click.echo(f"  (probe failed: {reason})" if reason else "")

    click.echo()
    if result.converged:
        click.secho("   Converged — nothing to do", fg="green", bold=True)
    else:
        steps = " → ".join(t.value for t in result.pending.tags)
        click.secho(f"   Pending: {steps}", fg="yellow", bold=True)
    click.echo()


@cli.group()
def config() -> None:
    """Provisioning configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate provision.yml configuration."""
    from rvmprov.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Users: {', '.join(result.users) or '(none)'}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    click.echo()
    if not result.valid:
        sys.exit(1)


if __name__ == "__main__":
    cli()
