"""
dotstrap — CLI entrypoint.

Usage:
    dotstrap --help
    dotstrap install --minimal
    dotstrap health
    dotstrap restore list
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

import click

from dotstrap import __version__
from dotstrap.core.observability.logging_config import setup_logging
from dotstrap.ui.cli.common import load_cli_settings, outcome_icon, status_color

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="dotstrap")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to dotstrap.yml (default: auto-detect).",
)
@click.option("--home", type=click.Path(file_okay=False), default=None, help="Home directory to manage.")
@click.option("--dotfiles", type=click.Path(file_okay=False), default=None, help="Dotfiles repository.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    home: str | None,
    dotfiles: str | None,
) -> None:
    """dotstrap — bootstrap a machine from your dotfiles, safely and repeatably."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["home"] = Path(home) if home else None
    ctx.obj["dotfiles"] = Path(dotfiles) if dotfiles else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("DOTSTRAP_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("DOTSTRAP_LOG_FILE"),
        log_file_level=os.environ.get("DOTSTRAP_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


# ── install ─────────────────────────────────────────────────────


def _print_report(report, quiet: bool) -> None:
    if report.system and not quiet:
        click.secho(f"\n🖥️  {report.system.summary()}", fg="cyan", bold=True)
        for warning in report.system.warnings:
            click.secho(f"   ⚠️  {warning}", fg="yellow")
    if report.profile and not quiet:
        click.echo(f"   Profile: {report.profile.name}")

    if report.preflight:
        for check in report.preflight.checks:
            if check.status == "pass" and quiet:
                continue
            icon = {"pass": "✓", "warn": "⚠️ ", "error": "❌"}.get(check.status, "•")
            color = {"pass": "green", "warn": "yellow"}.get(check.status, "red")
            click.secho(f"   {icon} {check.name}: {check.message}", fg=color)

    if report.error:
        click.echo()
        click.secho(f"❌ Aborted: {report.error}", fg="red", bold=True)
        if report.hint:
            click.echo(f"   💡 {report.hint}")
        return

    if not quiet:
        click.echo()
        for outcome in report.outcomes:
            click.secho(f"   {outcome_icon(outcome.status)} {outcome.label}", fg=status_color(outcome.status))

    for outcome in report.warnings:
        click.secho(f"   ⚠️  {outcome.unit}: {outcome.warning}", fg="yellow")

    if report.failures:
        click.echo()
        click.secho("   Failures:", fg="red", bold=True)
        for outcome in report.failures:
            click.echo(f"     • {outcome.unit}: {outcome.error}")
            if outcome.hint:
                click.echo(f"       💡 {outcome.hint}")

    for status in report.unverified:
        click.secho(f"   ❌ critical link {status.spec.target}: {status.state} {status.detail}", fg="red")

    click.echo()
    click.secho(
        f"   {report.installed} installed, {report.skipped} skipped, "
        f"{report.failed} failed, {report.timeouts} timed out",
        fg=status_color(report.status),
        bold=True,
    )
    if report.restore_point:
        click.echo(f"   📸 Restore point: {report.restore_point}")
    if report.log_file:
        click.echo(f"   📄 Log: {report.log_file}")
    click.echo()


@cli.command()
@click.option("--force", "-f", is_flag=True, help="Proceed past blocking checks and reinstall everything.")
@click.option("--minimal", is_flag=True, help="Skip packages, repositories and downloads.")
@click.option("--profile", "profile_name", default=None, help="Machine profile to apply.")
@click.option("--yes", "-y", is_flag=True, help="Accept suggested profiles without asking.")
@click.option("--no-restore-point", is_flag=True, help="Do not snapshot before changing anything.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    force: bool,
    minimal: bool,
    profile_name: str | None,
    yes: bool,
    no_restore_point: bool,
    as_json: bool,
) -> None:
    """Bring this machine to the desired state.

    Exit codes: 0 ok, 1 completed with warnings, 2 aborted,
    3 critical links not in place after the run.
    """
    from dotstrap.core.decisions import PREFLIGHT_OVERRIDE, StaticDecisions
    from dotstrap.core.observability.logging_config import (
        attach_run_log,
        detach_run_log,
        rotate_logs,
    )
    from dotstrap.core.use_cases.install import ExitCode, run_install
    from dotstrap.ui.cli.prompts import ClickDecisions

    settings = load_cli_settings(ctx, exit_code=int(ExitCode.ABORTED))

    # --yes does not cover a blocking preflight (only --force does)
    if yes:
        decisions = StaticDecisions(True, answers={PREFLIGHT_OVERRIDE: False})
    else:
        decisions = ClickDecisions()

    log_file, handler = None, None
    try:
        log_file, handler = attach_run_log(settings.logs_path)
    except OSError as e:
        logger.warning("No run log: %s", e)

    try:
        report = run_install(
            settings,
            profile_name=profile_name,
            force=force,
            minimal=minimal,
            decisions=decisions,
            create_restore_point=False if no_restore_point else None,
        )
        report.log_file = log_file
    finally:
        if handler is not None:
            detach_run_log(handler)
            rotate_logs(settings.logs_path)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _print_report(report, ctx.obj.get("quiet", False))
    sys.exit(int(report.exit_code))


# ── health ──────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def health(ctx: click.Context, as_json: bool) -> None:
    """Check links, plugins, restore points and the last run. Changes nothing."""
    from dotstrap.core.observability.health import check_system_health

    settings = load_cli_settings(ctx)
    result = check_system_health(settings)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.status == "unhealthy" else 0)

    click.secho(f"\n🩺 Health: {result.status}", fg=status_color(result.status), bold=True)
    for component in result.components:
        click.secho(
            f"   • {component.name}: {component.status} — {component.message}",
            fg=status_color(component.status),
        )
        if component.name == "links" and component.status != "healthy":
            for target, state in component.details.items():
                if state != "linked":
                    click.echo(f"       {target}: {state}")
    click.echo()

    if result.status == "unhealthy":
        sys.exit(1)


# ── unstow ──────────────────────────────────────────────────────


@cli.command()
@click.option("--no-restore-point", is_flag=True, help="Do not snapshot before changing anything.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def unstow(ctx: click.Context, no_restore_point: bool, as_json: bool) -> None:
    """Remove the managed links and put the backed-up files back."""
    from dotstrap.core.use_cases.unstow import run_unstow

    settings = load_cli_settings(ctx)
    result = run_unstow(settings, create_restore_point=False if no_restore_point else None)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    for outcome in result.links.outcomes:
        click.echo(f"   {outcome_icon(outcome.status)} {outcome.unit}  {outcome.error or outcome.detail}")
    if result.restore_point:
        click.echo(f"   📸 Restore point: {result.restore_point}")
    if not result.ok:
        sys.exit(1)


# ── history ─────────────────────────────────────────────────────


@cli.command()
@click.option("-n", "--limit", default=20, show_default=True, type=click.IntRange(min=1), help="Entries to show.")
@click.option("--errors", "errors_only", is_flag=True, help="Only runs that did not finish cleanly.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, errors_only: bool, as_json: bool) -> None:
    """Show past runs from the audit ledger, newest last."""
    from dotstrap.core.persistence.audit import AUDIT_FILE, AuditWriter

    settings = load_cli_settings(ctx)
    audit = AuditWriter(settings.state_path / AUDIT_FILE)
    entries = audit.read_recent(limit, problems_only=errors_only)

    if as_json:
        click.echo(json.dumps({
            "total": audit.entry_count(),
            "entries": [e.model_dump(mode="json") for e in entries],
        }, indent=2))
        return

    if not entries:
        click.secho("No runs recorded." if not errors_only else "No failed runs recorded.", fg="yellow")
        return

    click.secho(f"\n📜 Runs ({len(entries)} of {audit.entry_count()}):", fg="cyan", bold=True)
    for entry in entries:
        when = entry.timestamp[:19].replace("T", " ")
        status = entry.status or "unknown"
        click.secho(
            f"   {when}  {entry.command:<8} {status:<20} "
            f"{entry.installed} installed, {entry.skipped} skipped, "
            f"{entry.failed} failed, {entry.timeouts} timed out",
            fg=status_color(status),
        )
        if entry.profile:
            click.echo(f"       profile: {entry.profile}")
        for error in entry.errors:
            click.secho(f"       • {error}", fg="red")
    click.echo()


# ── detect / preflight / profiles ───────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def detect(as_json: bool) -> None:
    """Show what dotstrap detects about this machine."""
    from dotstrap.adapters.shell.command import SubprocessRunner
    from dotstrap.core.services.detection import UnsupportedSystemError, detect_system

    try:
        info = detect_system(SubprocessRunner())
    except UnsupportedSystemError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(info.to_dict(), indent=2))
        return

    click.secho(f"\n🖥️  {info.summary()}", fg="cyan", bold=True)
    click.echo(f"   OS family:       {info.os_family}")
    click.echo(f"   Tested platform: {'yes' if info.tested else 'no'}")
    click.echo(f"   Package manager: {info.package_manager or 'none'}")
    if info.gpu_model:
        click.echo(f"   GPU:             {info.gpu_model} (via {info.gpu_probe})")
    if info.chipset:
        click.echo(f"   Chipset:         {info.chipset}")
    click.secho("   Flags:", bold=True)
    for name, value in sorted(info.flags.items()):
        click.secho(f"     {name}: {value}", fg="green" if value else "white")
    for warning in info.warnings:
        click.secho(f"   ⚠️  {warning}", fg="yellow")
    click.echo()


@cli.command()
@click.option("--minimal", is_flag=True, help="Check for a minimal run.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def preflight(ctx: click.Context, minimal: bool, as_json: bool) -> None:
    """Run the preflight checklist without installing anything."""
    from dotstrap.adapters.shell.command import SubprocessRunner
    from dotstrap.core.services.detection import UnsupportedSystemError, detect_system
    from dotstrap.core.services.preflight import run_preflight

    settings = load_cli_settings(ctx)
    try:
        info = detect_system(SubprocessRunner(), probe_hardware=False)
    except UnsupportedSystemError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    report = run_preflight(settings, info, minimal=minimal)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(1 if report.blocking else 0)

    for check in report.checks:
        icon = {"pass": "✓", "warn": "⚠️ ", "error": "❌"}.get(check.status, "•")
        color = {"pass": "green", "warn": "yellow"}.get(check.status, "red")
        click.secho(f"   {icon} {check.name}: {check.message}", fg=color)
    if report.blocking:
        click.secho("\n❌ Blocking problems found (install would need --force)", fg="red", bold=True)
        sys.exit(1)
    click.secho("\n✅ Ready to install", fg="green", bold=True)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def profiles(ctx: click.Context, as_json: bool) -> None:
    """List the available machine profiles."""
    from dotstrap.core.config.profile_loader import discover_profiles, search_dirs_for

    settings = load_cli_settings(ctx)
    found = discover_profiles(search_dirs_for(settings.profiles_path))

    if as_json:
        click.echo(json.dumps(
            {name: p.model_dump(mode="json", exclude={"source"}) for name, p in found.items()},
            indent=2,
        ))
        return

    if not found:
        click.secho("No profiles found.", fg="yellow")
        return
    click.secho(f"\n🧩 Profiles ({len(found)}):", fg="cyan", bold=True)
    for name, profile in sorted(found.items()):
        machine = f" [{profile.machine_type}]" if profile.machine_type else ""
        click.echo(f"   • {name}{machine}  {profile.description}")
    click.echo()


# ── Register sub-command groups from dotstrap/ui/cli/ ────────────

from dotstrap.ui.cli.restore import restore  # noqa: E402

cli.add_command(restore)


if __name__ == "__main__":
    cli()
