"""
CLI commands for restore points.

Thin wrappers over ``dotstrap.core.services.restore_points``.
"""

from __future__ import annotations

import json
import sys

import click

from dotstrap.ui.cli.common import load_cli_settings, outcome_icon


def _manager(ctx: click.Context):
    from dotstrap.core.services.restore_points import RestorePointManager

    settings = load_cli_settings(ctx)
    return settings, RestorePointManager(settings.restore_points_path, settings.home_path)


@click.group()
def restore() -> None:
    """Restore points — list, create, apply and clean up snapshots."""


@restore.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_points(ctx: click.Context, as_json: bool) -> None:
    """List restore points, newest first."""
    _settings, manager = _manager(ctx)
    points = manager.list()

    if as_json:
        click.echo(json.dumps([p.to_dict() for p in points], indent=2))
        return

    if not points:
        click.secho("No restore points.", fg="yellow")
        return

    click.secho(f"\n📸 Restore points ({len(points)}):", fg="cyan", bold=True)
    for point in points:
        label = f" {point.name}" if point.name else ""
        profile = f" [{point.profile_name}]" if point.profile_name else ""
        click.echo(
            f"   • {point.id}{label}{profile}  "
            f"{len(point.captured_files)} files, {len(point.absent_paths)} absent  ({point.created_at})"
        )
    click.echo()


@restore.command()
@click.argument("name", default="manual")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def create(ctx: click.Context, name: str, as_json: bool) -> None:
    """Capture the tracked configuration paths now.

    NAME labels the point (default: manual).
    """
    from dotstrap.core.services.restore_points import RestorePointError

    settings, manager = _manager(ctx)
    try:
        point = manager.create(name, settings.tracked_targets())
    except RestorePointError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(point.to_dict(), indent=2))
        return
    click.secho(f"✅ Created restore point {point.id}", fg="green")
    click.echo(f"   {len(point.captured_files)} files captured, {len(point.absent_paths)} paths absent")
    click.echo(f"   {manager.point_dir(point.id)}")


@restore.command()
@click.argument("point_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def apply(ctx: click.Context, point_id: str, yes: bool, as_json: bool) -> None:
    """Put the tracked paths back as captured in POINT_ID (id or name)."""
    from dotstrap.core.decisions import StaticDecisions
    from dotstrap.core.services.restore_points import RestorePointError
    from dotstrap.ui.cli.prompts import ClickDecisions

    _settings, manager = _manager(ctx)
    decisions = StaticDecisions(True) if yes else ClickDecisions()
    try:
        result = manager.restore(point_id, decisions)
    except RestorePointError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.failed else 0)

    if not result.confirmed:
        click.secho("Restore cancelled.", fg="yellow")
        return

    for outcome in result.outcomes:
        click.echo(f"   {outcome_icon(outcome.status)} {outcome.unit}  {outcome.error or outcome.detail}")
    if result.failed:
        click.secho(f"\n❌ {len(result.failed)} paths could not be restored", fg="red", bold=True)
        sys.exit(1)
    click.secho(f"\n✅ Restored {result.point.id}", fg="green", bold=True)


@restore.command()
@click.argument("keep", type=int, required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def cleanup(ctx: click.Context, keep: int | None, as_json: bool) -> None:
    """Delete all but the KEEP newest points (default: settings retention)."""
    settings, manager = _manager(ctx)
    removed = manager.prune(settings.retention if keep is None else keep)

    if as_json:
        click.echo(json.dumps({"removed": removed}, indent=2))
        return
    if not removed:
        click.echo("Nothing to clean up.")
        return
    click.secho(f"🧹 Removed {len(removed)} restore points", fg="green")
    for point_id in removed:
        click.echo(f"   • {point_id}")
