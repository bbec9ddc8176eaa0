"""
Helpers shared by the CLI commands.
"""

from __future__ import annotations

import sys

import click

from dotstrap.core.config.loader import ConfigError, load_settings
from dotstrap.core.models.settings import Settings


def load_cli_settings(ctx: click.Context, exit_code: int = 1) -> Settings:
    """Settings from the global options; exits with ``exit_code`` on error."""
    try:
        return load_settings(
            ctx.obj.get("config_path"),
            home=ctx.obj.get("home"),
            dotfiles_dir=ctx.obj.get("dotfiles"),
        )
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(exit_code)


def status_color(status: str) -> str:
    return {
        "installed": "green",
        "skipped": "white",
        "failed": "red",
        "timeout": "yellow",
        "ok": "green",
        "healthy": "green",
        "warnings": "yellow",
        "degraded": "yellow",
        "unknown": "white",
    }.get(status, "red")


def outcome_icon(status: str) -> str:
    return {
        "installed": "✅",
        "skipped": "⏭️ ",
        "failed": "❌",
        "timeout": "⏱️ ",
    }.get(status, "•")
