"""
Profile hooks — the pre- and post-install callback slots.

A hook names a builtin from ``HOOKS`` and/or lists argv commands.
Builtins are plain functions taking the run context and returning an
Outcome; profiles can only refer to them by name.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import TYPE_CHECKING

from dotstrap.core.models.outcome import Outcome
from dotstrap.core.models.profile import HookSpec

if TYPE_CHECKING:
    from dotstrap.core.context import RunContext

logger = logging.getLogger(__name__)

Hook = Callable[["RunContext"], Outcome]


def set_default_shell(ctx: RunContext) -> Outcome:
    """Make zsh the login shell."""
    if os.environ.get("SHELL", "").endswith("zsh"):
        return Outcome.skipped("set_default_shell", "hook", "zsh is already the default shell")

    zsh = ctx.runner.which("zsh")
    if zsh is None:
        return Outcome.failure(
            "set_default_shell", "hook",
            error="zsh is not installed",
            hint="Install zsh, then run: chsh -s $(which zsh)",
        )

    result = ctx.runner.run(["chsh", "-s", zsh], timeout=ctx.settings.timeouts.command)
    if result.timed_out:
        return Outcome.timed_out("set_default_shell", "hook", result.timeout or 0)
    if not result.ok:
        return Outcome.failure(
            "set_default_shell", "hook",
            error=result.message,
            hint=f"Run manually: chsh -s {zsh}",
        )
    return Outcome.installed("set_default_shell", "hook", f"login shell set to {zsh}")


def refresh_font_cache(ctx: RunContext) -> Outcome:
    """Rebuild the fontconfig cache so downloaded fonts show up."""
    if ctx.runner.which("fc-cache") is None:
        return Outcome.skipped("refresh_font_cache", "hook", "fc-cache not available")
    result = ctx.runner.run(["fc-cache", "-f"], timeout=ctx.settings.timeouts.command)
    if not result.ok:
        return Outcome.failure("refresh_font_cache", "hook", error=result.message)
    return Outcome.installed("refresh_font_cache", "hook", "font cache refreshed")


HOOKS: dict[str, Hook] = {
    "set_default_shell": set_default_shell,
    "refresh_font_cache": refresh_font_cache,
}


def run_hook(slot: str, spec: HookSpec, ctx: RunContext) -> list[Outcome]:
    """Run one hook slot. Never raises; problems become failed outcomes."""
    outcomes: list[Outcome] = []
    if spec.empty:
        return outcomes

    logger.info("Running %s hook", slot)
    if spec.builtin:
        hook = HOOKS.get(spec.builtin)
        if hook is None:
            outcomes.append(Outcome.failure(
                f"{slot}:{spec.builtin}", "hook",
                error=f"Unknown builtin hook '{spec.builtin}'",
                hint=f"Available hooks: {', '.join(sorted(HOOKS))}",
            ))
        else:
            outcomes.append(hook(ctx))

    for argv in spec.commands:
        unit = f"{slot}:{' '.join(argv)}"
        if not argv:
            continue
        result = ctx.runner.run(argv, timeout=ctx.settings.timeouts.command)
        if result.timed_out:
            outcomes.append(Outcome.timed_out(unit, "hook", result.timeout or 0))
        elif not result.ok:
            outcomes.append(Outcome.failure(unit, "hook", error=result.message))
        else:
            outcomes.append(Outcome.installed(unit, "hook", "ran"))
    return outcomes
