"""
Git client — the few git operations dotstrap needs.

Uses the git CLI through a ``CommandRunner`` so it shares the
timeout semantics of every other external call.
"""

from __future__ import annotations

import logging
from pathlib import Path

from dotstrap.adapters.base import CommandResult, CommandRunner

logger = logging.getLogger(__name__)


class GitClient:
    """Clone, inspect and fast-forward repositories."""

    def __init__(self, runner: CommandRunner, timeout: float = 120):
        self._runner = runner
        self._timeout = timeout

    def is_available(self) -> bool:
        return self._runner.available("git")

    def _git(self, args: list[str], cwd: Path | None = None) -> CommandResult:
        argv = ["git", *args]
        if cwd is not None:
            argv = ["git", "-C", str(cwd), *args]
        return self._runner.run(argv, timeout=self._timeout)

    # ── Queries ─────────────────────────────────────────────────

    def is_checkout(self, path: Path) -> bool:
        """Whether ``path`` is the top of a usable git working tree."""
        if not (path / ".git").exists():
            return False
        return self._git(["rev-parse", "--is-inside-work-tree"], cwd=path).ok

    def head(self, path: Path) -> str | None:
        result = self._git(["rev-parse", "HEAD"], cwd=path)
        if not result.ok:
            return None
        return result.stdout.strip() or None

    def has_local_changes(self, path: Path) -> bool:
        result = self._git(["status", "--porcelain"], cwd=path)
        return result.ok and bool(result.stdout.strip())

    # ── Mutations ───────────────────────────────────────────────

    def clone(self, url: str, destination: Path, depth: int | None = 1) -> CommandResult:
        args = ["clone"]
        if depth:
            args += ["--depth", str(depth)]
        args += [url, str(destination)]
        logger.debug("git clone %s -> %s", url, destination)
        return self._git(args)

    def update(self, path: Path) -> CommandResult:
        """Fetch and fast-forward. Never creates a merge commit."""
        fetched = self._git(["fetch", "--quiet"], cwd=path)
        if not fetched.ok:
            return fetched
        return self._git(["merge", "--ff-only", "--quiet", "@{u}"], cwd=path)

