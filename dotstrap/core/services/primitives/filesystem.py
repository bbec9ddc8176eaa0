"""
Filesystem primitives — ensure-directory and ensure-symlink.

Both check the current state first and do nothing when it already
matches. Existing content is never deleted: a conflicting file or
directory is renamed aside with a timestamped ``.bak`` suffix.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path

from dotstrap.core.models.outcome import Outcome

logger = logging.getLogger(__name__)

BACKUP_MARKER = ".bak."
FORCE_HINT = "Re-run with --force to replace it (the original is kept as a .bak file)"


# ── Helpers ─────────────────────────────────────────────────────


def points_to(target: Path, source: Path) -> bool:
    """Whether ``target`` is a symlink resolving to ``source``."""
    if not target.is_symlink():
        return False
    return os.path.realpath(target) == os.path.realpath(source)


def backup_path(target: Path, now: datetime | None = None) -> Path:
    """A free ``<target>.bak.YYYYmmdd_HHMMSS`` sibling path."""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    candidate = target.with_name(f"{target.name}{BACKUP_MARKER}{stamp}")
    counter = 1
    while candidate.exists() or candidate.is_symlink():
        candidate = target.with_name(f"{target.name}{BACKUP_MARKER}{stamp}.{counter}")
        counter += 1
    return candidate


def find_backups(target: Path) -> list[Path]:
    """Backups of ``target`` made by ``backup_path``, newest first."""
    if not target.parent.is_dir():
        return []
    prefix = f"{target.name}{BACKUP_MARKER}"
    found = [p for p in target.parent.iterdir() if p.name.startswith(prefix)]
    return sorted(found, key=lambda p: p.name[len(prefix):], reverse=True)


def move_aside(target: Path, now: datetime | None = None) -> Path:
    """Rename ``target`` to a timestamped backup in the same directory.

    Raises:
        OSError: If the rename fails; ``target`` is then untouched.
    """
    backup = backup_path(target, now)
    os.rename(target, backup)
    logger.info("Moved %s aside to %s", target, backup.name)
    return backup


# ── Primitives ──────────────────────────────────────────────────


def ensure_directory(path: Path) -> Outcome:
    """Create ``path`` recursively unless it already is a directory."""
    unit = str(path)
    if path.is_dir():
        return Outcome.skipped(unit, "directory", "already exists")
    if path.exists() or path.is_symlink():
        return Outcome.failure(
            unit, "directory",
            error=f"{path} exists and is not a directory",
            hint="Move or remove the file so the directory can be created",
        )
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return Outcome.failure(
            unit, "directory",
            error=f"Cannot create {path}: {e.strerror or e}",
            hint="Check permissions on the parent directory",
        )
    logger.info("Created directory %s", path)
    return Outcome.installed(unit, "directory", "created")


def ensure_symlink(
    source: Path,
    target: Path,
    *,
    force: bool = False,
    now: datetime | None = None,
) -> Outcome:
    """Make ``target`` a symlink to ``source``.

    - already correct: skipped, no side effect
    - symlink elsewhere: replaced only with ``force``
    - file or directory: moved aside to ``<target>.bak.<ts>`` only with ``force``
    - absent: created, along with missing parent directories
    """
    unit = str(target)

    if not (source.exists() or source.is_symlink()):
        return Outcome.failure(
            unit, "symlink",
            error=f"Link source does not exist: {source}",
            hint="Check that the dotfiles repository is cloned and complete",
        )

    if points_to(target, source):
        return Outcome.skipped(unit, "symlink", f"already links to {source}")

    backup: Path | None = None
    previous_link: str | None = None
    try:
        if target.is_symlink():
            current = os.readlink(target)
            if not force:
                return Outcome.failure(
                    unit, "symlink",
                    error=f"{target} links to {current}, not {source}",
                    hint=FORCE_HINT,
                )
            target.unlink()
            previous_link = current
            logger.info("Replacing link %s (was -> %s)", target, current)
        elif target.exists():
            kind = "directory" if target.is_dir() else "file"
            if not force:
                return Outcome.failure(
                    unit, "symlink",
                    error=f"{target} exists as a {kind}",
                    hint=FORCE_HINT,
                )
            backup = move_aside(target, now)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)

        target.symlink_to(source, target_is_directory=source.is_dir())
    except OSError as e:
        _undo(target, backup, previous_link)
        return Outcome.failure(
            unit, "symlink",
            error=f"Cannot link {target}: {e.strerror or e}",
            hint="Check permissions and that the parent is a writable directory",
        )

    logger.info("Linked %s -> %s", target, source)
    metadata = {"source": str(source)}
    if backup is not None:
        metadata["backup"] = str(backup)
    return Outcome.installed(unit, "symlink", f"linked to {source}", metadata=metadata)


def _undo(target: Path, backup: Path | None, previous_link: str | None) -> None:
    """Put back whatever ensure_symlink moved before linking failed."""
    if target.exists() or target.is_symlink():
        return
    try:
        if backup is not None:
            os.rename(backup, target)
        elif previous_link is not None:
            target.symlink_to(previous_link)
    except OSError as e:
        logger.error("Could not restore %s after a failed link: %s", target, e)
