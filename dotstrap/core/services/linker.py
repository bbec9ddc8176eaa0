"""
Conflict-resolving linker — put dotfile symlinks in place.

Each desired link (``home/target`` -> ``dotfiles/source``) goes
through a staged strategy:

    1. clean       target absent or already correct: create or confirm
    2. adopt       target is a file, directory or wrong link: claim the
                   path by renaming the existing entry to
                   ``<target>.bak.<ts>`` and link the desired source
    3. manual      the rename failed: copy the entry to the backup,
                   remove it, force-create the link
    4. failed      nothing worked: the target is left as it was found;
                   if it cannot be, the error says it was partly
                   removed and names the backup with the full original

Adoption always ends with the desired source content; what was there
before survives only as the timestamped backup (and in the active
restore point). Every mutation of a target is preceded by a capture of
that target into the active restore point, when there is one. Links
are independent: one failure never stops the others.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from dotstrap.core.models.outcome import Outcome
from dotstrap.core.models.restore import RestorePoint
from dotstrap.core.models.settings import LinkSpec, Settings
from dotstrap.core.services.primitives.filesystem import (
    backup_path,
    ensure_symlink,
    find_backups,
    points_to,
)
from dotstrap.core.services.restore_points import RestorePointError, RestorePointManager

logger = logging.getLogger(__name__)


@dataclass
class LinkReport:
    """Outcomes of a linking (or unlinking) pass, one per link."""

    outcomes: list[Outcome] = field(default_factory=list)

    @property
    def installed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "installed")

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "skipped")

    @property
    def failures(self) -> list[Outcome]:
        return [o for o in self.outcomes if o.is_failure]

    def to_dict(self) -> dict[str, Any]:
        return {
            "installed": self.installed,
            "skipped": self.skipped,
            "failed": len(self.failures),
            "links": [o.model_dump(mode="json") for o in self.outcomes],
        }


def _exists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def _remove(path: Path) -> None:
    if path.is_symlink() or not path.is_dir():
        path.unlink()
    else:
        shutil.rmtree(path)


class Linker:
    """Reconcile desired links against the filesystem."""

    def __init__(
        self,
        settings: Settings,
        *,
        restore_points: RestorePointManager | None = None,
        point: RestorePoint | None = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self._settings = settings
        self._restore_points = restore_points
        self._point = point
        self._now = now

    # ── Restore point coverage ──────────────────────────────────

    def _capture(self, target: Path) -> str | None:
        """Capture ``target`` into the active point. Returns an error or None."""
        if self._restore_points is None or self._point is None:
            return None
        try:
            self._restore_points.capture(self._point, target)
        except RestorePointError as e:
            return str(e)
        return None

    # ── Linking ─────────────────────────────────────────────────

    def link_all(self, specs: Iterable[LinkSpec] | None = None) -> LinkReport:
        report = LinkReport()
        for spec in self._settings.links if specs is None else specs:
            outcome = self.link(spec)
            report.outcomes.append(outcome)
            if outcome.is_failure:
                logger.error("Link %s failed: %s", outcome.unit, outcome.error)
        logger.info(
            "Linking done: %d installed, %d skipped, %d failed",
            report.installed, report.skipped, len(report.failures),
        )
        return report

    def link(self, spec: LinkSpec) -> Outcome:
        source = self._settings.link_source(spec)
        target = self._settings.link_target(spec)
        unit = str(target)

        if not _exists(source):
            return Outcome.failure(
                unit, "symlink",
                error=f"Link source does not exist: {source}",
                hint="Check that the dotfiles repository is cloned and complete",
            )
        if points_to(target, source):
            return Outcome.skipped(unit, "symlink", f"already links to {source}")

        error = self._capture(target)
        if error:
            return Outcome.failure(
                unit, "symlink",
                error=error,
                hint="Free up space in the state directory or run with --no-restore-point",
            )

        if not _exists(target):
            outcome = ensure_symlink(source, target)
            if outcome.ok:
                return self._tag(outcome, "link")
            logger.debug("Plain link of %s failed: %s", target, outcome.error)
            return self._manual(source, target, previous=outcome.error)

        outcome = ensure_symlink(source, target, force=True, now=self._now())
        if outcome.ok:
            return self._tag(outcome, "adopt")
        logger.info("Adopting %s failed (%s), trying manual fallback", target, outcome.error)
        return self._manual(source, target, previous=outcome.error)

    @staticmethod
    def _tag(outcome: Outcome, strategy: str) -> Outcome:
        outcome.metadata["strategy"] = strategy
        return outcome

    def _manual(self, source: Path, target: Path, previous: str | None) -> Outcome:
        """Copy-based backup, removal, then a forced link."""
        unit = str(target)
        backup: Path | None = None
        removing = False
        try:
            if _exists(target):
                backup = backup_path(target, self._now())
                if target.is_symlink():
                    backup.symlink_to(os.readlink(target))
                elif target.is_dir():
                    shutil.copytree(target, backup, symlinks=True)
                else:
                    shutil.copy2(target, backup)
                removing = True
                _remove(target)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.symlink_to(source, target_is_directory=source.is_dir())
        except (OSError, shutil.Error) as e:
            note = self._leave_as_found(target, backup, removing)
            return Outcome.failure(
                unit, "symlink",
                error=f"Unresolvable: {previous or 'link failed'}; manual fallback failed: {e}{note}",
                hint=f"Fix permissions on {target.parent} or link it by hand: ln -s {source} {target}",
                metadata={"strategy": "manual"},
            )

        logger.info("Linked %s -> %s (manual fallback)", target, source)
        metadata: dict[str, Any] = {"source": str(source), "strategy": "manual"}
        if backup is not None:
            metadata["backup"] = str(backup)
        return Outcome.installed(unit, "symlink", f"linked to {source}", metadata=metadata)

    @staticmethod
    def _leave_as_found(target: Path, backup: Path | None, removing: bool) -> str:
        """Undo a failed manual fallback. Returns a note for the error message.

        Once removal has started the backup is a complete copy, so what is
        left of the target is cleared and the backup renamed back over it.
        """
        if backup is None or not _exists(backup):
            return ""
        if not removing:
            try:
                _remove(backup)
            except OSError as e:
                logger.warning("Cannot remove incomplete backup %s: %s", backup, e)
            return ""
        try:
            if _exists(target):
                _remove(target)
            os.rename(backup, target)
        except OSError as e:
            logger.error("%s left partly removed; full original at %s", target, backup)
            return f"; {target} was partly removed, the full original is at {backup} ({e})"
        return ""

    # ── Unlinking ───────────────────────────────────────────────

    def unlink_all(self, specs: Iterable[LinkSpec] | None = None) -> LinkReport:
        """Remove managed links and put back the newest backup of each."""
        report = LinkReport()
        for spec in self._settings.links if specs is None else specs:
            report.outcomes.append(self.unlink(spec))
        return report

    def unlink(self, spec: LinkSpec) -> Outcome:
        source = self._settings.link_source(spec)
        target = self._settings.link_target(spec)
        unit = str(target)

        if not target.is_symlink() or not self._is_managed(target, source):
            return Outcome.skipped(unit, "symlink", "not a managed link")

        error = self._capture(target)
        if error:
            return Outcome.failure(unit, "symlink", error=error)

        try:
            target.unlink()
            backups = find_backups(target)
            if backups:
                os.rename(backups[0], target)
                logger.info("Unlinked %s and restored %s", target, backups[0].name)
                return Outcome.installed(unit, "symlink", f"restored {backups[0].name}")
        except OSError as e:
            return Outcome.failure(
                unit, "symlink",
                error=f"Cannot unlink {target}: {e}",
                hint=f"Remove the link by hand: rm {target}",
            )

        logger.info("Unlinked %s", target)
        return Outcome.installed(unit, "symlink", "link removed")

    def _is_managed(self, target: Path, source: Path) -> bool:
        if points_to(target, source):
            return True
        resolved = Path(os.path.realpath(target))
        dotfiles = Path(os.path.realpath(self._settings.dotfiles_path))
        return resolved == dotfiles or dotfiles in resolved.parents
