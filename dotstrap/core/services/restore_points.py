"""
Restore points — capture configuration state and put it back later.

Layout under ``<state_dir>/restore-points``::

    index.json                  point ids in creation order
    <id>/
        metadata.json           RestorePoint model
        files/...               captured content, mirrored relative to home
        restore.sh              self-contained restore script
        packages.txt            installed package list (best effort)
        system_info.txt         host summary (best effort)

Captured content is never modified once written. While a run owns a
point, the linker may append further paths to it (``capture``) so
every path it mutates is covered.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import shlex
import shutil
import socket
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dotstrap.core.decisions import RESTORE, DecisionProvider
from dotstrap.core.models.outcome import Outcome
from dotstrap.core.models.restore import FILES_DIR, METADATA_FILE, RESTORE_SCRIPT, RestorePoint
from dotstrap.core.services.packages import PackageManager

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"
OUTSIDE_HOME_DIR = "_root"


class RestorePointError(Exception):
    """Raised when a restore point cannot be created, found or read."""


@dataclass
class RestoreResult:
    """Result of restoring one point."""

    point: RestorePoint
    confirmed: bool = False
    outcomes: list[Outcome] = field(default_factory=list)

    @property
    def failed(self) -> list[Outcome]:
        return [o for o in self.outcomes if o.is_failure]

    def to_dict(self) -> dict[str, Any]:
        return {
            "point": self.point.to_dict(),
            "confirmed": self.confirmed,
            "restored": sum(1 for o in self.outcomes if o.status == "installed"),
            "failed": [{"path": o.unit, "error": o.error} for o in self.failed],
        }


def _write_json(path: Path, data: Any) -> None:
    """Atomic JSON write: temp file in the same directory, then rename."""
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def _remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def _copy_resolved(src: Path, dest: Path) -> None:
    """Copy real content, following a top-level symlink."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    if src.is_dir():
        shutil.copytree(src, dest, symlinks=True)
    else:
        shutil.copy2(src, dest)


class RestorePointManager:
    """Create, list, restore and prune restore points."""

    def __init__(self, root: Path, home: Path, package_manager: PackageManager | None = None):
        self.root = root
        self.home = home
        self._package_manager = package_manager

    @property
    def index_path(self) -> Path:
        return self.root / INDEX_FILE

    def point_dir(self, point_id: str) -> Path:
        return self.root / point_id

    # ── Create / capture ────────────────────────────────────────

    def create(
        self,
        name: str = "",
        tracked_paths: list[Path] | None = None,
        profile_name: str = "",
    ) -> RestorePoint:
        """Capture every tracked path into a new point.

        Raises:
            RestorePointError: If any path cannot be captured; the
                partial point directory is removed.
        """
        now = datetime.now(UTC)
        point = RestorePoint(
            id=f"{now:%Y%m%d-%H%M%S}-{uuid.uuid4().hex[:6]}",
            name=name,
            created_at=now.isoformat(),
            profile_name=profile_name,
            hostname=socket.gethostname(),
            home=str(self.home),
        )
        directory = self.point_dir(point.id)

        try:
            (directory / FILES_DIR).mkdir(parents=True)
            for path in tracked_paths or []:
                self._capture_path(point, path)
            self._write_extras(point)
            self._save(point)
            self._append_index(point.id)
        except (OSError, shutil.Error) as e:
            shutil.rmtree(directory, ignore_errors=True)
            raise RestorePointError(f"Cannot create restore point: {e}") from e

        logger.info(
            "Created restore point %s (%d files, %d absent)",
            point.id, len(point.captured_files), len(point.absent_paths),
        )
        return point

    def capture(self, point: RestorePoint, path: Path) -> bool:
        """Add ``path`` to an existing point unless already covered.

        Returns:
            True if the path was newly captured.

        Raises:
            RestorePointError: If the path cannot be captured.
        """
        if point.covers(str(path)):
            return False
        try:
            self._capture_path(point, path)
            self._save(point)
        except (OSError, shutil.Error) as e:
            raise RestorePointError(f"Cannot capture {path}: {e}") from e
        logger.debug("Captured %s into %s", path, point.id)
        return True

    def _relative(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.home))
        except ValueError:
            return str(Path(OUTSIDE_HOME_DIR, *path.parts[1:]))

    def _capture_path(self, point: RestorePoint, path: Path) -> None:
        key = str(path)
        if path.is_symlink():
            point.captured_symlink_targets[key] = os.readlink(path)

        if not path.exists():
            if key not in point.captured_symlink_targets:
                point.absent_paths.append(key)
            return

        relative = self._relative(path)
        _copy_resolved(path, self.point_dir(point.id) / FILES_DIR / relative)
        point.captured_files[key] = relative

    def _save(self, point: RestorePoint) -> None:
        directory = self.point_dir(point.id)
        _write_json(directory / METADATA_FILE, point.model_dump(mode="json"))
        script = directory / RESTORE_SCRIPT
        script.write_text(render_restore_script(point), encoding="utf-8")
        script.chmod(0o755)

    def _write_extras(self, point: RestorePoint) -> None:
        directory = self.point_dir(point.id)
        info = [
            f"Restore point: {point.id}",
            f"Created: {point.created_at}",
            f"Host: {point.hostname}",
            f"System: {platform.platform()}",
            f"Python: {platform.python_version()}",
            f"Profile: {point.profile_name or '-'}",
        ]
        (directory / "system_info.txt").write_text("\n".join(info) + "\n", encoding="utf-8")

        if self._package_manager is not None:
            listing = self._package_manager.list_installed()
            if listing:
                (directory / "packages.txt").write_text(listing, encoding="utf-8")

    # ── Index ───────────────────────────────────────────────────

    def _read_index(self) -> list[str]:
        try:
            data = json.loads(self.index_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        points = data.get("points", []) if isinstance(data, dict) else []
        return [p for p in points if isinstance(p, str)]

    def _write_index(self, ids: list[str]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        _write_json(self.index_path, {"points": ids})

    def _append_index(self, point_id: str) -> None:
        ids = [p for p in self._read_index() if p != point_id]
        ids.append(point_id)
        self._write_index(ids)

    # ── Queries ─────────────────────────────────────────────────

    def load(self, point_id: str) -> RestorePoint | None:
        meta = self.point_dir(point_id) / METADATA_FILE
        try:
            return RestorePoint.model_validate_json(meta.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug("Skipping invalid restore point %s: %s", point_id, e)
            return None

    def list(self) -> list[RestorePoint]:
        """Valid points, newest first."""
        if not self.root.is_dir():
            return []
        order = {pid: i for i, pid in enumerate(self._read_index())}
        points = []
        for child in self.root.iterdir():
            if not child.is_dir():
                continue
            point = self.load(child.name)
            if point is not None:
                points.append(point)
        points.sort(key=lambda p: (p.created_at, order.get(p.id, -1)), reverse=True)
        return points

    def get(self, id_or_name: str) -> RestorePoint:
        """Find a point by id, or the newest point with that name.

        Raises:
            RestorePointError: If nothing matches.
        """
        points = self.list()
        for point in points:
            if point.id == id_or_name:
                return point
        for point in points:
            if point.name == id_or_name:
                return point
        raise RestorePointError(f"No restore point '{id_or_name}'")

    # ── Restore / prune ─────────────────────────────────────────

    def restore(self, id_or_name: str, decisions: DecisionProvider) -> RestoreResult:
        """Put every tracked path back the way it was at capture time.

        Managed symlinks and current content at tracked paths are
        removed first, then the captured content is copied back, so a
        path that was a link at capture comes back as a plain copy of
        what it pointed to. A link that was dangling at capture is
        re-created. Paths that did not exist at capture are removed.

        Raises:
            RestorePointError: If the point does not exist.
        """
        point = self.get(id_or_name)
        result = RestoreResult(point=point)

        question = (
            f"Restore {len(point.tracked)} paths from restore point "
            f"{point.id} ({point.created_at})? Current files at those paths will be replaced."
        )
        if not decisions.confirm(RESTORE, question, default=False):
            logger.info("Restore of %s not confirmed", point.id)
            return result
        result.confirmed = True

        files = self.point_dir(point.id) / FILES_DIR
        for key, relative in point.captured_files.items():
            result.outcomes.append(self._restore_one(Path(key), files / relative))

        # Dangling at capture: no content to copy, only the link itself
        for key, link in point.captured_symlink_targets.items():
            if key not in point.captured_files:
                result.outcomes.append(self._relink(Path(key), link))

        for key in point.absent_paths:
            result.outcomes.append(self._clear(Path(key)))

        logger.info(
            "Restored %s: %d paths, %d failures",
            point.id, len(result.outcomes), len(result.failed),
        )
        return result

    @staticmethod
    def _restore_one(path: Path, captured: Path) -> Outcome:
        try:
            _remove_path(path)
            _copy_resolved(captured, path)
        except (OSError, shutil.Error) as e:
            return Outcome.failure(str(path), "restore", error=str(e))
        return Outcome.installed(str(path), "restore", "restored")

    @staticmethod
    def _relink(path: Path, link: str) -> Outcome:
        try:
            _remove_path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.symlink_to(link)
        except OSError as e:
            return Outcome.failure(str(path), "restore", error=str(e))
        return Outcome.installed(str(path), "restore", f"relinked to {link}")

    @staticmethod
    def _clear(path: Path) -> Outcome:
        if not (path.exists() or path.is_symlink()):
            return Outcome.skipped(str(path), "restore", "already absent")
        try:
            _remove_path(path)
        except OSError as e:
            return Outcome.failure(str(path), "restore", error=str(e))
        return Outcome.installed(str(path), "restore", "removed")

    def prune(self, keep_n: int) -> list[str]:
        """Delete all but the ``keep_n`` newest valid points.

        Returns:
            Ids of the removed points.
        """
        keep_n = max(keep_n, 0)
        removed = []
        for point in self.list()[keep_n:]:
            shutil.rmtree(self.point_dir(point.id), ignore_errors=True)
            removed.append(point.id)

        if removed:
            self._write_index([p for p in self._read_index() if p not in removed])
            logger.info("Pruned %d restore points (kept %d)", len(removed), keep_n)
        return removed


def render_restore_script(point: RestorePoint) -> str:
    """Bash script that restores ``point`` without dotstrap installed."""
    lines = [
        "#!/usr/bin/env bash",
        f"# Restore point {point.id} {point.name}".rstrip(),
        f"# Created {point.created_at} on {point.hostname or 'unknown host'}",
        "set -euo pipefail",
        "",
        'POINT_DIR="$(cd "$(dirname "${BASH_SOURCE[0]}")" && pwd)"',
        'FILES="$POINT_DIR/files"',
        "",
        "restore_path() {",
        '    rm -rf -- "$2"',
        '    mkdir -p -- "$(dirname -- "$2")"',
        '    cp -a -- "$FILES/$1" "$2"',
        '    echo "restored $2"',
        "}",
        "",
        "relink_path() {",
        '    rm -rf -- "$2"',
        '    mkdir -p -- "$(dirname -- "$2")"',
        '    ln -s -- "$1" "$2"',
        '    echo "relinked $2"',
        "}",
        "",
        "remove_path() {",
        '    rm -rf -- "$1"',
        '    echo "removed $1"',
        "}",
        "",
    ]
    for key, relative in point.captured_files.items():
        lines.append(f"restore_path {shlex.quote(relative)} {shlex.quote(key)}")
    for key, link in point.captured_symlink_targets.items():
        if key not in point.captured_files:
            lines.append(f"relink_path {shlex.quote(link)} {shlex.quote(key)}")
    for key in point.absent_paths:
        lines.append(f"remove_path {shlex.quote(key)}")
    lines.append("")
    return "\n".join(lines)
