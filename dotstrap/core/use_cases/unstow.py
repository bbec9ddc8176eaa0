"""
Unstow use case — take the managed links back out.

Every managed link is removed and the newest ``.bak`` sibling, if any,
is renamed back into place. A restore point is taken first, so an
unstow can itself be undone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from dotstrap.core.models.settings import Settings
from dotstrap.core.persistence.audit import AUDIT_FILE, AuditWriter, RunAuditEntry
from dotstrap.core.services.linker import Linker, LinkReport
from dotstrap.core.services.restore_points import RestorePointError, RestorePointManager

logger = logging.getLogger(__name__)


@dataclass
class UnstowResult:
    links: LinkReport = field(default_factory=LinkReport)
    restore_point: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.links.failures

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"restore_point": self.restore_point}
        if self.error:
            result["error"] = self.error
        result.update(self.links.to_dict())
        return result


def run_unstow(settings: Settings, *, create_restore_point: bool | None = None) -> UnstowResult:
    if create_restore_point is None:
        create_restore_point = settings.auto_restore_point

    result = UnstowResult()
    manager = RestorePointManager(settings.restore_points_path, settings.home_path)
    point = None
    if create_restore_point:
        try:
            point = manager.create("pre-unstow", settings.tracked_targets())
            result.restore_point = point.id
        except RestorePointError as e:
            result.error = str(e)
            logger.error("Not unstowing: %s", e)
            return result

    result.links = Linker(settings, restore_points=manager, point=point).unlink_all()
    logger.info(
        "Unstow done: %d removed, %d skipped, %d failed",
        result.links.installed, result.links.skipped, len(result.links.failures),
    )

    AuditWriter(settings.state_path / AUDIT_FILE).write(RunAuditEntry(
        command="unstow",
        status="ok" if result.ok else "warnings",
        installed=result.links.installed,
        skipped=result.links.skipped,
        failed=len(result.links.failures),
        restore_point=result.restore_point,
        errors=[f"{o.unit}: {o.error}" for o in result.links.failures],
    ))
    return result
