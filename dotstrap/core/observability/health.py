"""
Health checker — aggregate machine health from components.

Reports the state of the managed links, shell plugin clones, restore
points and the last recorded run. Used by the CLI ``health`` command.
Nothing here mutates the machine.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dotstrap.core.models.settings import Settings
from dotstrap.core.models.state import InstallState
from dotstrap.core.persistence.state_file import load_state, state_path
from dotstrap.core.services.restore_points import RestorePointManager
from dotstrap.core.services.verification import check_links

logger = logging.getLogger(__name__)

# A clone created with a malformed "name:https://..." argument
BROKEN_CLONE_MARKER = ":https"
PLUGIN_DIRS = (
    ".oh-my-zsh/custom/plugins",
    ".oh-my-zsh/custom/themes",
)


# Worst first; "unknown" sits between degraded and healthy
_SEVERITY = ("unhealthy", "degraded", "unknown", "healthy")


@dataclass
class ComponentHealth:
    """One checked aspect of the machine."""

    name: str
    status: str = "unknown"
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SystemHealth:
    """All components, with the worst component status as overall status."""

    components: list[ComponentHealth] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def status(self) -> str:
        seen = {c.status for c in self.components}
        return next((s for s in _SEVERITY if s in seen), "healthy")

    def add(self, component: ComponentHealth) -> None:
        self.components.append(component)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "components": [c.to_dict() for c in self.components],
        }


def check_link_health(settings: Settings) -> ComponentHealth:
    """Critical links missing is unhealthy; optional ones only degrade."""
    statuses = check_links(settings)
    broken = [s for s in statuses if not s.ok]
    critical = [s for s in broken if s.spec.critical]
    details = {s.spec.target: s.state for s in statuses}

    if critical:
        status = "unhealthy"
        message = f"{len(critical)} critical links not in place"
    elif broken:
        status = "degraded"
        message = f"{len(broken)}/{len(statuses)} links not in place"
    else:
        status = "healthy"
        message = f"All {len(statuses)} links in place"
    return ComponentHealth(name="links", status=status, message=message, details=details)


def check_plugin_health(settings: Settings) -> ComponentHealth:
    """Flag leftover clone directories with a ``:https`` suffix."""
    broken: list[str] = []
    for relative in PLUGIN_DIRS:
        directory = settings.home_path / relative
        if not directory.is_dir():
            continue
        broken += [str(p) for p in directory.iterdir() if BROKEN_CLONE_MARKER in p.name]

    if broken:
        return ComponentHealth(
            name="plugins",
            status="unhealthy",
            message=f"{len(broken)} broken plugin directories (remove them and re-run install)",
            details={"broken": broken},
        )
    return ComponentHealth(name="plugins", status="healthy", message="No broken plugin directories")


def check_restore_point_health(manager: RestorePointManager) -> ComponentHealth:
    points = manager.list()
    if not points:
        return ComponentHealth(
            name="restore_points",
            status="degraded",
            message="No restore points; create one with 'dotstrap restore create'",
        )
    return ComponentHealth(
        name="restore_points",
        status="healthy",
        message=f"{len(points)} restore points, newest {points[0].id}",
        details={"newest": points[0].id, "count": len(points)},
    )


def check_last_run(state: InstallState) -> ComponentHealth:
    run = state.last_run
    if not run.run_id:
        return ComponentHealth(name="last_run", status="unknown", message="No recorded install run")

    status = {
        "ok": "healthy",
        "warnings": "degraded",
    }.get(run.status, "unhealthy")
    return ComponentHealth(
        name="last_run",
        status=status,
        message=f"{run.status} at {run.ended_at or run.started_at}",
        details=run.model_dump(mode="json"),
    )


def check_system_health(settings: Settings, state_file: Path | None = None) -> SystemHealth:
    """Every component check, in display order."""
    health = SystemHealth()
    health.add(check_link_health(settings))
    health.add(check_plugin_health(settings))
    health.add(check_restore_point_health(
        RestorePointManager(settings.restore_points_path, settings.home_path),
    ))
    health.add(check_last_run(load_state(state_file or state_path(settings))))
    logger.debug("Health: %s", health.status)
    return health
