"""
install-package primitive.
"""

from __future__ import annotations

import logging

from dotstrap.core.models.outcome import Outcome
from dotstrap.core.models.state import InstallState
from dotstrap.core.services.packages import PackageManager

logger = logging.getLogger(__name__)


def install_package(
    package_id: str,
    display_name: str | None = None,
    *,
    manager: PackageManager | None,
    force: bool = False,
    cache: InstallState | None = None,
    cache_ttl: int = 0,
) -> Outcome:
    """Install ``package_id`` unless the OS already reports it installed.

    Args:
        package_id: Exact package name for the detected manager.
        display_name: Name used in messages (defaults to the id).
        manager: The detected package manager; None fails the unit.
        force: Reinstall even when already installed.
        cache: Persisted records from earlier runs. A recent ``present``
            record stands in for the live query when ``cache_ttl`` > 0.
        cache_ttl: Maximum record age in seconds.
    """
    label = display_name or package_id

    if manager is None:
        return Outcome.failure(
            package_id, "package",
            error=f"No supported package manager found to install {label}",
            hint="Install the package manually or re-run with --minimal",
        )

    if not force:
        if cache is not None and cache.recently_installed("package", package_id, cache_ttl):
            logger.debug("%s installed per state cache", label)
            return Outcome.skipped(package_id, "package", "already installed (cached)")
        if manager.is_installed(package_id):
            return Outcome.skipped(package_id, "package", "already installed")

    result = manager.install(package_id)
    if result.timed_out:
        logger.warning("Installing %s timed out", label)
        return Outcome.timed_out(
            package_id, "package", result.timeout or 0,
            duration_ms=result.duration_ms,
            metadata={"manager": manager.name},
        )
    if not result.ok:
        logger.warning("Installing %s failed: %s", label, result.message)
        return Outcome.failure(
            package_id, "package",
            error=result.message,
            hint=f"Try '{' '.join(result.argv)}' manually to see the full error",
            duration_ms=result.duration_ms,
            metadata={"manager": manager.name},
        )

    return Outcome.installed(
        package_id, "package",
        f"installed {label} with {manager.name}",
        duration_ms=result.duration_ms,
        metadata={"manager": manager.name},
    )
