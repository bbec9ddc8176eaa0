"""
Package manager service — query and install OS packages.

Wraps one entry of the package manager catalog around a
``CommandRunner``. The query is the authoritative installed-state
check used by the install-package primitive.
"""

from __future__ import annotations

import logging

from dotstrap.adapters.base import CommandResult, CommandRunner
from dotstrap.core.data.package_managers import PACKAGE_MANAGERS

logger = logging.getLogger(__name__)


def _fill(template: list[str], pkg: str) -> list[str]:
    return [part.replace("{pkg}", pkg) for part in template]


def detect_package_manager(runner: CommandRunner, os_family: str | None = None) -> str | None:
    """Name of the first catalogued package manager found on PATH.

    Args:
        runner: Used for PATH lookups.
        os_family: When given, only managers for that family are tried.
    """
    for name, spec in PACKAGE_MANAGERS.items():
        if os_family and spec["os_family"] != os_family:
            continue
        if runner.available(spec["binary"]):
            return name
    return None


class PackageManager:
    """One package manager bound to a runner."""

    def __init__(self, name: str, runner: CommandRunner, timeout: float = 600):
        if name not in PACKAGE_MANAGERS:
            raise ValueError(f"Unknown package manager: {name}")
        self.name = name
        self._spec = PACKAGE_MANAGERS[name]
        self._runner = runner
        self._timeout = timeout
        self._refreshed = False

    @property
    def needs_sudo(self) -> bool:
        return bool(self._spec["sudo"])

    def is_installed(self, pkg: str) -> bool:
        """Live installed-state query. False if the query itself fails."""
        result = self._runner.run(_fill(self._spec["query"], pkg), timeout=30)
        if not result.ok:
            return False
        match = self._spec["query_match"]
        if match is None:
            return True
        return match in result.stdout

    def install(self, pkg: str) -> CommandResult:
        """Install one package, refreshing the index before the first install."""
        if not self._refreshed and self._spec["refresh"]:
            refreshed = self._runner.run(
                self._spec["refresh"], timeout=self._timeout, sudo=self.needs_sudo,
            )
            if not refreshed.ok:
                logger.warning("Package index refresh failed: %s", refreshed.message)
            self._refreshed = True

        logger.info("Installing %s with %s", pkg, self.name)
        return self._runner.run(
            _fill(self._spec["install"], pkg),
            timeout=self._timeout,
            sudo=self.needs_sudo,
        )

    def list_installed(self) -> str | None:
        """Raw package listing for restore point records."""
        result = self._runner.run(self._spec["list"], timeout=60)
        return result.stdout if result.ok else None

    def __repr__(self) -> str:
        return f"<PackageManager name={self.name!r}>"
