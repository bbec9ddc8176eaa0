"""
Preflight validation — check the machine before changing anything.

Every check yields ``pass``, ``warn`` or ``error``. Warnings are only
reported. Any error blocks the run unless the caller forces past it,
either with --force or an interactive override.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
import urllib.error
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from dotstrap import __version__
from dotstrap.core.models.settings import Settings
from dotstrap.core.models.system import SystemInfo
from dotstrap.core.persistence.state_file import state_path

logger = logging.getLogger(__name__)

CheckStatus = Literal["pass", "warn", "error"]
NetworkProbe = Callable[[str, float], bool]
DiskUsage = Callable[[Path], int]

MEMINFO = Path("/proc/meminfo")


@dataclass
class CheckResult:
    name: str
    status: CheckStatus
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "status": self.status, "message": self.message}


@dataclass
class PreflightReport:
    """All check results plus the aggregate verdict."""

    checks: list[CheckResult] = field(default_factory=list)

    @property
    def errors(self) -> list[CheckResult]:
        return [c for c in self.checks if c.status == "error"]

    @property
    def warnings(self) -> list[CheckResult]:
        return [c for c in self.checks if c.status == "warn"]

    @property
    def blocking(self) -> bool:
        return bool(self.errors)

    def can_proceed(self, force: bool = False) -> bool:
        return not self.blocking or force

    def to_dict(self) -> dict[str, Any]:
        return {
            "blocking": self.blocking,
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "checks": [c.to_dict() for c in self.checks],
        }


# ── Probes ──────────────────────────────────────────────────────


def probe_url(url: str, timeout: float = 5) -> bool:
    """HEAD request; any HTTP response at all counts as reachable."""
    req = urllib.request.Request(
        url, method="HEAD", headers={"User-Agent": f"dotstrap/{__version__}"},
    )
    start = time.monotonic()
    try:
        with urllib.request.urlopen(req, timeout=timeout):
            pass
    except urllib.error.HTTPError:
        return True
    except Exception as e:
        logger.debug("Endpoint %s unreachable: %s", url, str(e)[:200])
        return False
    logger.debug("Endpoint %s reachable in %dms", url, int((time.monotonic() - start) * 1000))
    return True


def free_disk_mb(path: Path) -> int:
    """Free space on the filesystem holding ``path`` (nearest existing parent)."""
    probe = path
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    return shutil.disk_usage(probe).free // (1024 * 1024)


def total_memory_mb(meminfo: Path = MEMINFO) -> int | None:
    """MemTotal from /proc/meminfo, or None where unavailable."""
    try:
        for line in meminfo.read_text(encoding="utf-8").splitlines():
            if line.startswith("MemTotal:"):
                return int(line.split()[1]) // 1024
    except (OSError, ValueError, IndexError):
        return None
    return None


# ── Checks ──────────────────────────────────────────────────────


def check_disk_space(settings: Settings, disk_usage: DiskUsage = free_disk_mb) -> CheckResult:
    try:
        free = disk_usage(settings.home_path)
    except OSError as e:
        return CheckResult("disk_space", "warn", f"Cannot determine free space: {e}")
    limits = settings.preflight
    if free < limits.min_disk_mb:
        return CheckResult(
            "disk_space", "error",
            f"Only {free} MB free; at least {limits.min_disk_mb} MB required",
        )
    if free < limits.recommended_disk_mb:
        return CheckResult(
            "disk_space", "warn",
            f"{free} MB free; {limits.recommended_disk_mb} MB recommended",
        )
    return CheckResult("disk_space", "pass", f"{free} MB free")


def check_network(settings: Settings, probe: NetworkProbe = probe_url) -> CheckResult:
    endpoints = settings.preflight.network_endpoints
    for url in endpoints:
        if probe(url, settings.preflight.network_timeout):
            return CheckResult("network", "pass", f"{url} reachable")
    return CheckResult(
        "network", "warn",
        f"None of {len(endpoints)} endpoints reachable; downloads and clones will fail",
    )


def check_home_writable(settings: Settings) -> CheckResult:
    home = settings.home_path
    if not home.is_dir():
        return CheckResult("home_writable", "error", f"Home directory {home} does not exist")
    try:
        with tempfile.NamedTemporaryFile(dir=home, prefix=".dotstrap-probe-"):
            pass
    except OSError as e:
        return CheckResult("home_writable", "error", f"Cannot write to {home}: {e.strerror or e}")
    return CheckResult("home_writable", "pass", f"{home} is writable")


def check_package_manager(system: SystemInfo, minimal: bool) -> CheckResult:
    if system.package_manager:
        return CheckResult("package_manager", "pass", system.package_manager)
    if minimal:
        return CheckResult("package_manager", "warn", "No supported package manager found")
    return CheckResult(
        "package_manager", "error",
        "No supported package manager found; use --minimal to only link dotfiles",
    )


def check_memory(settings: Settings, meminfo: Path = MEMINFO) -> CheckResult:
    total = total_memory_mb(meminfo)
    if total is None:
        return CheckResult("memory", "pass", "Memory size not available on this platform")
    if total < settings.preflight.min_memory_mb:
        return CheckResult(
            "memory", "warn",
            f"{total} MB RAM; {settings.preflight.min_memory_mb} MB recommended",
        )
    return CheckResult("memory", "pass", f"{total} MB RAM")


def check_dotfiles_dir(settings: Settings) -> CheckResult:
    path = settings.dotfiles_path
    if not path.is_dir():
        return CheckResult(
            "dotfiles_dir", "error",
            f"Dotfiles directory not found: {path} (clone the repository there first)",
        )
    return CheckResult("dotfiles_dir", "pass", str(path))


def check_existing_installation(settings: Settings) -> CheckResult:
    linked = [
        spec.target for spec in settings.links
        if settings.link_target(spec).is_symlink()
    ]
    if state_path(settings).is_file() or linked:
        detail = f"{len(linked)} links already present" if linked else "previous run recorded"
        return CheckResult(
            "existing_installation", "pass",
            f"Existing installation found ({detail}); updating in place",
        )
    return CheckResult("existing_installation", "pass", "Fresh installation")


def run_preflight(
    settings: Settings,
    system: SystemInfo,
    *,
    minimal: bool = False,
    probe: NetworkProbe = probe_url,
    disk_usage: DiskUsage = free_disk_mb,
    meminfo: Path = MEMINFO,
) -> PreflightReport:
    """Run the full checklist. Non-mutating apart from a temp probe file."""
    report = PreflightReport(checks=[
        check_disk_space(settings, disk_usage),
        check_network(settings, probe),
        check_home_writable(settings),
        check_package_manager(system, minimal),
        check_memory(settings, meminfo),
        check_dotfiles_dir(settings),
        check_existing_installation(settings),
    ])
    for check in report.checks:
        if check.status == "error":
            logger.error("Preflight %s: %s", check.name, check.message)
        elif check.status == "warn":
            logger.warning("Preflight %s: %s", check.name, check.message)
        else:
            logger.debug("Preflight %s: %s", check.name, check.message)
    return report
