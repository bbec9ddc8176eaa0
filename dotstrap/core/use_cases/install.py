"""
Install use case — bootstrap this machine to the desired state.

This is the top-level orchestrator: detect the system, validate it,
pick a profile, take a restore point, then run every step in order
(hooks, directories, packages, repositories, downloads, links) and
verify the result. Steps never stop each other; only blocking
conditions found before the first mutation abort the run.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from pathlib import Path
from typing import Any

from dotstrap.adapters.base import CommandRunner
from dotstrap.adapters.shell.command import SubprocessRunner
from dotstrap.adapters.vcs.git import GitClient
from dotstrap.core.config.profile_loader import ProfileError, search_dirs_for, select_profile
from dotstrap.core.context import RunContext
from dotstrap.core.decisions import PREFLIGHT_OVERRIDE, DecisionProvider, StaticDecisions
from dotstrap.core.models.outcome import Outcome
from dotstrap.core.models.profile import Profile
from dotstrap.core.models.restore import RestorePoint
from dotstrap.core.models.settings import Settings
from dotstrap.core.models.state import InstallState, RunRecord
from dotstrap.core.models.system import SystemInfo
from dotstrap.core.persistence.audit import AUDIT_FILE, AuditWriter, RunAuditEntry
from dotstrap.core.persistence.state_file import load_state, save_state, state_path
from dotstrap.core.services.detection import UnsupportedSystemError, detect_system
from dotstrap.core.services.hooks import run_hook
from dotstrap.core.services.linker import Linker
from dotstrap.core.services.packages import PackageManager
from dotstrap.core.services.preflight import (
    MEMINFO,
    PreflightReport,
    free_disk_mb,
    probe_url,
    run_preflight,
)
from dotstrap.core.services.primitives import (
    clone_or_update,
    download_file,
    ensure_directory,
    extract_archive,
    install_package,
)
from dotstrap.core.services.restore_points import RestorePointError, RestorePointManager
from dotstrap.core.services.verification import LinkStatus, verify_links

logger = logging.getLogger(__name__)

Detector = Callable[[CommandRunner], SystemInfo]


class ExitCode(IntEnum):
    OK = 0
    COMPLETED_WITH_WARNINGS = 1
    ABORTED = 2
    VERIFICATION_FAILED = 3


def generate_run_id(now: datetime | None = None) -> str:
    """Generate a unique run ID."""
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%d-%H%M%S")
    return f"run-{stamp}-{uuid.uuid4().hex[:6]}"


@dataclass
class RunReport:
    """Result of one install run."""

    run_id: str = ""
    started_at: str = ""
    ended_at: str = ""
    error: str | None = None
    hint: str | None = None
    system: SystemInfo | None = None
    profile: Profile | None = None
    preflight: PreflightReport | None = None
    outcomes: list[Outcome] = field(default_factory=list)
    restore_point: str | None = None
    unverified: list[LinkStatus] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    log_file: Path | None = None
    duration_ms: int = 0

    @property
    def aborted(self) -> bool:
        return self.error is not None

    @property
    def installed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "installed")

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "skipped")

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")

    @property
    def timeouts(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "timeout")

    @property
    def failures(self) -> list[Outcome]:
        return [o for o in self.outcomes if o.is_failure]

    @property
    def warnings(self) -> list[Outcome]:
        """Non-failed units that still carry a warning (e.g. a stale clone)."""
        return [o for o in self.outcomes if o.warning and not o.is_failure]

    @property
    def status(self) -> str:
        if self.aborted:
            return "aborted"
        if self.unverified:
            return "verification_failed"
        if self.failures:
            return "warnings"
        return "ok"

    @property
    def exit_code(self) -> ExitCode:
        return {
            "aborted": ExitCode.ABORTED,
            "verification_failed": ExitCode.VERIFICATION_FAILED,
            "warnings": ExitCode.COMPLETED_WITH_WARNINGS,
        }.get(self.status, ExitCode.OK)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "run_id": self.run_id,
            "status": self.status,
            "exit_code": int(self.exit_code),
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_ms": self.duration_ms,
        }
        if self.error:
            result["error"] = self.error
            if self.hint:
                result["hint"] = self.hint
        if self.system:
            result["system"] = self.system.to_dict()
        if self.profile:
            result["profile"] = self.profile.name
        if self.preflight:
            result["preflight"] = self.preflight.to_dict()
        result["counts"] = {
            "installed": self.installed,
            "skipped": self.skipped,
            "failed": self.failed,
            "timeout": self.timeouts,
        }
        result["outcomes"] = [o.model_dump(mode="json") for o in self.outcomes]
        result["restore_point"] = self.restore_point
        result["unverified"] = [s.to_dict() for s in self.unverified]
        result["pruned"] = self.pruned
        if self.log_file:
            result["log_file"] = str(self.log_file)
        return result


# ── Steps ───────────────────────────────────────────────────────


def _ensure_directories(ctx: RunContext) -> list[Outcome]:
    return [ensure_directory(ctx.settings.resolve(d)) for d in ctx.settings.directories]


def _install_packages(ctx: RunContext, state: InstallState) -> list[Outcome]:
    packages = ctx.packages
    if not packages:
        return []

    manager = None
    if ctx.system.package_manager:
        manager = PackageManager(
            ctx.system.package_manager, ctx.runner, timeout=ctx.settings.timeouts.package,
        )
    logger.info("Installing %d packages via %s", len(packages), manager or "nothing")

    outcomes = []
    for pkg in packages:
        outcome = install_package(
            pkg,
            manager=manager,
            force=ctx.force,
            cache=state,
            cache_ttl=ctx.settings.state_cache_ttl,
        )
        if outcome.is_failure:
            logger.error("Package %s: %s", pkg, outcome.error)
        outcomes.append(outcome)
    return outcomes


def _sync_repositories(ctx: RunContext) -> list[Outcome]:
    git = GitClient(ctx.runner, timeout=ctx.settings.timeouts.git)
    outcomes = []
    for spec in ctx.settings.repositories:
        destination = ctx.settings.resolve(spec.destination)
        if spec.when and not ctx.flag(spec.when):
            outcomes.append(Outcome.skipped(
                str(destination), "repository", f"disabled ({spec.when} is off)",
            ))
            continue
        outcome = clone_or_update(spec.url, destination, git=git, force=ctx.force)
        if outcome.is_failure:
            logger.error("Repository %s: %s", spec.url, outcome.error)
        outcomes.append(outcome)
    return outcomes


def _fetch_downloads(ctx: RunContext, opener: Any = None) -> list[Outcome]:
    outcomes = []
    for spec in ctx.settings.downloads:
        destination = ctx.settings.resolve(spec.destination)
        if spec.when and not ctx.flag(spec.when):
            outcomes.append(Outcome.skipped(
                str(destination), "download", f"disabled ({spec.when} is off)",
            ))
            continue

        outcome = download_file(
            spec.url,
            destination,
            force=ctx.force,
            timeout=ctx.settings.timeouts.download,
            sha256=spec.sha256,
            opener=opener,
        )
        outcomes.append(outcome)
        if outcome.is_failure:
            logger.error("Download %s: %s", spec.url, outcome.error)
            continue
        if spec.extract_to:
            outcomes.append(extract_archive(
                destination,
                ctx.settings.resolve(spec.extract_to),
                force=ctx.force or outcome.status == "installed",
            ))
    return outcomes


# ── Bookkeeping ─────────────────────────────────────────────────


def _persist(
    settings: Settings,
    report: RunReport,
    state: InstallState,
    state_file: Path,
) -> None:
    """Write state and audit. Failures are logged; the run result stands."""
    for outcome in report.outcomes:
        if outcome.kind in ("package", "repository", "download", "symlink"):
            state.record(outcome)
    state.last_run = RunRecord(
        run_id=report.run_id,
        profile=report.profile.name if report.profile else "",
        started_at=report.started_at,
        ended_at=report.ended_at,
        status=report.status,
        installed=report.installed,
        skipped=report.skipped,
        failed=report.failed,
        timeouts=report.timeouts,
        restore_point=report.restore_point,
    )
    try:
        save_state(state, state_file)
    except OSError as e:
        logger.warning("Run state not saved: %s", e)

    AuditWriter(settings.state_path / AUDIT_FILE).write(RunAuditEntry(
        run_id=report.run_id,
        command="install",
        profile=report.profile.name if report.profile else "",
        hostname=report.system.hostname if report.system else "",
        flags=dict(report.system.flags) if report.system else {},
        status=report.status,
        installed=report.installed,
        skipped=report.skipped,
        failed=report.failed,
        timeouts=report.timeouts,
        duration_ms=report.duration_ms,
        restore_point=report.restore_point,
        errors=[report.error] if report.error else [f"{o.unit}: {o.error}" for o in report.failures],
    ))


def _finish(
    settings: Settings,
    report: RunReport,
    state: InstallState,
    state_file: Path,
    started: float,
) -> RunReport:
    report.ended_at = datetime.now(UTC).isoformat()
    report.duration_ms = int((time.monotonic() - started) * 1000)
    _persist(settings, report, state, state_file)
    logger.info(
        "Run %s finished: %s (%d installed, %d skipped, %d failed, %d timeout)",
        report.run_id, report.status,
        report.installed, report.skipped, report.failed, report.timeouts,
    )
    return report


# ── Entry point ─────────────────────────────────────────────────


def run_install(
    settings: Settings,
    *,
    profile_name: str | None = None,
    force: bool = False,
    minimal: bool = False,
    runner: CommandRunner | None = None,
    decisions: DecisionProvider | None = None,
    create_restore_point: bool | None = None,
    detector: Detector = detect_system,
    network_probe: Callable[[str, float], bool] = probe_url,
    disk_usage: Callable[[Path], int] = free_disk_mb,
    meminfo: Path = MEMINFO,
    opener: Any = None,
) -> RunReport:
    """Bring the machine to the desired state.

    Args:
        settings: Validated settings.
        profile_name: Profile to apply. None means auto-detect (with
            confirmation) and fall back to the default profile.
        force: Proceed past blocking preflight errors and reinstall or
            re-fetch everything.
        minimal: Skip packages, repositories and downloads.
        runner: Command runner (defaults to real subprocesses).
        decisions: Answers for confirmations (defaults to "no").
        create_restore_point: Override ``settings.auto_restore_point``.
        detector: ``(runner) -> SystemInfo``.
        network_probe, disk_usage, meminfo: Preflight probes.
        opener: Download opener, see ``download_file``.

    Returns:
        RunReport. Blocking problems are reported in ``error``; this
        function does not raise for them.
    """
    runner = runner or SubprocessRunner()
    decisions = decisions or StaticDecisions(False)
    if create_restore_point is None:
        create_restore_point = settings.auto_restore_point

    started = time.monotonic()
    report = RunReport(run_id=generate_run_id(), started_at=datetime.now(UTC).isoformat())
    state_file = state_path(settings)
    state = load_state(state_file)
    logger.info("Starting run %s (force=%s, minimal=%s)", report.run_id, force, minimal)

    # ── Detect ──────────────────────────────────────────────────
    try:
        report.system = detector(runner)
    except UnsupportedSystemError as e:
        report.error = str(e)
        report.hint = "Supported systems: Linux, macOS and Windows"
        logger.error("Aborting: %s", e)
        return _finish(settings, report, state, state_file, started)

    # ── Preflight ───────────────────────────────────────────────
    report.preflight = run_preflight(
        settings, report.system,
        minimal=minimal, probe=network_probe, disk_usage=disk_usage, meminfo=meminfo,
    )
    if report.preflight.blocking and not force:
        problems = "; ".join(c.message for c in report.preflight.errors)
        question = f"Preflight found blocking problems ({problems}). Continue anyway?"
        if not decisions.confirm(PREFLIGHT_OVERRIDE, question, default=False):
            report.error = f"Preflight failed: {problems}"
            report.hint = "Fix the problems above or re-run with --force"
            logger.error("Aborting: %s", report.error)
            return _finish(settings, report, state, state_file, started)
        logger.warning("Continuing despite blocking preflight errors")

    # ── Profile ─────────────────────────────────────────────────
    try:
        report.profile = select_profile(
            profile_name, report.system, decisions, search_dirs_for(settings.profiles_path),
        )
    except ProfileError as e:
        report.error = str(e)
        report.hint = "List the available profiles with: dotstrap profiles"
        logger.error("Aborting: %s", e)
        return _finish(settings, report, state, state_file, started)

    ctx = RunContext.build(
        settings, report.system, report.profile, runner, decisions,
        force=force, minimal=minimal,
    )
    manager = None
    if report.system.package_manager:
        manager = PackageManager(report.system.package_manager, runner)
    restore_points = RestorePointManager(
        settings.restore_points_path, settings.home_path, package_manager=manager,
    )

    # ── Restore point ───────────────────────────────────────────
    point: RestorePoint | None = None
    if create_restore_point:
        try:
            point = restore_points.create(
                "pre-install", settings.tracked_targets(), profile_name=report.profile.name,
            )
            report.restore_point = point.id
        except RestorePointError as e:
            report.error = str(e)
            report.hint = "Free up space in the state directory or run with --no-restore-point"
            logger.error("Aborting before any change: %s", e)
            return _finish(settings, report, state, state_file, started)

    # ── Mutating steps ──────────────────────────────────────────
    report.outcomes += run_hook("pre", report.profile.pre_hook, ctx)
    report.outcomes += _ensure_directories(ctx)

    if minimal:
        logger.info("Minimal run: skipping packages, repositories and downloads")
    else:
        report.outcomes += _install_packages(ctx, state)
        report.outcomes += _sync_repositories(ctx)
        report.outcomes += _fetch_downloads(ctx, opener)

    linker = Linker(settings, restore_points=restore_points, point=point)
    report.outcomes += linker.link_all().outcomes

    report.outcomes += run_hook("post", report.profile.post_hook, ctx)

    # ── Verify ──────────────────────────────────────────────────
    report.unverified = verify_links(settings)
    for status in report.unverified:
        logger.error("Critical link %s is %s", status.spec.target, status.state)

    if report.status == "ok" and point is not None:
        report.pruned = restore_points.prune(settings.retention)

    return _finish(settings, report, state, state_file, started)
