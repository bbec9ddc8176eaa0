"""
Tests for core models — Outcome, Settings, InstallState, Profile, RunContext.
"""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from dotstrap.adapters.mock import MockRunner
from dotstrap.core.context import RunContext
from dotstrap.core.decisions import StaticDecisions
from dotstrap.core.models.outcome import Outcome
from dotstrap.core.models.profile import Profile, ProfileSignature, default_profile
from dotstrap.core.models.restore import RestorePoint
from dotstrap.core.models.settings import LinkSpec, Settings
from dotstrap.core.models.state import InstallationRecord, InstallState


class TestOutcome:
    def test_installed(self):
        o = Outcome.installed("git", "package", "installed git")
        assert o.ok
        assert not o.is_failure
        assert o.label == "package:git"

    def test_skipped_is_ok(self):
        o = Outcome.skipped("/home/u/.config", "directory", "already exists")
        assert o.ok
        assert o.status == "skipped"

    def test_failure_carries_hint(self):
        o = Outcome.failure("curl", "package", error="E: not found", hint="check the name")
        assert not o.ok
        assert o.is_failure
        assert o.error == "E: not found"
        assert o.hint == "check the name"

    def test_timeout_is_failure_but_distinct(self):
        o = Outcome.timed_out("https://x/y.zip", "download", 60)
        assert o.status == "timeout"
        assert o.is_failure
        assert "60s" in o.error
        assert o.hint

    def test_serializes(self):
        o = Outcome.installed("x", "symlink", metadata={"strategy": "adopt"})
        data = o.model_dump(mode="json")
        assert data["status"] == "installed"
        assert data["metadata"]["strategy"] == "adopt"


class TestSettings:
    def test_defaults(self):
        s = Settings(home="/home/u")
        assert s.dotfiles_path == Path("/home/u/dotfiles")
        assert s.state_path == Path("/home/u/.local/state/dotstrap")
        assert s.restore_points_path == Path("/home/u/.local/state/dotstrap/restore-points")
        assert s.logs_path == Path("/home/u/.local/state/dotstrap/logs")
        assert len(s.links) == 4
        assert all(link.critical for link in s.links)
        assert s.retention == 5
        assert s.state_cache_ttl == 600

    def test_resolve(self):
        s = Settings(home="/home/u")
        assert s.resolve("~") == Path("/home/u")
        assert s.resolve("~/.oh-my-zsh") == Path("/home/u/.oh-my-zsh")
        assert s.resolve(".config/nvim") == Path("/home/u/.config/nvim")
        assert s.resolve("/etc/hosts") == Path("/etc/hosts")

    def test_link_paths(self):
        s = Settings(home="/home/u", dotfiles_dir="/src/dots")
        spec = LinkSpec(source="git/.gitconfig", target=".gitconfig")
        assert s.link_source(spec) == Path("/src/dots/git/.gitconfig")
        assert s.link_target(spec) == Path("/home/u/.gitconfig")

    def test_tracked_targets_links_first_no_duplicates(self):
        s = Settings(
            home="/home/u",
            links=[LinkSpec(source="a", target=".a")],
            tracked_paths=[".b", ".a"],
        )
        assert s.tracked_targets() == [Path("/home/u/.a"), Path("/home/u/.b")]

    def test_font_download_gated_by_flag(self):
        s = Settings(home="/home/u")
        assert s.downloads[0].when == "enable_fonts"
        assert s.downloads[0].extract_to


class TestInstallState:
    def test_record_and_get(self):
        state = InstallState()
        state.record(Outcome.installed("git", "package"))
        rec = state.get("package", "git")
        assert rec is not None
        assert rec.observed_state == "present"
        assert rec.last_action == "installed"

    def test_failure_record_is_absent(self):
        rec = InstallationRecord.from_outcome(Outcome.failure("x", "package", error="boom"))
        assert rec.observed_state == "absent"
        assert rec.last_action == "failed"

    def test_timeout_record(self):
        rec = InstallationRecord.from_outcome(Outcome.timed_out("x", "package", 5))
        assert rec.observed_state == "timeout"

    def test_symlink_desired_state(self):
        rec = InstallationRecord.from_outcome(Outcome.installed("/h/.zshrc", "symlink"))
        assert rec.desired_state == "linked"

    def test_recently_installed_respects_ttl(self):
        state = InstallState()
        state.record(Outcome.installed("git", "package"))
        assert state.recently_installed("package", "git", ttl=600)
        assert not state.recently_installed("package", "git", ttl=0)
        assert not state.recently_installed("package", "curl", ttl=600)

    def test_stale_record_not_trusted(self):
        state = InstallState()
        old = (datetime.now(UTC) - timedelta(hours=2)).isoformat()
        state.record(Outcome.installed("git", "package", timestamp=old))
        assert not state.recently_installed("package", "git", ttl=600)

    def test_failed_record_not_trusted(self):
        state = InstallState()
        state.record(Outcome.failure("git", "package", error="x"))
        assert not state.recently_installed("package", "git", ttl=600)


class TestProfile:
    def test_default_profile_is_empty(self):
        p = default_profile()
        assert p.name == "default"
        assert p.packages == []
        assert p.pre_hook.empty and p.post_hook.empty

    def test_empty_signature_never_matches(self):
        assert not ProfileSignature().matches("linux", {"anything": True})

    def test_signature_os_and_flags(self):
        sig = ProfileSignature(os_family=["linux"], requires_flags=["has_rtx4090"])
        assert sig.matches("linux", {"has_rtx4090": True})
        assert not sig.matches("linux", {"has_rtx4090": False})
        assert not sig.matches("macos", {"has_rtx4090": True})


class TestRunContext:
    def test_profile_flags_override_detector(self, linux_system):
        profile = Profile(name="p", capability_flags={"enable_fonts": False, "enable_docker": True})
        ctx = RunContext.build(
            Settings(home="/home/u"), linux_system, profile, MockRunner(), StaticDecisions(),
        )
        assert ctx.flag("enable_fonts") is False
        assert ctx.flag("enable_docker") is True
        assert ctx.flag("enable_shell_framework") is True
        assert ctx.flag("missing") is False

    def test_flags_are_read_only(self, linux_system):
        ctx = RunContext.build(
            Settings(home="/home/u"), linux_system, default_profile(), MockRunner(), StaticDecisions(),
        )
        with pytest.raises(TypeError):
            ctx.flags["enable_fonts"] = False  # type: ignore[index]

    def test_packages_merged_without_duplicates(self, linux_system):
        profile = Profile(name="p", packages=["htop", "git"])
        ctx = RunContext.build(
            Settings(home="/home/u", packages=["git", "curl"]),
            linux_system, profile, MockRunner(), StaticDecisions(),
        )
        assert ctx.packages == ["git", "curl", "htop"]


class TestRestorePointModel:
    def test_tracked_and_covers(self):
        point = RestorePoint(
            id="p1",
            captured_files={"/h/.zshrc": ".zshrc"},
            absent_paths=["/h/.vimrc"],
        )
        assert point.tracked == ["/h/.zshrc", "/h/.vimrc"]
        assert point.covers("/h/.vimrc")
        assert not point.covers("/h/.bashrc")
        assert point.to_dict()["files"] == 1
