"""
Tests for the idempotency primitives.

Every primitive is called twice where it makes sense: the second call
must report ``skipped`` and cause no side effects.
"""

import io
import os
import socket
import zipfile
from datetime import datetime
from pathlib import Path

from dotstrap.adapters.base import CommandResult
from dotstrap.adapters.mock import MockRunner
from dotstrap.adapters.vcs.git import GitClient
from dotstrap.core.models.outcome import Outcome
from dotstrap.core.models.state import InstallState
from dotstrap.core.services.packages import PackageManager
from dotstrap.core.services.primitives import (
    clone_or_update,
    download_file,
    ensure_directory,
    ensure_symlink,
    extract_archive,
    install_package,
)
from dotstrap.core.services.primitives.filesystem import backup_path, find_backups, points_to

# ── ensure-directory ─────────────────────────────────────────────────


class TestEnsureDirectory:
    def test_creates_then_skips(self, tmp_path: Path):
        path = tmp_path / "a" / "b" / "c"
        first = ensure_directory(path)
        assert first.status == "installed"
        assert path.is_dir()

        second = ensure_directory(path)
        assert second.status == "skipped"

    def test_file_in_the_way_fails(self, tmp_path: Path):
        path = tmp_path / "blocker"
        path.write_text("x")
        outcome = ensure_directory(path)
        assert outcome.status == "failed"
        assert outcome.hint
        assert path.read_text() == "x"


# ── ensure-symlink ───────────────────────────────────────────────────


class TestEnsureSymlink:
    def _source(self, tmp_path: Path) -> Path:
        source = tmp_path / "dotfiles" / "zshrc"
        source.parent.mkdir()
        source.write_text("desired")
        return source

    def test_creates_link_and_parents(self, tmp_path: Path):
        source = self._source(tmp_path)
        target = tmp_path / "home" / ".config" / "zshrc"
        outcome = ensure_symlink(source, target)
        assert outcome.status == "installed"
        assert points_to(target, source)

    def test_second_call_skips(self, tmp_path: Path):
        source = self._source(tmp_path)
        target = tmp_path / ".zshrc"
        ensure_symlink(source, target)
        mtime = os.lstat(target).st_mtime_ns

        outcome = ensure_symlink(source, target)
        assert outcome.status == "skipped"
        assert os.lstat(target).st_mtime_ns == mtime

    def test_missing_source_fails(self, tmp_path: Path):
        outcome = ensure_symlink(tmp_path / "nope", tmp_path / ".zshrc")
        assert outcome.status == "failed"
        assert not (tmp_path / ".zshrc").is_symlink()

    def test_existing_file_needs_force(self, tmp_path: Path):
        source = self._source(tmp_path)
        target = tmp_path / ".zshrc"
        target.write_text("mine")

        outcome = ensure_symlink(source, target)
        assert outcome.status == "failed"
        assert "--force" in outcome.hint
        assert target.read_text() == "mine"
        assert not target.is_symlink()

    def test_force_moves_file_aside(self, tmp_path: Path):
        source = self._source(tmp_path)
        target = tmp_path / ".zshrc"
        target.write_text("mine")

        now = datetime(2026, 1, 2, 3, 4, 5)
        outcome = ensure_symlink(source, target, force=True, now=now)
        assert outcome.status == "installed"
        assert points_to(target, source)

        backup = tmp_path / ".zshrc.bak.20260102_030405"
        assert backup.read_text() == "mine"
        assert outcome.metadata["backup"] == str(backup)

    def test_wrong_link_needs_force(self, tmp_path: Path):
        source = self._source(tmp_path)
        other = tmp_path / "other"
        other.write_text("other")
        target = tmp_path / ".zshrc"
        target.symlink_to(other)

        assert ensure_symlink(source, target).status == "failed"
        assert points_to(target, other)

        assert ensure_symlink(source, target, force=True).status == "installed"
        assert points_to(target, source)

    def test_unwritable_parent_fails_cleanly(self, tmp_path: Path):
        source = self._source(tmp_path)
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")

        outcome = ensure_symlink(source, blocker / ".zshrc")
        assert outcome.status == "failed"
        assert blocker.read_text() == "a file, not a directory"


class TestBackupPath:
    def test_collision_gets_counter(self, tmp_path: Path):
        target = tmp_path / ".gitconfig"
        now = datetime(2026, 1, 2, 3, 4, 5)
        first = backup_path(target, now)
        first.write_text("1")
        second = backup_path(target, now)
        assert second != first
        assert second.name.startswith(".gitconfig.bak.20260102_030405")

    def test_find_backups_newest_first(self, tmp_path: Path):
        target = tmp_path / ".gitconfig"
        (tmp_path / ".gitconfig.bak.20250101_000000").write_text("old")
        (tmp_path / ".gitconfig.bak.20260101_000000").write_text("new")
        (tmp_path / ".gitconfig.orig").write_text("unrelated")
        found = find_backups(target)
        assert [p.name for p in found] == [
            ".gitconfig.bak.20260101_000000",
            ".gitconfig.bak.20250101_000000",
        ]


# ── install-package ──────────────────────────────────────────────────


def _apt_runner() -> tuple[MockRunner, set[str]]:
    """A runner whose dpkg-query reflects what apt-get install did."""
    installed: set[str] = set()
    runner = MockRunner(binaries=["apt-get", "dpkg-query"])

    def query(argv: list[str]) -> CommandResult:
        if argv[-1] in installed:
            return CommandResult(stdout="install ok installed")
        return CommandResult(returncode=1, stderr=f"no packages found matching {argv[-1]}")

    def install(argv: list[str]) -> CommandResult:
        installed.add(argv[-1])
        return CommandResult(stdout="Setting up ...")

    runner.set_response(["dpkg-query"], query)
    runner.set_response(["apt-get", "install"], install)
    return runner, installed


class TestInstallPackage:
    def test_install_then_skip(self):
        runner, installed = _apt_runner()
        manager = PackageManager("apt", runner)

        first = install_package("ripgrep", manager=manager)
        assert first.status == "installed"
        assert "ripgrep" in installed

        second = install_package("ripgrep", manager=manager)
        assert second.status == "skipped"
        assert len(runner.calls_starting_with("apt-get", "install")) == 1

    def test_index_refreshed_once(self):
        runner, _ = _apt_runner()
        manager = PackageManager("apt", runner)
        install_package("git", manager=manager)
        install_package("curl", manager=manager)
        assert len(runner.calls_starting_with("apt-get", "update")) == 1

    def test_force_reinstalls(self):
        runner, installed = _apt_runner()
        installed.add("git")
        manager = PackageManager("apt", runner)
        outcome = install_package("git", manager=manager, force=True)
        assert outcome.status == "installed"
        assert len(runner.calls_starting_with("apt-get", "install")) == 1

    def test_no_manager_fails_with_hint(self):
        outcome = install_package("git", manager=None)
        assert outcome.status == "failed"
        assert "--minimal" in outcome.hint

    def test_install_failure(self):
        runner, _ = _apt_runner()
        runner.set_failure(["apt-get", "install"], stderr="E: Unable to locate package nope")
        outcome = install_package("nope", manager=PackageManager("apt", runner))
        assert outcome.status == "failed"
        assert "Unable to locate" in outcome.error

    def test_install_timeout(self):
        runner, _ = _apt_runner()
        runner.set_timeout(["apt-get", "install"], seconds=600)
        outcome = install_package("texlive-full", manager=PackageManager("apt", runner))
        assert outcome.status == "timeout"
        assert outcome.is_failure

    def test_recent_cache_record_skips_query(self):
        runner, _ = _apt_runner()
        state = InstallState()
        state.record(Outcome.installed("git", "package"))

        outcome = install_package(
            "git", manager=PackageManager("apt", runner), cache=state, cache_ttl=600,
        )
        assert outcome.status == "skipped"
        assert runner.calls_starting_with("dpkg-query") == []

    def test_cache_disabled_queries_live(self):
        runner, _ = _apt_runner()
        state = InstallState()
        state.record(Outcome.installed("git", "package"))

        outcome = install_package(
            "git", manager=PackageManager("apt", runner), cache=state, cache_ttl=0,
        )
        assert outcome.status == "installed"
        assert len(runner.calls_starting_with("dpkg-query")) == 1


# ── download-file ────────────────────────────────────────────────────


class _Opener:
    def __init__(self, payload: bytes = b"font-data", error: BaseException | None = None):
        self.payload = payload
        self.error = error
        self.calls = 0

    def __call__(self, url: str, timeout: float):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return io.BytesIO(self.payload)


class _BrokenStream(io.BytesIO):
    def read(self, *args):
        raise ConnectionResetError("connection reset by peer")


class TestDownloadFile:
    URL = "https://example.invalid/FiraCode.zip"

    def test_download_then_skip(self, tmp_path: Path):
        dest = tmp_path / "cache" / "FiraCode.zip"
        opener = _Opener()

        first = download_file(self.URL, dest, opener=opener)
        assert first.status == "installed"
        assert dest.read_bytes() == b"font-data"

        second = download_file(self.URL, dest, opener=opener)
        assert second.status == "skipped"
        assert opener.calls == 1

    def test_force_downloads_again(self, tmp_path: Path):
        dest = tmp_path / "f.zip"
        dest.write_bytes(b"old")
        outcome = download_file(self.URL, dest, force=True, opener=_Opener(b"new"))
        assert outcome.status == "installed"
        assert dest.read_bytes() == b"new"

    def test_checksum_mismatch_leaves_nothing(self, tmp_path: Path):
        dest = tmp_path / "f.zip"
        outcome = download_file(self.URL, dest, sha256="0" * 64, opener=_Opener())
        assert outcome.status == "failed"
        assert not dest.exists()
        assert not (tmp_path / "f.zip.part").exists()

    def test_timeout(self, tmp_path: Path):
        dest = tmp_path / "f.zip"
        outcome = download_file(
            self.URL, dest, timeout=5, opener=_Opener(error=socket.timeout("timed out")),
        )
        assert outcome.status == "timeout"
        assert not dest.exists()

    def test_interrupted_transfer_leaves_nothing(self, tmp_path: Path):
        dest = tmp_path / "f.zip"
        outcome = download_file(self.URL, dest, opener=lambda url, timeout: _BrokenStream())
        assert outcome.status == "failed"
        assert outcome.hint
        assert list(tmp_path.iterdir()) == []

    def test_failed_forced_download_keeps_existing_file(self, tmp_path: Path):
        dest = tmp_path / "f.zip"
        dest.write_bytes(b"good archive")
        outcome = download_file(
            self.URL, dest, force=True, opener=_Opener(error=OSError("network unreachable")),
        )
        assert outcome.status == "failed"
        assert dest.read_bytes() == b"good archive"
        assert not (tmp_path / "f.zip.part").exists()

    def test_forced_checksum_mismatch_keeps_existing_file(self, tmp_path: Path):
        dest = tmp_path / "f.zip"
        dest.write_bytes(b"good archive")
        outcome = download_file(self.URL, dest, force=True, sha256="0" * 64, opener=_Opener(b"tampered"))
        assert outcome.status == "failed"
        assert dest.read_bytes() == b"good archive"


class TestExtractArchive:
    def _zip(self, path: Path) -> Path:
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("FiraCodeNerdFont-Regular.ttf", b"ttf")
        return path

    def test_extract_then_skip(self, tmp_path: Path):
        archive = self._zip(tmp_path / "FiraCode.zip")
        dest = tmp_path / "fonts" / "FiraCode"

        assert extract_archive(archive, dest).status == "installed"
        assert (dest / "FiraCodeNerdFont-Regular.ttf").read_bytes() == b"ttf"
        assert extract_archive(archive, dest).status == "skipped"

    def test_corrupt_archive_leaves_nothing(self, tmp_path: Path):
        archive = tmp_path / "bad.zip"
        archive.write_bytes(b"not a zip")
        dest = tmp_path / "fonts" / "FiraCode"

        outcome = extract_archive(archive, dest)
        assert outcome.status == "failed"
        assert not dest.exists()
        assert list((tmp_path / "fonts").iterdir()) == []


# ── clone-or-update-repository ───────────────────────────────────────


class TestCloneOrUpdate:
    URL = "https://github.com/zsh-users/zsh-autosuggestions.git"

    def test_fresh_clone(self, tmp_path: Path):
        runner = MockRunner(binaries=["git"])
        dest = tmp_path / "plugins" / "zsh-autosuggestions"

        outcome = clone_or_update(self.URL, dest, git=GitClient(runner))
        assert outcome.status == "installed"
        clones = runner.calls_starting_with("git", "clone")
        assert len(clones) == 1
        assert clones[0][-2:] == [self.URL, str(dest)]

    def test_up_to_date_checkout_skips(self, tmp_path: Path):
        runner = MockRunner(binaries=["git"])
        dest = tmp_path / "repo"
        (dest / ".git").mkdir(parents=True)
        runner.set_output(["git", "-C", str(dest), "rev-parse", "HEAD"], "abc123\n")

        outcome = clone_or_update(self.URL, dest, git=GitClient(runner))
        assert outcome.status == "skipped"
        assert runner.calls_starting_with("git", "clone") == []
        assert runner.calls_starting_with("git", "-C", str(dest), "merge")

    def test_update_moves_head(self, tmp_path: Path):
        runner = MockRunner(binaries=["git"])
        dest = tmp_path / "repo"
        (dest / ".git").mkdir(parents=True)
        heads = iter(["aaa\n", "bbb\n"])
        runner.set_response(
            ["git", "-C", str(dest), "rev-parse", "HEAD"],
            lambda argv: CommandResult(stdout=next(heads)),
        )

        outcome = clone_or_update(self.URL, dest, git=GitClient(runner))
        assert outcome.status == "installed"
        assert outcome.detail == "updated"

    def test_failed_update_is_a_warning(self, tmp_path: Path):
        runner = MockRunner(binaries=["git"])
        dest = tmp_path / "repo"
        (dest / ".git").mkdir(parents=True)
        (dest / "local.zsh").write_text("local work")
        runner.set_failure(["git", "-C", str(dest), "merge"], stderr="fatal: Not possible to fast-forward")

        outcome = clone_or_update(self.URL, dest, git=GitClient(runner))
        assert outcome.status == "skipped"
        assert not outcome.is_failure
        assert "fast-forward" in outcome.warning
        assert (dest / "local.zsh").read_text() == "local work"

    def test_non_checkout_is_replaced(self, tmp_path: Path):
        runner = MockRunner(binaries=["git"])
        dest = tmp_path / "zsh-autosuggestions:https"
        dest.mkdir()
        (dest / "junk").write_text("x")

        outcome = clone_or_update(self.URL, dest, git=GitClient(runner))
        assert outcome.status == "installed"
        assert not (dest / "junk").exists()
        assert len(runner.calls_starting_with("git", "clone")) == 1

    def test_clone_timeout(self, tmp_path: Path):
        runner = MockRunner(binaries=["git"])
        runner.set_timeout(["git", "clone"], seconds=120)
        outcome = clone_or_update(self.URL, tmp_path / "repo", git=GitClient(runner))
        assert outcome.status == "timeout"

    def test_clone_failure_has_hint(self, tmp_path: Path):
        runner = MockRunner(binaries=["git"])
        runner.set_failure(["git", "clone"], stderr="fatal: repository not found", returncode=128)
        outcome = clone_or_update(self.URL, tmp_path / "repo", git=GitClient(runner))
        assert outcome.status == "failed"
        assert "repository not found" in outcome.error
        assert outcome.hint
