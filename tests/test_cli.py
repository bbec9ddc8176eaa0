"""
Tests for CLI commands — install exit codes, health, restore and global options.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from dotstrap.adapters.mock import MockRunner
from dotstrap.core.decisions import StaticDecisions
from dotstrap.core.models.outcome import Outcome
from dotstrap.core.models.system import SystemInfo
from dotstrap.core.persistence.audit import AUDIT_FILE, AuditWriter, RunAuditEntry
from dotstrap.core.use_cases import install as install_module
from dotstrap.core.use_cases.install import RunReport
from dotstrap.main import cli
from dotstrap.ui.cli.prompts import ClickDecisions


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch):
    for name in ("DOTSTRAP_CONFIG", "DOTSTRAP_HOME", "DOTSTRAP_DOTFILES", "DOTSTRAP_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def _invoke(home: Path, dotfiles: Path, *args: str):
    return CliRunner().invoke(cli, ["-q", "--home", str(home), "--dotfiles", str(dotfiles), *args])


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "bootstrap a machine" in result.output
        for command in ("install", "health", "unstow", "history", "restore", "profiles"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestInstallExitCodes:
    """The orchestrator is replaced; only the CLI mapping is under test."""

    def _patch(self, monkeypatch, report: RunReport) -> dict:
        seen: dict = {}

        def fake_run_install(settings, **kwargs):
            seen["settings"] = settings
            seen.update(kwargs)
            return report

        monkeypatch.setattr(install_module, "run_install", fake_run_install)
        return seen

    @pytest.mark.parametrize("report,code", [
        (RunReport(), 0),
        (RunReport(outcomes=[Outcome.failure("zsh", "package", "apt broke")]), 1),
        (RunReport(error="Preflight failed: disk", hint="re-run with --force"), 2),
    ])
    def test_exit_code(self, monkeypatch, home, dotfiles, report, code):
        self._patch(monkeypatch, report)
        result = _invoke(home, dotfiles, "install", "--yes")
        assert result.exit_code == code

    def test_aborted_prints_hint(self, monkeypatch, home, dotfiles):
        self._patch(monkeypatch, RunReport(error="Unsupported operating system: SunOS", hint="Try Linux"))
        result = _invoke(home, dotfiles, "install", "--yes")
        assert "Aborted: Unsupported operating system" in result.output
        assert "Try Linux" in result.output

    def test_flags_passed_through(self, monkeypatch, home, dotfiles):
        seen = self._patch(monkeypatch, RunReport())
        _invoke(
            home, dotfiles,
            "install", "--force", "--minimal", "--profile", "server", "--no-restore-point", "--yes",
        )
        assert seen["force"] is True
        assert seen["minimal"] is True
        assert seen["profile_name"] == "server"
        assert seen["create_restore_point"] is False
        assert seen["settings"].home_path == home

    def test_yes_never_overrides_preflight(self, monkeypatch, home, dotfiles):
        seen = self._patch(monkeypatch, RunReport())
        _invoke(home, dotfiles, "install", "--yes")
        decisions = seen["decisions"]
        assert isinstance(decisions, StaticDecisions)
        assert decisions.confirm("profile", "?") is True
        assert decisions.confirm("preflight_override", "?") is False

    def test_interactive_by_default(self, monkeypatch, home, dotfiles):
        seen = self._patch(monkeypatch, RunReport())
        _invoke(home, dotfiles, "install")
        assert isinstance(seen["decisions"], ClickDecisions)

    def test_json_output(self, monkeypatch, home, dotfiles):
        self._patch(monkeypatch, RunReport(run_id="run-x"))
        result = _invoke(home, dotfiles, "install", "--yes", "--json")
        data = json.loads(result.output)
        assert data["run_id"] == "run-x"
        assert data["exit_code"] == 0
        assert data["log_file"].endswith(".log")

    def test_run_log_written(self, monkeypatch, home, dotfiles):
        self._patch(monkeypatch, RunReport())
        _invoke(home, dotfiles, "install", "--yes")
        logs = list((home / ".local" / "state" / "dotstrap" / "logs").glob("install_*.log"))
        assert len(logs) == 1

    def test_invalid_config_aborts(self, monkeypatch, tmp_path):
        self._patch(monkeypatch, RunReport())
        config = tmp_path / "dotstrap.yml"
        config.write_text("retention: many\n")
        result = CliRunner().invoke(cli, ["--config", str(config), "install", "--yes"])
        assert result.exit_code == 2
        assert "Invalid settings" in result.output


class TestInstallEndToEnd:
    def test_minimal_install_then_health(self, monkeypatch, home, dotfiles, linux_system: SystemInfo):
        real_run_install = install_module.run_install

        def contained(settings, **kwargs):
            return real_run_install(
                settings,
                runner=MockRunner(binaries=["apt-get"]),
                detector=lambda runner: linux_system,
                network_probe=lambda url, timeout: True,
                disk_usage=lambda path: 50_000,
                meminfo=home / "no-meminfo",
                **kwargs,
            )

        monkeypatch.setattr(install_module, "run_install", contained)

        result = _invoke(home, dotfiles, "install", "--minimal", "--yes")
        assert result.exit_code == 0, result.output
        assert (home / ".zshrc").is_symlink()
        assert "Restore point" in result.output

        health = _invoke(home, dotfiles, "health", "--json")
        data = json.loads(health.output)
        statuses = {c["name"]: c["status"] for c in data["components"]}
        assert statuses["links"] == "healthy"
        assert statuses["last_run"] == "healthy"

        unstow = _invoke(home, dotfiles, "unstow", "--json")
        assert unstow.exit_code == 0
        assert not (home / ".zshrc").exists()


class TestHealthCommand:
    def test_fresh_home_is_unhealthy(self, home, dotfiles):
        result = _invoke(home, dotfiles, "health")
        assert result.exit_code == 1
        assert "links" in result.output
        assert ".zshrc: missing" in result.output


class TestProfilesCommand:
    def test_lists_builtins(self, home, dotfiles):
        result = _invoke(home, dotfiles, "profiles")
        assert result.exit_code == 0
        assert "rtx4090-workstation" in result.output
        assert "server" in result.output

    def test_json(self, home, dotfiles):
        result = _invoke(home, dotfiles, "profiles", "--json")
        data = json.loads(result.output)
        assert data["macos-laptop"]["machine_type"] == "laptop"


class TestHistoryCommand:
    def _ledger(self, home: Path) -> AuditWriter:
        writer = AuditWriter(home / ".local" / "state" / "dotstrap" / AUDIT_FILE)
        writer.write(RunAuditEntry(run_id="r1", status="ok", profile="server", installed=12))
        writer.write(RunAuditEntry(
            run_id="r2", status="aborted", errors=["Unsupported OS: windows"],
        ))
        writer.write(RunAuditEntry(run_id="r3", command="unstow", status="ok", installed=4))
        return writer

    def test_lists_runs(self, home, dotfiles):
        self._ledger(home)
        result = _invoke(home, dotfiles, "history")
        assert result.exit_code == 0, result.output
        assert "Runs (3 of 3)" in result.output
        assert "12 installed" in result.output
        assert "profile: server" in result.output
        assert "Unsupported OS: windows" in result.output

    def test_limit_and_errors(self, home, dotfiles):
        self._ledger(home)
        result = _invoke(home, dotfiles, "history", "-n", "1", "--errors", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["total"] == 3
        assert [e["run_id"] for e in data["entries"]] == ["r2"]

    def test_newest_last(self, home, dotfiles):
        self._ledger(home)
        data = json.loads(_invoke(home, dotfiles, "history", "-n", "2", "--json").output)
        assert [e["run_id"] for e in data["entries"]] == ["r2", "r3"]

    def test_empty_ledger(self, home, dotfiles):
        result = _invoke(home, dotfiles, "history")
        assert result.exit_code == 0
        assert "No runs recorded" in result.output

    def test_install_is_recorded(self, monkeypatch, home, dotfiles, linux_system: SystemInfo):
        real_run_install = install_module.run_install

        def contained(settings, **kwargs):
            return real_run_install(
                settings,
                runner=MockRunner(binaries=["apt-get"]),
                detector=lambda runner: linux_system,
                network_probe=lambda url, timeout: True,
                disk_usage=lambda path: 50_000,
                meminfo=home / "no-meminfo",
                **kwargs,
            )

        monkeypatch.setattr(install_module, "run_install", contained)
        assert _invoke(home, dotfiles, "install", "--minimal", "--yes").exit_code == 0

        data = json.loads(_invoke(home, dotfiles, "history", "--json").output)
        assert data["total"] == 1
        assert data["entries"][0]["command"] == "install"
        assert data["entries"][0]["status"] == "ok"


class TestRestoreCommands:
    def test_create_list_apply_cleanup(self, home, dotfiles):
        (home / ".gitconfig").write_text("original")

        created = _invoke(home, dotfiles, "restore", "create", "before-edit", "--json")
        assert created.exit_code == 0
        point_id = json.loads(created.output)["id"]

        listed = json.loads(_invoke(home, dotfiles, "restore", "list", "--json").output)
        assert [p["id"] for p in listed] == [point_id]
        assert listed[0]["name"] == "before-edit"

        (home / ".gitconfig").write_text("edited")
        applied = _invoke(home, dotfiles, "restore", "apply", "before-edit", "--yes")
        assert applied.exit_code == 0
        assert "Restored" in applied.output
        assert (home / ".gitconfig").read_text() == "original"

        cleaned = _invoke(home, dotfiles, "restore", "cleanup", "0")
        assert "Removed 1 restore points" in cleaned.output
        assert "No restore points." in _invoke(home, dotfiles, "restore", "list").output

    def test_apply_cancelled(self, home, dotfiles):
        (home / ".gitconfig").write_text("original")
        _invoke(home, dotfiles, "restore", "create")
        (home / ".gitconfig").write_text("edited")

        result = CliRunner().invoke(
            cli,
            ["--home", str(home), "--dotfiles", str(dotfiles), "restore", "apply", "manual"],
            input="n\n",
        )
        assert "Restore cancelled." in result.output
        assert (home / ".gitconfig").read_text() == "edited"

    def test_apply_unknown_point(self, home, dotfiles):
        result = _invoke(home, dotfiles, "restore", "apply", "nope", "--yes")
        assert result.exit_code == 1

    def test_cleanup_nothing(self, home, dotfiles):
        result = _invoke(home, dotfiles, "restore", "cleanup")
        assert "Nothing to clean up." in result.output
