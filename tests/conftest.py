"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from dotstrap.adapters.mock import MockRunner
from dotstrap.core.models.settings import Settings
from dotstrap.core.models.system import SystemInfo

DOTFILE_SOURCES = {
    "zsh/.zshrc": "# zshrc from dotfiles\n",
    "git/.gitconfig": "[user]\n    name = Dotfiles\n",
    "tmux/.tmux.conf": "set -g mouse on\n",
}


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """An empty home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def dotfiles(home: Path) -> Path:
    """A dotfiles checkout with the four default link sources."""
    root = home / "dotfiles"
    for relative, content in DOTFILE_SOURCES.items():
        source = root / relative
        source.parent.mkdir(parents=True, exist_ok=True)
        source.write_text(content)
    nvim = root / "nvim" / ".config" / "nvim"
    nvim.mkdir(parents=True)
    (nvim / "init.lua").write_text("vim.o.number = true\n")
    return root


@pytest.fixture
def settings(home: Path, dotfiles: Path) -> Settings:
    """Default settings rooted in the temporary home."""
    return Settings(home=str(home), dotfiles_dir=str(dotfiles))


@pytest.fixture
def bare_settings(settings: Settings) -> Settings:
    """Settings with nothing that touches the network or package manager."""
    return settings.model_copy(update={
        "packages": [],
        "repositories": [],
        "downloads": [],
    })


@pytest.fixture
def runner() -> MockRunner:
    return MockRunner(binaries=["git", "apt-get", "dpkg-query"])


@pytest.fixture
def linux_system() -> SystemInfo:
    """An untested Linux box: no profile signature matches it."""
    return SystemInfo(
        os_family="linux",
        distro_id="linuxfamilyx",
        distro_name="LinuxFamilyX",
        os_version="1.0",
        arch="x86_64",
        hostname="testbox",
        package_manager="apt",
        flags={
            "enable_full_setup": False,
            "enable_shell_framework": True,
            "enable_fonts": True,
        },
    )

