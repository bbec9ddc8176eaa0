"""
Settings model — the validated contents of dotstrap.yml.

Every field has a default so a machine with no settings file still
gets the standard dotfiles layout. Paths are stored as written and
resolved against ``home`` on access: ``~`` means ``home``, relative
paths are relative to ``home``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class LinkSpec(BaseModel):
    """One desired symlink: ``home/target`` -> ``dotfiles_dir/source``."""

    source: str                     # relative to dotfiles_dir
    target: str                     # relative to home
    critical: bool = False          # checked by final verification


class RepositorySpec(BaseModel):
    """A git repository kept cloned and fast-forwarded."""

    url: str
    destination: str
    when: str | None = None         # capability flag that must be true


class DownloadSpec(BaseModel):
    """A remote asset fetched once, optionally unpacked."""

    url: str
    destination: str
    extract_to: str | None = None   # zip archives only
    sha256: str | None = None
    when: str | None = None


class PreflightSettings(BaseModel):
    """Thresholds for the preflight checklist."""

    min_disk_mb: int = 1024
    recommended_disk_mb: int = 5120
    min_memory_mb: int = 2048
    network_endpoints: list[str] = Field(default_factory=lambda: [
        "https://github.com",
        "https://raw.githubusercontent.com",
        "https://pypi.org",
    ])
    network_timeout: int = 5


class TimeoutSettings(BaseModel):
    """Bounds, in seconds, for external calls."""

    package: int = 600
    git: int = 120
    download: int = 60
    command: int = 30


_OMZ_CUSTOM = "~/.oh-my-zsh/custom"
_FONT_VERSION = "v3.1.1"


def _default_links() -> list[LinkSpec]:
    return [
        LinkSpec(source="zsh/.zshrc", target=".zshrc", critical=True),
        LinkSpec(source="git/.gitconfig", target=".gitconfig", critical=True),
        LinkSpec(source="tmux/.tmux.conf", target=".tmux.conf", critical=True),
        LinkSpec(source="nvim/.config/nvim", target=".config/nvim", critical=True),
    ]


def _default_repositories() -> list[RepositorySpec]:
    return [
        RepositorySpec(
            url="https://github.com/ohmyzsh/ohmyzsh.git",
            destination="~/.oh-my-zsh",
            when="enable_shell_framework",
        ),
        RepositorySpec(
            url="https://github.com/romkatv/powerlevel10k.git",
            destination=f"{_OMZ_CUSTOM}/themes/powerlevel10k",
            when="enable_shell_framework",
        ),
        RepositorySpec(
            url="https://github.com/zsh-users/zsh-autosuggestions.git",
            destination=f"{_OMZ_CUSTOM}/plugins/zsh-autosuggestions",
            when="enable_shell_framework",
        ),
        RepositorySpec(
            url="https://github.com/zsh-users/zsh-syntax-highlighting.git",
            destination=f"{_OMZ_CUSTOM}/plugins/zsh-syntax-highlighting",
            when="enable_shell_framework",
        ),
        RepositorySpec(
            url="https://github.com/MichaelAquilina/zsh-you-should-use.git",
            destination=f"{_OMZ_CUSTOM}/plugins/you-should-use",
            when="enable_shell_framework",
        ),
        RepositorySpec(
            url="https://github.com/tmux-plugins/tpm.git",
            destination="~/.tmux/plugins/tpm",
        ),
    ]


def _default_downloads() -> list[DownloadSpec]:
    return [
        DownloadSpec(
            url=(
                "https://github.com/ryanoasis/nerd-fonts/releases/download/"
                f"{_FONT_VERSION}/FiraCode.zip"
            ),
            destination="~/.cache/dotstrap/FiraCode.zip",
            extract_to="~/.local/share/fonts/FiraCode",
            when="enable_fonts",
        ),
    ]


class Settings(BaseModel):
    """Root configuration for a dotstrap run."""

    home: str = Field(default_factory=lambda: str(Path.home()))
    dotfiles_dir: str = "~/dotfiles"
    state_dir: str = "~/.local/state/dotstrap"
    profiles_dir: str = "~/.config/dotstrap/profiles"

    links: list[LinkSpec] = Field(default_factory=_default_links)
    tracked_paths: list[str] = Field(default_factory=lambda: [
        ".bashrc",
        ".vimrc",
        ".p10k.zsh",
        ".gitignore_global",
        ".ssh/config",
    ])
    directories: list[str] = Field(default_factory=lambda: [
        ".config",
        ".local/bin",
        ".local/share/fonts",
    ])
    repositories: list[RepositorySpec] = Field(default_factory=_default_repositories)
    downloads: list[DownloadSpec] = Field(default_factory=_default_downloads)
    packages: list[str] = Field(default_factory=lambda: [
        "git", "curl", "wget", "zsh", "tmux", "neovim", "ripgrep", "fzf",
    ])

    retention: int = 5
    auto_restore_point: bool = True
    state_cache_ttl: int = 600

    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    preflight: PreflightSettings = Field(default_factory=PreflightSettings)

    # ── Path resolution ──────────────────────────────────────────

    @property
    def home_path(self) -> Path:
        return Path(self.home).expanduser()

    def resolve(self, value: str) -> Path:
        """Resolve a configured path against ``home``."""
        if value == "~":
            return self.home_path
        if value.startswith("~/"):
            return self.home_path / value[2:]
        path = Path(value)
        if path.is_absolute():
            return path
        return self.home_path / path

    @property
    def dotfiles_path(self) -> Path:
        return self.resolve(self.dotfiles_dir)

    @property
    def state_path(self) -> Path:
        return self.resolve(self.state_dir)

    @property
    def profiles_path(self) -> Path:
        return self.resolve(self.profiles_dir)

    @property
    def restore_points_path(self) -> Path:
        return self.state_path / "restore-points"

    @property
    def logs_path(self) -> Path:
        return self.state_path / "logs"

    def link_source(self, spec: LinkSpec) -> Path:
        return self.dotfiles_path / spec.source

    def link_target(self, spec: LinkSpec) -> Path:
        return self.resolve(spec.target)

    def tracked_targets(self) -> list[Path]:
        """Every path a restore point should capture, links first."""
        seen: dict[Path, None] = {}
        for spec in self.links:
            seen[self.link_target(spec)] = None
        for value in self.tracked_paths:
            seen[self.resolve(value)] = None
        return list(seen)
