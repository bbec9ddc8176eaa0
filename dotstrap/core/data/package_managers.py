"""
Package manager catalog — query and install commands per manager.

``{pkg}`` is replaced with the package id. ``query_match`` is a string
the query's stdout must contain; when None the exit code decides.
Ordered by detection priority: the first binary found on PATH wins.
"""

from __future__ import annotations

PACKAGE_MANAGERS: dict[str, dict] = {
    "apt": {
        "binary": "apt-get",
        "query": ["dpkg-query", "-W", "-f=${Status}", "{pkg}"],
        "query_match": "install ok installed",
        "install": ["apt-get", "install", "-y", "{pkg}"],
        "refresh": ["apt-get", "update"],
        "list": ["dpkg", "--get-selections"],
        "sudo": True,
        "os_family": "linux",
    },
    "dnf": {
        "binary": "dnf",
        "query": ["rpm", "-q", "{pkg}"],
        "query_match": None,
        "install": ["dnf", "install", "-y", "{pkg}"],
        "refresh": None,
        "list": ["rpm", "-qa"],
        "sudo": True,
        "os_family": "linux",
    },
    "yum": {
        "binary": "yum",
        "query": ["rpm", "-q", "{pkg}"],
        "query_match": None,
        "install": ["yum", "install", "-y", "{pkg}"],
        "refresh": None,
        "list": ["rpm", "-qa"],
        "sudo": True,
        "os_family": "linux",
    },
    "zypper": {
        "binary": "zypper",
        "query": ["rpm", "-q", "{pkg}"],
        "query_match": None,
        "install": ["zypper", "--non-interactive", "install", "{pkg}"],
        "refresh": None,
        "list": ["rpm", "-qa"],
        "sudo": True,
        "os_family": "linux",
    },
    "pacman": {
        "binary": "pacman",
        "query": ["pacman", "-Q", "{pkg}"],
        "query_match": None,
        "install": ["pacman", "-S", "--noconfirm", "--needed", "{pkg}"],
        "refresh": None,
        "list": ["pacman", "-Q"],
        "sudo": True,
        "os_family": "linux",
    },
    "apk": {
        "binary": "apk",
        "query": ["apk", "info", "-e", "{pkg}"],
        "query_match": None,
        "install": ["apk", "add", "{pkg}"],
        "refresh": None,
        "list": ["apk", "info"],
        "sudo": True,
        "os_family": "linux",
    },
    "brew": {
        "binary": "brew",
        "query": ["brew", "list", "--versions", "{pkg}"],
        "query_match": None,
        "install": ["brew", "install", "{pkg}"],
        "refresh": None,
        "list": ["brew", "list", "--versions"],
        "sudo": False,
        "os_family": "macos",
    },
    "winget": {
        "binary": "winget",
        "query": ["winget", "list", "--exact", "--id", "{pkg}"],
        "query_match": None,
        "install": [
            "winget", "install", "--exact", "--id", "{pkg}",
            "--accept-package-agreements", "--accept-source-agreements",
        ],
        "refresh": None,
        "list": ["winget", "list"],
        "sudo": False,
        "os_family": "windows",
    },
}
