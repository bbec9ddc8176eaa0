"""
System detection — OS family, version, architecture and capability flags.

Purely informational: nothing here changes the machine. An OS family
outside the supported set is a hard stop. A supported family on an
untested version only adds a warning and withholds the
``enable_full_setup`` flag.

Tested targets:
    linux    Ubuntu 22.04
    macos    Apple Silicon (arm64)
    windows  Windows 11 (build >= 22000)
"""

from __future__ import annotations

import logging
import platform
import socket
from pathlib import Path

from dotstrap.adapters.base import CommandRunner
from dotstrap.core.models.system import OsFamily, SystemInfo
from dotstrap.core.services.detection.hardware import detect_hardware
from dotstrap.core.services.packages import detect_package_manager

logger = logging.getLogger(__name__)

OS_RELEASE = Path("/etc/os-release")

_FAMILIES: dict[str, OsFamily] = {
    "linux": "linux",
    "darwin": "macos",
    "windows": "windows",
}

TESTED_UBUNTU = ("22.04",)
WINDOWS_11_BUILD = 22000

# Flags every run starts from; detection and the profile refine them
BASE_FLAGS: dict[str, bool] = {
    "enable_full_setup": False,
    "enable_shell_framework": True,
    "enable_fonts": True,
}


class UnsupportedSystemError(Exception):
    """Raised when the OS family is not one dotstrap can provision."""


def parse_os_release(path: Path = OS_RELEASE) -> dict[str, str]:
    """Parse an os-release file into a dict. Empty if unreadable."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return {}

    data: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        data[key.strip()] = value.strip().strip('"').strip("'")
    return data


def _detect_linux(info: SystemInfo, os_release_path: Path) -> None:
    release = parse_os_release(os_release_path)
    info.distro_id = release.get("ID", "").lower()
    info.distro_name = release.get("NAME", "Linux")
    info.os_version = release.get("VERSION_ID", "")

    if info.distro_id == "ubuntu" and info.os_version in TESTED_UBUNTU:
        info.tested = True
        return
    if info.distro_id == "ubuntu" or "ubuntu" in release.get("ID_LIKE", ""):
        info.warnings.append(
            f"{info.distro_name} {info.os_version} is untested; "
            f"full setup is only enabled on Ubuntu {', '.join(TESTED_UBUNTU)}",
        )
    else:
        info.warnings.append(
            f"{info.distro_name or 'This distribution'} is untested; running basic setup only",
        )


def _detect_macos(info: SystemInfo, runner: CommandRunner) -> None:
    info.distro_name = "macOS"
    result = runner.run(["sw_vers", "-productVersion"], timeout=10)
    info.os_version = result.stdout.strip() if result.ok else platform.mac_ver()[0]

    if info.arch == "arm64":
        info.tested = True
    else:
        info.warnings.append("Intel macOS is untested; running basic setup only")


def _detect_windows(info: SystemInfo, version: str) -> None:
    info.distro_name = "Windows"
    info.os_version = version
    try:
        build = int(version.split(".")[2])
    except (IndexError, ValueError):
        build = 0

    if build >= WINDOWS_11_BUILD:
        info.tested = True
    else:
        info.warnings.append(f"Windows build {build or 'unknown'} is older than Windows 11")


def detect_system(
    runner: CommandRunner,
    *,
    system: str | None = None,
    machine: str | None = None,
    version: str | None = None,
    os_release_path: Path = OS_RELEASE,
    probe_hardware: bool = True,
) -> SystemInfo:
    """Detect the machine.

    Args:
        runner: Used for sw_vers, lspci, nvidia-smi and PATH lookups.
        system: Override for ``platform.system()``.
        machine: Override for ``platform.machine()``.
        version: Override for ``platform.version()`` (Windows build).
        os_release_path: Linux distribution info.
        probe_hardware: Run the GPU/chipset probes (Linux only).

    Raises:
        UnsupportedSystemError: If the OS family is not supported.
    """
    system_name = (system or platform.system()).lower()
    family = _FAMILIES.get(system_name)
    if family is None:
        raise UnsupportedSystemError(
            f"Unsupported operating system: {system or platform.system()}",
        )

    arch = (machine or platform.machine()).lower()
    if arch in ("x86_64", "amd64"):
        arch = "x86_64"
    elif arch in ("aarch64", "arm64"):
        arch = "arm64"

    info = SystemInfo(os_family=family, arch=arch, hostname=socket.gethostname())

    if family == "linux":
        _detect_linux(info, os_release_path)
    elif family == "macos":
        _detect_macos(info, runner)
    else:
        _detect_windows(info, version or platform.version())

    flags = dict(BASE_FLAGS)
    flags["enable_full_setup"] = info.tested

    if family == "linux" and probe_hardware:
        hw = detect_hardware(runner)
        info.gpu_model = hw.gpu_model
        info.gpu_probe = hw.gpu_probe
        info.chipset = hw.chipset
        flags.update(hw.flags())

    info.package_manager = detect_package_manager(runner, family)
    info.flags = flags

    for warning in info.warnings:
        logger.warning(warning)
    logger.info("Detected %s (package manager: %s)", info.summary(), info.package_manager)
    return info
