"""
Tests for system and hardware detection.
"""

from pathlib import Path

import pytest

from dotstrap.adapters.mock import MockRunner
from dotstrap.core.services.detection import (
    UnsupportedSystemError,
    detect_hardware,
    detect_system,
    parse_os_release,
)
from dotstrap.core.services.packages import detect_package_manager

UBUNTU_2204 = """\
PRETTY_NAME="Ubuntu 22.04.4 LTS"
NAME="Ubuntu"
VERSION_ID="22.04"
ID=ubuntu
ID_LIKE=debian
"""

FEDORA = """\
NAME="Fedora Linux"
VERSION_ID=40
ID=fedora
"""

LSPCI_4090 = (
    "00:00.0 Host bridge [0600]: Intel Corporation Device [8086:a700] (rev 01)\n"
    "00:1f.0 ISA bridge [0601]: Intel Corporation Z790 Chipset LPC/eSPI Controller [8086:7a04]\n"
    "01:00.0 VGA compatible controller [0300]: NVIDIA Corporation AD102 [GeForce RTX 4090] [10de:2684]\n"
)
LSPCI_INTEL = "00:02.0 VGA compatible controller [0300]: Intel Corporation UHD Graphics 770 [8086:4680]\n"
LSPCI_4090_REV = (
    "01:00.0 VGA compatible controller [0300]: NVIDIA Corporation AD102 [GeForce RTX 4090] [10de:2684] (rev a1)\n"
)
LSPCI_UNNAMED_NVIDIA = "01:00.0 VGA compatible controller [0300]: Device [10de:2882] (rev a1)\n"


def _os_release(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "os-release"
    path.write_text(text)
    return path


class TestOsRelease:
    def test_parse(self, tmp_path: Path):
        data = parse_os_release(_os_release(tmp_path, UBUNTU_2204))
        assert data["ID"] == "ubuntu"
        assert data["VERSION_ID"] == "22.04"
        assert data["PRETTY_NAME"] == "Ubuntu 22.04.4 LTS"

    def test_missing_file(self, tmp_path: Path):
        assert parse_os_release(tmp_path / "nope") == {}


class TestDetectSystem:
    def test_tested_ubuntu(self, tmp_path: Path):
        runner = MockRunner(binaries=["apt-get"])
        info = detect_system(
            runner, system="Linux", machine="x86_64",
            os_release_path=_os_release(tmp_path, UBUNTU_2204),
        )
        assert info.os_family == "linux"
        assert info.tested
        assert info.warnings == []
        assert info.package_manager == "apt"
        assert info.flags["enable_full_setup"] is True
        assert info.flags["enable_shell_framework"] is True

    def test_untested_distro_warns(self, tmp_path: Path):
        runner = MockRunner(binaries=["dnf"])
        info = detect_system(
            runner, system="Linux", machine="aarch64",
            os_release_path=_os_release(tmp_path, FEDORA),
        )
        assert not info.tested
        assert info.arch == "arm64"
        assert info.package_manager == "dnf"
        assert info.flags["enable_full_setup"] is False
        assert "untested" in info.warnings[0]

    def test_macos_arm(self):
        runner = MockRunner(binaries=["brew"])
        runner.set_output(["sw_vers", "-productVersion"], "14.5\n")
        info = detect_system(runner, system="Darwin", machine="arm64")
        assert info.os_family == "macos"
        assert info.os_version == "14.5"
        assert info.tested
        assert info.package_manager == "brew"
        assert "has_nvidia_gpu" not in info.flags

    def test_windows_build(self):
        info = detect_system(MockRunner(), system="Windows", machine="AMD64", version="10.0.22631")
        assert info.os_family == "windows"
        assert info.tested

        old = detect_system(MockRunner(), system="Windows", machine="AMD64", version="10.0.19045")
        assert not old.tested

    def test_unsupported_os(self):
        with pytest.raises(UnsupportedSystemError):
            detect_system(MockRunner(), system="SunOS")

    def test_hardware_flags_merged(self, tmp_path: Path):
        runner = MockRunner(binaries=["apt-get", "lspci"])
        runner.set_output(["lspci"], LSPCI_4090)
        info = detect_system(
            runner, system="Linux", machine="x86_64",
            os_release_path=_os_release(tmp_path, UBUNTU_2204),
        )
        assert info.flags["has_rtx4090"] is True
        assert info.flags["enable_ros2"] is True
        assert info.flags["has_z790_chipset"] is True
        assert info.chipset == "z790"

    def test_no_hardware_probe(self, tmp_path: Path):
        runner = MockRunner(binaries=["apt-get", "lspci"])
        detect_system(
            runner, system="Linux", os_release_path=_os_release(tmp_path, UBUNTU_2204),
            probe_hardware=False,
        )
        assert runner.calls_starting_with("lspci") == []


class TestDetectHardware:
    def test_lspci_finds_target(self):
        runner = MockRunner(binaries=["lspci"])
        runner.set_output(["lspci"], LSPCI_4090)
        hw = detect_hardware(runner)
        assert hw.is_target_gpu
        assert hw.gpu_probe == "lspci"
        assert "RTX 4090" in hw.gpu_model

    def test_nvidia_smi_fallback(self):
        """No pciutils yet, but the driver is loaded."""
        runner = MockRunner(binaries=["nvidia-smi"])
        runner.set_output(["nvidia-smi"], "NVIDIA GeForce RTX 4090\n")
        hw = detect_hardware(runner)
        assert hw.is_target_gpu
        assert hw.gpu_probe == "nvidia-smi"
        assert hw.flags()["enable_hardware_fixes"] is True

    def test_lspci_broken_smi_works(self):
        runner = MockRunner(binaries=["lspci", "nvidia-smi"])
        runner.set_failure(["lspci"], stderr="pcilib: Cannot open /proc/bus/pci")
        runner.set_output(["nvidia-smi"], "NVIDIA GeForce RTX 4090\n")
        assert detect_hardware(runner).is_target_gpu

    def test_other_nvidia_gpu(self):
        runner = MockRunner(binaries=["nvidia-smi"])
        runner.set_output(["nvidia-smi"], "NVIDIA GeForce RTX 3060\n")
        hw = detect_hardware(runner)
        assert hw.has_nvidia
        assert not hw.is_target_gpu
        flags = hw.flags()
        assert flags["enable_nvidia_setup"] is True
        assert "enable_ros2" not in flags

    def test_no_gpu_tools(self):
        hw = detect_hardware(MockRunner())
        assert not hw.has_nvidia
        assert hw.gpu_model is None
        assert hw.probes_run == ["lspci", "nvidia-smi"]

    def test_integrated_only(self):
        runner = MockRunner(binaries=["lspci"])
        runner.set_output(["lspci"], LSPCI_INTEL)
        hw = detect_hardware(runner)
        assert not hw.has_nvidia
        assert "Intel" in hw.gpu_model

    def test_lspci_revision_suffix_stripped(self):
        runner = MockRunner(binaries=["lspci"])
        runner.set_output(["lspci"], LSPCI_4090_REV)
        hw = detect_hardware(runner)
        assert hw.is_target_gpu
        assert hw.gpu_model == "NVIDIA Corporation AD102 [GeForce RTX 4090]"

    def test_nvidia_vendor_id_without_name(self):
        """Older pci.ids databases print only the device id."""
        runner = MockRunner(binaries=["lspci"])
        runner.set_output(["lspci"], LSPCI_UNNAMED_NVIDIA)
        hw = detect_hardware(runner)
        assert hw.has_nvidia
        assert not hw.is_target_gpu
        assert hw.gpu_model == "Device"


class TestPackageManagerDetection:
    def test_first_found_wins(self):
        assert detect_package_manager(MockRunner(binaries=["dnf", "apt-get"])) == "apt"

    def test_filtered_by_family(self):
        assert detect_package_manager(MockRunner(binaries=["apt-get", "brew"]), "macos") == "brew"

    def test_none_found(self):
        assert detect_package_manager(MockRunner(), "linux") is None
