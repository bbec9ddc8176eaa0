"""
Hardware detection — GPU and chipset probes.

The GPU is probed two independent ways, lspci and nvidia-smi, because
either one can be missing or unreliable on a fresh machine (no
pciutils yet, or no driver loaded yet). Both are consulted in order
and the first positive match for the target model wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from dotstrap.adapters.base import CommandRunner

logger = logging.getLogger(__name__)

# The workstation model that unlocks the full GPU stack
TARGET_GPU_PATTERN = re.compile(r"rtx.*4090|geforce.*4090", re.IGNORECASE)
NVIDIA_PATTERN = re.compile(r"nvidia|\[10de:", re.IGNORECASE)
Z790_PATTERN = re.compile(r"z790", re.IGNORECASE)


@dataclass
class HardwareInfo:
    """Result of the hardware probes."""

    gpu_model: str | None = None
    gpu_probe: str | None = None        # lspci, nvidia-smi
    has_nvidia: bool = False
    is_target_gpu: bool = False
    chipset: str | None = None
    probes_run: list[str] = field(default_factory=list)

    def flags(self) -> dict[str, bool]:
        flags = {
            "has_nvidia_gpu": self.has_nvidia,
            "has_rtx4090": self.is_target_gpu,
            "enable_nvidia_setup": self.has_nvidia,
            "has_z790_chipset": self.chipset == "z790",
        }
        if self.is_target_gpu:
            flags["enable_hardware_fixes"] = True
            flags["enable_ros2"] = True
        return flags


_REVISION = re.compile(r"\s*\(rev [0-9a-f]+\)\s*$", re.IGNORECASE)
_PCI_ID = re.compile(r"\s*\[[0-9a-f]{4}:[0-9a-f]{4}\]\s*$", re.IGNORECASE)


def _extract_gpu_model(line: str) -> str:
    """Extract GPU model from an lspci line."""
    # e.g. "01:00.0 VGA compatible controller [0300]: NVIDIA Corporation AD102 [GeForce RTX 4090] [10de:2684] (rev a1)"
    parts = line.split(":", 2)
    if len(parts) < 3:
        return line.strip()
    model = _REVISION.sub("", parts[2].strip())
    return _PCI_ID.sub("", model)


def probe_lspci(runner: CommandRunner) -> tuple[list[str], str | None]:
    """GPU lines and chipset from lspci.

    Returns:
        (gpu_lines, chipset). Empty and None when lspci is unavailable.
    """
    if not runner.available("lspci"):
        return [], None
    result = runner.run(["lspci", "-nn"], timeout=10)
    if not result.ok:
        logger.debug("lspci failed: %s", result.message)
        return [], None

    gpus: list[str] = []
    chipset = None
    for line in result.stdout.splitlines():
        if "VGA" in line or "3D controller" in line:
            gpus.append(line)
        if Z790_PATTERN.search(line):
            chipset = "z790"
    return gpus, chipset


def probe_nvidia_smi(runner: CommandRunner) -> list[str]:
    """GPU names reported by the NVIDIA driver."""
    if not runner.available("nvidia-smi"):
        return []
    result = runner.run(
        ["nvidia-smi", "--query-gpu=name", "--format=csv,noheader"], timeout=10,
    )
    if not result.ok:
        logger.debug("nvidia-smi failed: %s", result.message)
        return []
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def detect_hardware(runner: CommandRunner) -> HardwareInfo:
    """Run both GPU probes and the chipset check. Never raises."""
    info = HardwareInfo()

    lspci_gpus, info.chipset = probe_lspci(runner)
    info.probes_run.append("lspci")
    smi_gpus = probe_nvidia_smi(runner)
    info.probes_run.append("nvidia-smi")

    # (probe, model, raw line); the vendor id only survives in the raw lspci line
    candidates = [("lspci", _extract_gpu_model(line), line) for line in lspci_gpus]
    candidates += [("nvidia-smi", name, name) for name in smi_gpus]

    for probe, model, _ in candidates:
        if TARGET_GPU_PATTERN.search(model):
            info.gpu_model, info.gpu_probe = model, probe
            info.has_nvidia = info.is_target_gpu = True
            logger.info("Target GPU detected via %s: %s", probe, model)
            return info

    for probe, model, raw in candidates:
        if NVIDIA_PATTERN.search(raw) or probe == "nvidia-smi":
            info.gpu_model, info.gpu_probe = model, probe
            info.has_nvidia = True
            logger.info("NVIDIA GPU detected via %s: %s", probe, model)
            return info

    if candidates:
        info.gpu_probe, info.gpu_model, _ = candidates[0]
    return info
