"""
Detection — what machine are we on.

Re-exports the public surface for convenient access.
"""

from dotstrap.core.services.detection.hardware import HardwareInfo, detect_hardware
from dotstrap.core.services.detection.system import (
    UnsupportedSystemError,
    detect_system,
    parse_os_release,
)

__all__ = [
    "HardwareInfo",
    "UnsupportedSystemError",
    "detect_hardware",
    "detect_system",
    "parse_os_release",
]
