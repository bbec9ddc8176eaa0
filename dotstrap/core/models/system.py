"""
SystemInfo — what the detector learned about the machine.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

OsFamily = Literal["linux", "macos", "windows"]


class SystemInfo(BaseModel):
    """Detected OS, architecture, hardware and the flags derived from them."""

    os_family: OsFamily
    distro_id: str = ""             # ubuntu, fedora, arch, ... (linux only)
    distro_name: str = ""
    os_version: str = ""
    arch: str = ""
    hostname: str = ""

    gpu_model: str | None = None
    gpu_probe: str | None = None    # which probe produced the match
    chipset: str | None = None
    package_manager: str | None = None

    tested: bool = False
    warnings: list[str] = Field(default_factory=list)
    flags: dict[str, bool] = Field(default_factory=dict)

    def summary(self) -> str:
        name = self.distro_name or self.os_family
        parts = [f"{name} {self.os_version}".strip(), self.arch]
        if self.gpu_model:
            parts.append(self.gpu_model)
        return ", ".join(p for p in parts if p)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
