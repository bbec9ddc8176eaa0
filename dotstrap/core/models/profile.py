"""
Profile model — a declarative machine profile.

A profile says which packages and capability flags apply to a class
of machine. Its two lifecycle hooks are data too: the name of a
registered callback and/or plain argv commands. Nothing in a profile
file is ever evaluated as code.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MachineType = Literal["desktop", "laptop", "server"]


class HookSpec(BaseModel):
    """A lifecycle callback slot."""

    model_config = ConfigDict(frozen=True)

    builtin: str | None = None                  # name in the hook registry
    commands: list[list[str]] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.builtin and not self.commands


class ProfileSignature(BaseModel):
    """What detected system a profile is meant for.

    An empty signature never matches; such profiles are only loaded by name.
    """

    model_config = ConfigDict(frozen=True)

    os_family: list[str] = Field(default_factory=list)
    requires_flags: list[str] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.os_family and not self.requires_flags

    def matches(self, os_family: str, flags: dict[str, bool]) -> bool:
        if self.empty:
            return False
        if self.os_family and os_family not in self.os_family:
            return False
        return all(flags.get(name, False) for name in self.requires_flags)


class Profile(BaseModel):
    """A named machine profile, immutable for the duration of a run."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    machine_type: MachineType = "desktop"
    capability_flags: dict[str, bool] = Field(default_factory=dict)
    packages: list[str] = Field(default_factory=list)
    signature: ProfileSignature = Field(default_factory=ProfileSignature)
    pre_hook: HookSpec = Field(default_factory=HookSpec)
    post_hook: HookSpec = Field(default_factory=HookSpec)

    # Where the profile was loaded from (None for the built-in default)
    source: str | None = None


DEFAULT_PROFILE_NAME = "default"


def default_profile() -> Profile:
    """The empty profile used when none is requested or confirmed."""
    return Profile(name=DEFAULT_PROFILE_NAME, description="No profile: base settings only")
