"""
Run context — everything a run decided before mutating anything.

Built once, after detection and profile selection, and passed
explicitly to every step. Capability flags are merged here (detector
first, profile overrides) and exposed read-only.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from dotstrap.adapters.base import CommandRunner
from dotstrap.core.decisions import DecisionProvider
from dotstrap.core.models.profile import Profile
from dotstrap.core.models.settings import Settings
from dotstrap.core.models.system import SystemInfo


def merge_flags(system: SystemInfo, profile: Profile) -> Mapping[str, bool]:
    """Detector flags overridden by profile flags, as a read-only mapping."""
    merged = dict(system.flags)
    merged.update(profile.capability_flags)
    return MappingProxyType(merged)


@dataclass(frozen=True)
class RunContext:
    """Immutable inputs of one install run."""

    settings: Settings
    system: SystemInfo
    profile: Profile
    runner: CommandRunner
    decisions: DecisionProvider
    force: bool = False
    minimal: bool = False
    flags: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(
        cls,
        settings: Settings,
        system: SystemInfo,
        profile: Profile,
        runner: CommandRunner,
        decisions: DecisionProvider,
        *,
        force: bool = False,
        minimal: bool = False,
    ) -> RunContext:
        return cls(
            settings=settings,
            system=system,
            profile=profile,
            runner=runner,
            decisions=decisions,
            force=force,
            minimal=minimal,
            flags=merge_flags(system, profile),
        )

    def flag(self, name: str, default: bool = False) -> bool:
        return self.flags.get(name, default)

    @property
    def packages(self) -> list[str]:
        """Settings base packages then profile packages, without duplicates."""
        return list(dict.fromkeys([*self.settings.packages, *self.profile.packages]))
