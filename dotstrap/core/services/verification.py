"""
Verification — is the desired link state actually in place.

Used by the final pass of an install run (critical links only) and by
the health command (all links). Read-only.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from dotstrap.core.models.settings import LinkSpec, Settings
from dotstrap.core.services.primitives.filesystem import points_to

LinkState = Literal["linked", "missing", "wrong_link", "not_link", "source_missing"]


@dataclass
class LinkStatus:
    spec: LinkSpec
    state: LinkState
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.state == "linked"

    def to_dict(self) -> dict[str, str | bool]:
        return {
            "target": self.spec.target,
            "source": self.spec.source,
            "critical": self.spec.critical,
            "state": self.state,
            "detail": self.detail,
        }


def link_status(settings: Settings, spec: LinkSpec) -> LinkStatus:
    source = settings.link_source(spec)
    target = settings.link_target(spec)

    if not (source.exists() or source.is_symlink()):
        return LinkStatus(spec, "source_missing", f"{source} does not exist")
    if points_to(target, source):
        return LinkStatus(spec, "linked", str(source))
    if target.is_symlink():
        return LinkStatus(spec, "wrong_link", f"points to {os.readlink(target)}")
    if target.exists():
        return LinkStatus(spec, "not_link", "regular file or directory")
    return LinkStatus(spec, "missing")


def check_links(settings: Settings, specs: Iterable[LinkSpec] | None = None) -> list[LinkStatus]:
    return [link_status(settings, spec) for spec in (settings.links if specs is None else specs)]


def verify_links(settings: Settings, specs: Iterable[LinkSpec] | None = None) -> list[LinkStatus]:
    """Critical links that are not in place. Empty means verified."""
    return [s for s in check_links(settings, specs) if s.spec.critical and not s.ok]
