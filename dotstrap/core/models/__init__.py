"""
Domain models — Pydantic types for dotstrap.

All models are re-exported here for convenient access:

    from dotstrap.core.models import Outcome, Profile, Settings, SystemInfo
"""

from dotstrap.core.models.outcome import Outcome
from dotstrap.core.models.profile import HookSpec, Profile, ProfileSignature, default_profile
from dotstrap.core.models.restore import RestorePoint
from dotstrap.core.models.settings import (
    DownloadSpec,
    LinkSpec,
    RepositorySpec,
    Settings,
)
from dotstrap.core.models.state import InstallationRecord, InstallState, RunRecord
from dotstrap.core.models.system import SystemInfo

__all__ = [
    # outcome.py
    "Outcome",
    # profile.py
    "HookSpec",
    "Profile",
    "ProfileSignature",
    "default_profile",
    # restore.py
    "RestorePoint",
    # settings.py
    "DownloadSpec",
    "LinkSpec",
    "RepositorySpec",
    "Settings",
    # state.py
    "InstallState",
    "InstallationRecord",
    "RunRecord",
    # system.py
    "SystemInfo",
]
