"""
Profile loader — loads machine profiles from YAML files.

Profiles live as ``<name>.yml`` in the user's profile directory and in
the built-in ``dotstrap/profiles`` directory; the user's copy wins on
a name clash. A profile is data only: flags, packages, a signature
used for auto-detection, and two hook slots.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

import yaml
from pydantic import ValidationError

from dotstrap.core.decisions import PROFILE_SUGGESTION, DecisionProvider
from dotstrap.core.models.profile import Profile, default_profile
from dotstrap.core.models.system import SystemInfo

logger = logging.getLogger(__name__)

BUILTIN_PROFILES_DIR = Path(__file__).resolve().parents[2] / "profiles"
PROFILE_SUFFIXES = (".yml", ".yaml")


class ProfileError(Exception):
    """Raised when a profile file exists but cannot be loaded."""


class ProfileNotFoundError(ProfileError):
    """Raised when a named profile is not in any profile directory."""


def search_dirs_for(user_dir: Path | None) -> list[Path]:
    """User directory first, then the built-in profiles."""
    dirs = []
    if user_dir is not None:
        dirs.append(user_dir)
    dirs.append(BUILTIN_PROFILES_DIR)
    return dirs


def load_profile_file(path: Path) -> Profile:
    """Load a single profile definition.

    Raises:
        ProfileError: If the file is not valid YAML or not a valid profile.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ProfileError(f"Cannot read profile {path}: {e}") from e

    if not isinstance(data, dict):
        raise ProfileError(f"Profile {path} is not a mapping")

    data.setdefault("name", path.stem)
    data["source"] = str(path)
    try:
        profile = Profile.model_validate(data)
    except ValidationError as e:
        raise ProfileError(f"Invalid profile {path}: {e}") from e

    logger.debug("Loaded profile: %s from %s", profile.name, path)
    return profile


def load_profile(name: str, search_dirs: Iterable[Path]) -> Profile:
    """Locate and load a profile by name.

    Raises:
        ProfileNotFoundError: If no directory holds ``<name>.yml``.
        ProfileError: If the file is found but invalid, or ``name`` is
            not a bare name.
    """
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise ProfileError(f"Invalid profile name '{name}': use a name like 'server', not a path")

    searched = []
    for directory in search_dirs:
        for suffix in PROFILE_SUFFIXES:
            candidate = directory / f"{name}{suffix}"
            if candidate.is_file():
                return load_profile_file(candidate)
        searched.append(str(directory))
    raise ProfileNotFoundError(
        f"Profile '{name}' not found (searched: {', '.join(searched)})"
    )


def discover_profiles(search_dirs: Iterable[Path]) -> dict[str, Profile]:
    """Load every valid profile, keyed by name. Earlier directories win.

    Invalid files are skipped with a warning.
    """
    profiles: dict[str, Profile] = {}
    for directory in search_dirs:
        if not directory.is_dir():
            logger.debug("Profiles directory not found: %s", directory)
            continue
        for path in sorted(directory.iterdir()):
            if path.suffix not in PROFILE_SUFFIXES or not path.is_file():
                continue
            try:
                profile = load_profile_file(path)
            except ProfileError as e:
                logger.warning("Skipping profile: %s", e)
                continue
            profiles.setdefault(profile.name, profile)
    logger.info("Discovered %d profiles: %s", len(profiles), list(profiles))
    return profiles


def suggest_profile(system: SystemInfo, search_dirs: Iterable[Path]) -> Profile | None:
    """First profile whose signature matches the detected system.

    Profiles that require more flags are tried first, so a specific
    hardware profile beats a generic OS profile.
    """
    candidates = sorted(
        discover_profiles(search_dirs).values(),
        key=lambda p: (-len(p.signature.requires_flags), p.name),
    )
    for profile in candidates:
        if profile.signature.matches(system.os_family, system.flags):
            return profile
    return None


def select_profile(
    name: str | None,
    system: SystemInfo,
    decisions: DecisionProvider,
    search_dirs: Iterable[Path],
) -> Profile:
    """Resolve the profile for a run.

    A requested name must exist. With no name, a matching profile is
    suggested and applied only if confirmed; otherwise the empty
    default profile is used. Not asking for a profile is never an error.
    """
    dirs = list(search_dirs)
    if name:
        profile = load_profile(name, dirs)
        logger.info("Using profile %s", profile.name)
        return profile

    suggestion = suggest_profile(system, dirs)
    if suggestion is None:
        logger.info("No profile matches this system, using defaults")
        return default_profile()

    question = f"Detected {system.summary()}. Apply profile '{suggestion.name}'?"
    if decisions.confirm(PROFILE_SUGGESTION, question, default=True):
        logger.info("Using auto-detected profile %s", suggestion.name)
        return suggestion

    logger.info("Suggested profile %s declined, using defaults", suggestion.name)
    return default_profile()
