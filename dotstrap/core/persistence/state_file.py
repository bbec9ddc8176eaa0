"""
Install state persistence.

``<state_dir>/state.json`` holds the ``InstallState`` between runs. The
file is only a cache of what earlier runs saw, so anything wrong with it
(missing, truncated, wrong shape) means an empty state rather than an
error. Saves go through a temp file in the same directory and a rename.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from dotstrap.core.models.settings import Settings
from dotstrap.core.models.state import InstallState

logger = logging.getLogger(__name__)

STATE_FILE = "state.json"


def state_path(settings: Settings) -> Path:
    return settings.state_path / STATE_FILE


def load_state(path: Path) -> InstallState:
    """Read the state file, or return an empty state if it is unusable."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("State file %s not found, using empty state", path)
        return InstallState()
    except OSError as e:
        logger.warning("State file %s unreadable (%s), using empty state", path, e)
        return InstallState()

    try:
        state = InstallState.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        logger.warning("State file %s is invalid, using empty state: %s", path, e)
        return InstallState()

    logger.debug("State read from %s, last update %s", path, state.updated_at)
    return state


def save_state(state: InstallState, path: Path) -> None:
    """Write ``state`` to ``path`` atomically. OS errors propagate."""
    state.touch()
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    fd, name = tempfile.mkstemp(dir=path.parent, prefix=".state_", suffix=".tmp")
    tmp = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        tmp.replace(path)
    except OSError:
        tmp.unlink(missing_ok=True)
        logger.error("Could not write state file %s", path)
        raise
    logger.debug("State written to %s", path)
