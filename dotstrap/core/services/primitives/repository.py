"""
clone-or-update-repository primitive.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from dotstrap.adapters.vcs.git import GitClient
from dotstrap.core.models.outcome import Outcome

logger = logging.getLogger(__name__)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def clone_or_update(
    url: str,
    destination: Path,
    *,
    git: GitClient,
    force: bool = False,
) -> Outcome:
    """Keep ``destination`` a checkout of ``url``.

    A valid checkout is fast-forwarded instead of re-cloned. An update
    that cannot fast-forward (diverged local work, no upstream, offline)
    is reported as a warning on a skipped unit, never merged. Anything
    at ``destination`` that is not a checkout is removed and re-cloned,
    as is everything when ``force`` is set.
    """
    unit = str(destination)
    exists = destination.exists() or destination.is_symlink()

    if exists and not force and git.is_checkout(destination):
        before = git.head(destination)
        result = git.update(destination)
        if not result.ok:
            reason = "timed out" if result.timed_out else result.message
            logger.warning("Could not update %s: %s", destination, reason)
            return Outcome.skipped(
                unit, "repository", "existing checkout kept",
                warning=f"Update failed: {reason}",
                metadata={"url": url},
            )
        after = git.head(destination)
        if before and before == after:
            return Outcome.skipped(unit, "repository", "up to date", metadata={"url": url})
        return Outcome.installed(unit, "repository", "updated", metadata={"url": url})

    if exists:
        logger.info("Removing %s before cloning %s", destination, url)
        try:
            _remove(destination)
        except OSError as e:
            return Outcome.failure(
                unit, "repository",
                error=f"Cannot remove existing {destination}: {e}",
                hint="Remove the directory manually and re-run",
                metadata={"url": url},
            )

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return Outcome.failure(
            unit, "repository",
            error=f"Cannot create {destination.parent}: {e}",
            metadata={"url": url},
        )

    result = git.clone(url, destination)
    if result.ok:
        logger.info("Cloned %s into %s", url, destination)
        return Outcome.installed(unit, "repository", "cloned", metadata={"url": url})

    # A failed clone may leave a half-written directory behind
    if destination.exists():
        shutil.rmtree(destination, ignore_errors=True)
    if result.timed_out:
        return Outcome.timed_out(unit, "repository", result.timeout or 0, metadata={"url": url})
    return Outcome.failure(
        unit, "repository",
        error=f"Clone failed: {result.message}",
        hint=f"Check that {url} is reachable and git is installed",
        metadata={"url": url},
    )
