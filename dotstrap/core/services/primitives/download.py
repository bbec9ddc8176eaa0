"""
download-file primitive, plus zip extraction for downloaded archives.

Transfers stream into a ``.part`` sibling and are renamed into place
only once complete and verified, so an interrupted or failed transfer
never leaves a truncated file where a later run would mistake it for
a finished download.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import socket
import tempfile
import urllib.error
import urllib.request
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import IO

from dotstrap import __version__
from dotstrap.core.models.outcome import Outcome

logger = logging.getLogger(__name__)

Opener = Callable[[str, float], IO[bytes]]

_CHUNK = 64 * 1024


def _default_opener(url: str, timeout: float) -> IO[bytes]:
    req = urllib.request.Request(url, headers={"User-Agent": f"dotstrap/{__version__}"})
    return urllib.request.urlopen(req, timeout=timeout)


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return True
    return isinstance(exc, urllib.error.URLError) and isinstance(exc.reason, (socket.timeout, TimeoutError))


def _sha256(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def download_file(
    url: str,
    destination: Path,
    *,
    force: bool = False,
    timeout: float = 60,
    sha256: str | None = None,
    opener: Opener | None = None,
) -> Outcome:
    """Fetch ``url`` to ``destination`` unless it is already there.

    Args:
        url: Source URL.
        destination: Final file path.
        force: Download again even if ``destination`` exists.
        timeout: Socket timeout in seconds.
        sha256: Optional expected hex digest.
        opener: ``(url, timeout) -> binary stream``; defaults to urllib.
    """
    unit = str(destination)
    if destination.exists() and not force:
        return Outcome.skipped(unit, "download", "already downloaded", metadata={"url": url})

    open_url = opener or _default_opener
    partial = destination.with_name(destination.name + ".part")

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        size = 0
        with open_url(url, timeout) as response, partial.open("wb") as out:
            for chunk in iter(lambda: response.read(_CHUNK), b""):
                out.write(chunk)
                size += len(chunk)

        if sha256 and _sha256(partial) != sha256.lower():
            _discard(partial)
            return Outcome.failure(
                unit, "download",
                error=f"Checksum mismatch for {url}",
                hint="The upstream file changed; update the sha256 in settings",
                metadata={"url": url},
            )

        partial.replace(destination)
    except Exception as e:
        _discard(partial)
        if _is_timeout(e):
            logger.warning("Download timed out: %s", url)
            return Outcome.timed_out(unit, "download", timeout, metadata={"url": url})
        logger.warning("Download failed: %s (%s)", url, e)
        return Outcome.failure(
            unit, "download",
            error=f"Download failed: {e}",
            hint="Check network access to the URL and re-run",
            metadata={"url": url},
        )

    logger.info("Downloaded %s (%d bytes)", destination, size)
    return Outcome.installed(unit, "download", f"{size} bytes", metadata={"url": url, "bytes": size})


def _discard(partial: Path) -> None:
    """Drop the staged transfer. A file already at the destination is kept."""
    try:
        partial.unlink(missing_ok=True)
    except OSError as e:
        logger.error("Cannot remove partial download %s: %s", partial, e)


def extract_archive(archive: Path, destination: Path, *, force: bool = False) -> Outcome:
    """Unpack a zip archive into ``destination``.

    Extracts into a temporary sibling directory and renames it into
    place, so a corrupt archive leaves nothing behind.
    """
    unit = str(destination)
    if destination.is_dir() and any(destination.iterdir()) and not force:
        return Outcome.skipped(unit, "download", "already extracted")

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(dir=destination.parent, prefix=f".{destination.name}."))
        try:
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(staging)
            if destination.exists():
                shutil.rmtree(destination)
            staging.rename(destination)
        except Exception:
            shutil.rmtree(staging, ignore_errors=True)
            raise
    except (OSError, zipfile.BadZipFile) as e:
        return Outcome.failure(
            unit, "download",
            error=f"Cannot extract {archive.name}: {e}",
            hint="Delete the archive and re-run to download it again",
        )

    logger.info("Extracted %s to %s", archive.name, destination)
    return Outcome.installed(unit, "download", f"extracted {archive.name}")
