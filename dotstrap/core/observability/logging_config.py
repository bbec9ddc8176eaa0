"""
Logging setup for the dotstrap CLI.

``setup_logging`` runs once, from the click group callback. Modules
only ever call ``logging.getLogger(__name__)``.

Console level, highest priority first:
    --debug / --verbose / --quiet  >  DOTSTRAP_LOG_LEVEL  >  WARNING

Every install run also gets its own DEBUG log file
(``install_YYYYmmdd_HHMMSS.log`` under ``<state_dir>/logs``); the ten
newest are kept.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

# ── Formats ─────────────────────────────────────────────────────

_DETAILED = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"

# (threshold, format, datefmt): the first threshold >= level wins
_CONSOLE_FORMATS = (
    (logging.DEBUG, _DETAILED, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)
_FILE_FORMAT = logging.Formatter(_DETAILED, datefmt="%Y-%m-%d %H:%M:%S")

# Chatty below WARNING unless we are debugging
_NOISY_LOGGERS = ("urllib3", "charset_normalizer")

RUN_LOG_PREFIX = "install_"
RUN_LOG_KEEP = 10


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter("%(message)s")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Replace the root logger's handlers with dotstrap's.

    Args:
        level: Console level name.
        log_file: Extra file to log to (``DOTSTRAP_LOG_FILE``).
        log_file_level: Level for ``log_file``; the console level if unset.
        quiet_third_party: Pin noisy library loggers to WARNING when the
            console is above DEBUG.
    """
    console_level = _parse_level(level)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(console_level)
    handler.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)

    lowest = console_level
    if log_file:
        file_level = _parse_level(log_file_level or level)
        root.addHandler(_file_handler(Path(log_file), file_level))
        lowest = min(lowest, file_level)
    root.setLevel(lowest)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _file_handler(path: Path, level: int) -> logging.FileHandler:
    fh = logging.FileHandler(path, encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(_FILE_FORMAT)
    return fh


def attach_run_log(log_dir: Path, now: datetime | None = None) -> tuple[Path, logging.Handler]:
    """Start a DEBUG-level log file for one install run.

    The root logger is lowered to DEBUG so the file sees everything;
    the console handler keeps its own level.

    Returns:
        (log file path, handler to pass to ``detach_run_log``).
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    path = log_dir / f"{RUN_LOG_PREFIX}{stamp}.log"

    handler = _file_handler(path, logging.DEBUG)
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    return path, handler


def detach_run_log(handler: logging.Handler) -> None:
    root = logging.getLogger()
    root.removeHandler(handler)
    handler.close()
    levels = [h.level for h in root.handlers] or [logging.WARNING]
    root.setLevel(min(levels))


def rotate_logs(log_dir: Path, keep: int = RUN_LOG_KEEP) -> list[Path]:
    """Delete all but the ``keep`` newest run logs. Returns what was removed."""
    if not log_dir.is_dir():
        return []
    logs = sorted(
        log_dir.glob(f"{RUN_LOG_PREFIX}*.log"),
        key=lambda p: (p.stat().st_mtime, p.name),
        reverse=True,
    )
    removed = []
    for old in logs[keep:]:
        try:
            old.unlink()
            removed.append(old)
        except OSError as e:
            logging.getLogger(__name__).warning("Cannot remove old log %s: %s", old, e)
    return removed


def _parse_level(level: str | None) -> int:
    """Level name to number; unknown or empty names mean WARNING."""
    value = logging.getLevelName((level or "").upper())
    return value if isinstance(value, int) else logging.WARNING
