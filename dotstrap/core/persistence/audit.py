"""
Audit ledger — append-only run history.

Every install run appends one entry to ``<state_dir>/audit.ndjson``
(newline-delimited JSON). Entries are never modified or deleted, so
the ledger answers "what did dotstrap do to this machine, and when".
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

AUDIT_FILE = "audit.ndjson"


class RunAuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    command: str = "install"        # install, unstow, restore

    profile: str = ""
    hostname: str = ""
    flags: dict[str, bool] = Field(default_factory=dict)

    # Results
    status: str = ""                # ok, warnings, aborted, verification_failed
    installed: int = 0
    skipped: int = 0
    failed: int = 0
    timeouts: int = 0
    duration_ms: int = 0
    restore_point: str | None = None

    errors: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)

    @property
    def has_problems(self) -> bool:
        return bool(self.errors) or self.status not in ("ok", "")


class AuditWriter:
    """Append-only audit ledger writer."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: RunAuditEntry) -> None:
        """Append one entry. An unwritable ledger is logged; the run result stands."""
        record = entry.model_dump_json() + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as ledger:
                ledger.write(record)
        except OSError as e:
            logger.error("Audit entry %s/%s not written: %s", entry.command, entry.run_id, e)
            return
        logger.debug("Audit entry written: %s/%s", entry.command, entry.run_id)

    def read_all(self) -> list[RunAuditEntry]:
        """All entries, oldest first. Unparseable lines are skipped."""
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error("Cannot read audit ledger %s: %s", self._path, e)
            return []

        entries: list[RunAuditEntry] = []
        for number, text in enumerate(lines, start=1):
            if not text.strip():
                continue
            try:
                entries.append(RunAuditEntry.model_validate_json(text))
            except ValueError as e:
                logger.warning("Audit ledger line %d skipped: %s", number, e)
        return entries

    def read_recent(self, n: int = 20, *, problems_only: bool = False) -> list[RunAuditEntry]:
        """The most recent ``n`` entries, oldest first.

        With ``problems_only``, entries from clean runs are dropped before
        counting.
        """
        entries = self.read_all()
        if problems_only:
            entries = [e for e in entries if e.has_problems]
        return entries[-n:] if n > 0 else []

    def entry_count(self) -> int:
        return len(self.read_all())
