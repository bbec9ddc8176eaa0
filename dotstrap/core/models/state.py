"""
InstallState — the persisted installation records.

Serialized to ``<state_dir>/state.json`` after every run. It is a
best-effort cache and an audit aid, never the authority: the live
OS and filesystem queries are. Delete it and the next run simply
queries everything again.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from dotstrap.core.models.outcome import Outcome

LastAction = Literal["skipped", "installed", "failed"]


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class InstallationRecord(BaseModel):
    """Last known status of one installable unit."""

    identifier: str
    kind: str
    desired_state: str = "present"
    observed_state: str = ""
    last_action: LastAction = "skipped"
    timestamp: str = Field(default_factory=_now_iso)

    @classmethod
    def from_outcome(cls, outcome: Outcome) -> InstallationRecord:
        if outcome.ok:
            observed = "present"
        elif outcome.status == "timeout":
            observed = "timeout"
        else:
            observed = "absent"
        return cls(
            identifier=outcome.unit,
            kind=outcome.kind,
            desired_state="linked" if outcome.kind == "symlink" else "present",
            observed_state=observed,
            last_action="failed" if outcome.is_failure else outcome.status,
            timestamp=outcome.timestamp,
        )

    def age_seconds(self, now: datetime | None = None) -> float:
        now = now or datetime.now(UTC)
        try:
            then = datetime.fromisoformat(self.timestamp)
        except ValueError:
            return float("inf")
        return (now - then).total_seconds()


class RunRecord(BaseModel):
    """Summary of the last install run."""

    run_id: str = ""
    profile: str = ""
    started_at: str = ""
    ended_at: str = ""
    status: str = ""                # ok, warnings, aborted, verification_failed
    installed: int = 0
    skipped: int = 0
    failed: int = 0
    timeouts: int = 0
    restore_point: str | None = None


class InstallState(BaseModel):
    """Root state document."""

    schema_version: int = 1
    updated_at: str = Field(default_factory=_now_iso)
    last_run: RunRecord = Field(default_factory=RunRecord)
    records: dict[str, InstallationRecord] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    @staticmethod
    def key(kind: str, identifier: str) -> str:
        return f"{kind}:{identifier}"

    def get(self, kind: str, identifier: str) -> InstallationRecord | None:
        return self.records.get(self.key(kind, identifier))

    def record(self, outcome: Outcome) -> InstallationRecord:
        rec = InstallationRecord.from_outcome(outcome)
        self.records[self.key(rec.kind, rec.identifier)] = rec
        return rec

    def recently_installed(self, kind: str, identifier: str, ttl: int) -> bool:
        """Whether a cached record may stand in for a live query."""
        if ttl <= 0:
            return False
        rec = self.get(kind, identifier)
        if rec is None or rec.observed_state != "present":
            return False
        return rec.age_seconds() <= ttl
