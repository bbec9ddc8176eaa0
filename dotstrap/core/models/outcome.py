"""
Outcome model — the result contract of every idempotent primitive.

Primitives report what happened instead of raising. The orchestrator
aggregates outcomes into the run summary and the persisted
installation records.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

OutcomeStatus = Literal["installed", "skipped", "failed", "timeout"]
UnitKind = Literal["package", "directory", "download", "repository", "symlink", "hook", "restore"]


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Outcome(BaseModel):
    """Result of one primitive applied to one installable unit.

    ``timeout`` is kept apart from ``failed`` so callers can choose a
    different retry policy for each.
    """

    unit: str                       # identifier: package id, path, url
    kind: UnitKind
    status: OutcomeStatus = "installed"

    detail: str = ""
    error: str | None = None
    hint: str | None = None         # remediation shown in the summary
    warning: str | None = None      # non-fatal problem on a skipped/installed unit

    timestamp: str = Field(default_factory=_now_iso)
    duration_ms: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the unit ended in its desired state."""
        return self.status in ("installed", "skipped")

    @property
    def is_failure(self) -> bool:
        """Whether the unit failed, including by timeout."""
        return self.status in ("failed", "timeout")

    @classmethod
    def installed(cls, unit: str, kind: UnitKind, detail: str = "", **kwargs: Any) -> Outcome:
        """Create an outcome for a unit that was changed into place."""
        return cls(unit=unit, kind=kind, status="installed", detail=detail, **kwargs)

    @classmethod
    def skipped(cls, unit: str, kind: UnitKind, detail: str = "", **kwargs: Any) -> Outcome:
        """Create an outcome for a unit that was already satisfied."""
        return cls(unit=unit, kind=kind, status="skipped", detail=detail, **kwargs)

    @classmethod
    def failure(
        cls,
        unit: str,
        kind: UnitKind,
        error: str,
        hint: str | None = None,
        **kwargs: Any,
    ) -> Outcome:
        """Create a failure outcome."""
        return cls(unit=unit, kind=kind, status="failed", error=error, hint=hint, **kwargs)

    @classmethod
    def timed_out(
        cls,
        unit: str,
        kind: UnitKind,
        seconds: float,
        hint: str | None = None,
        **kwargs: Any,
    ) -> Outcome:
        """Create an outcome for an external call that exceeded its bound."""
        return cls(
            unit=unit,
            kind=kind,
            status="timeout",
            error=f"Timed out after {seconds:g}s",
            hint=hint or "Check connectivity and re-run; completed units will be skipped",
            **kwargs,
        )

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.unit}"
