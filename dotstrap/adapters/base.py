"""
Runner base — the contract between dotstrap and external programs.

Every package manager call, git operation and probe goes through a
``CommandRunner``. Runners never raise for a failing or hanging
command: the outcome is captured in a ``CommandResult``, and a call
that exceeds its timeout comes back with ``timed_out=True``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from pathlib import Path

from pydantic import BaseModel, Field


class CommandResult(BaseModel):
    """Outcome of one external command."""

    argv: list[str] = Field(default_factory=list)
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    timed_out: bool = False
    timeout: float | None = None
    error: str | None = None        # launch failure (binary missing, permission)

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and self.error is None

    @property
    def message(self) -> str:
        """Best single-line explanation of a failure."""
        if self.timed_out:
            return f"Command timed out after {self.timeout:g}s: {' '.join(self.argv)}"
        if self.error:
            return self.error
        text = (self.stderr or self.stdout).strip()
        if text:
            return text.splitlines()[-1][:300]
        return f"Command exited with code {self.returncode}"


class CommandRunner(ABC):
    """Abstract base for running external programs.

    To add a runner:
        1. Subclass CommandRunner
        2. Implement name, which and run
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Runner identifier (e.g. 'subprocess', 'mock')."""

    @abstractmethod
    def which(self, binary: str) -> str | None:
        """Resolve a binary on PATH. Fast and never raises."""

    @abstractmethod
    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float = 30,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        sudo: bool = False,
    ) -> CommandResult:
        """Run a command to completion or timeout.

        MUST never raise. ``sudo`` prefixes the call with sudo when
        the current user is not root.
        """

    def available(self, binary: str) -> bool:
        return self.which(binary) is not None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
