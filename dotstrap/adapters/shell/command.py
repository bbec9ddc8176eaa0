"""
Subprocess runner — execute external programs and capture output.

The only place dotstrap spawns processes. Commands run with an argv
list (never through a shell) and a hard timeout.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from collections.abc import Mapping, Sequence
from pathlib import Path

from dotstrap.adapters.base import CommandResult, CommandRunner

logger = logging.getLogger(__name__)


def _is_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


class SubprocessRunner(CommandRunner):
    """Run commands with ``subprocess.run`` and a timeout."""

    @property
    def name(self) -> str:
        return "subprocess"

    def which(self, binary: str) -> str | None:
        return shutil.which(binary)

    def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float = 30,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        sudo: bool = False,
    ) -> CommandResult:
        cmd = list(argv)
        if sudo and not _is_root() and shutil.which("sudo"):
            cmd = ["sudo", *cmd]

        full_env = None
        if env:
            full_env = {**os.environ, **env}

        logger.debug("Executing: %s (cwd=%s, timeout=%ss)", " ".join(cmd), cwd, timeout)
        start = time.monotonic()

        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd else None,
                env=full_env,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("Command timed out after %ss: %s", timeout, " ".join(cmd))
            return CommandResult(
                argv=cmd,
                returncode=124,
                duration_ms=elapsed_ms,
                timed_out=True,
                timeout=timeout,
            )
        except (OSError, ValueError) as e:
            logger.debug("Command could not start: %s (%s)", cmd[0], e)
            return CommandResult(
                argv=cmd,
                returncode=127,
                error=f"Command execution error: {e}",
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode != 0:
            logger.debug(
                "Command exited %d: %s — %s",
                result.returncode, " ".join(cmd), result.stderr.strip()[:200],
            )
        return CommandResult(
            argv=cmd,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            duration_ms=elapsed_ms,
            timeout=timeout,
        )
