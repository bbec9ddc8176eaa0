"""
Mock runner — test double for every external command.

Returns scripted results keyed by argv prefix, records every call,
and pretends a configurable set of binaries is on PATH. Nothing is
ever executed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path

from dotstrap.adapters.base import CommandResult, CommandRunner

Responder = Callable[[list[str]], CommandResult]


class MockRunner(CommandRunner):
    """Scriptable runner for tests.

    By default every command succeeds with empty output. Responses
    are matched on the longest registered argv prefix.
    """

    def __init__(
        self,
        binaries: Iterable[str] = (),
        default: CommandResult | None = None,
    ):
        self._binaries = set(binaries)
        self._default = default or CommandResult()
        self._responses: dict[tuple[str, ...], CommandResult | Responder] = {}
        self._call_log: list[list[str]] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[list[str]]:
        """Every argv this mock has received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_starting_with(self, *prefix: str) -> list[list[str]]:
        return [c for c in self._call_log if tuple(c[: len(prefix)]) == prefix]

    def add_binary(self, *names: str) -> None:
        self._binaries.update(names)

    def which(self, binary: str) -> str | None:
        return f"/usr/bin/{binary}" if binary in self._binaries else None

    def set_response(self, prefix: Sequence[str], result: CommandResult | Responder) -> None:
        """Set the result (or a callable producing it) for an argv prefix."""
        self._responses[tuple(prefix)] = result

    def set_output(self, prefix: Sequence[str], stdout: str, returncode: int = 0) -> None:
        self.set_response(prefix, CommandResult(stdout=stdout, returncode=returncode))

    def set_failure(self, prefix: Sequence[str], stderr: str = "Mock failure", returncode: int = 1) -> None:
        self.set_response(prefix, CommandResult(stderr=stderr, returncode=returncode))

    def set_timeout(self, prefix: Sequence[str], seconds: float = 30) -> None:
        self.set_response(
            prefix, CommandResult(returncode=124, timed_out=True, timeout=seconds),
        )

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
        self._call_log.append(cmd)

        match: tuple[str, ...] | None = None
        for prefix in self._responses:
            if tuple(cmd[: len(prefix)]) == prefix and (match is None or len(prefix) > len(match)):
                match = prefix

        template = self._responses[match] if match is not None else self._default
        result = template(cmd) if callable(template) else template
        return result.model_copy(update={"argv": cmd})

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()
