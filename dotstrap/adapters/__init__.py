"""Adapters — bindings to external programs.

Public re-exports for convenient access.
"""

from dotstrap.adapters.base import CommandResult, CommandRunner
from dotstrap.adapters.mock import MockRunner
from dotstrap.adapters.shell.command import SubprocessRunner

__all__ = [
    "CommandResult",
    "CommandRunner",
    "MockRunner",
    "SubprocessRunner",
]
