"""
Decision providers — yes/no answers without I/O in the core.

The core asks a ``DecisionProvider`` whenever a human would be asked:
confirming an auto-detected profile, overriding a blocking preflight,
restoring a restore point. The CLI supplies an interactive provider;
tests and unattended runs supply preset answers.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)

# Topics the core asks about
PROFILE_SUGGESTION = "profile"
PREFLIGHT_OVERRIDE = "preflight_override"
RESTORE = "restore"


class DecisionProvider(Protocol):
    def confirm(self, topic: str, question: str, default: bool = False) -> bool:
        """Answer a yes/no question identified by ``topic``."""
        ...


class StaticDecisions:
    """Pre-supplied answers, optionally per topic.

    Every question asked is recorded in ``asked`` as ``(topic, question)``.
    """

    def __init__(self, answer: bool = False, answers: dict[str, bool] | None = None):
        self._answer = answer
        self._answers = dict(answers or {})
        self.asked: list[tuple[str, str]] = []

    def confirm(self, topic: str, question: str, default: bool = False) -> bool:
        self.asked.append((topic, question))
        answer = self._answers.get(topic, self._answer)
        logger.debug("Preset answer for %s: %s (%s)", topic, answer, question)
        return answer
