"""
Interactive decision provider for the CLI.
"""

from __future__ import annotations

import logging

import click

logger = logging.getLogger(__name__)


class ClickDecisions:
    """Ask the user with ``click.confirm``.

    Topics listed in ``answers`` are answered without prompting, so
    ``--yes`` can pre-approve some questions and still refuse others.
    """

    def __init__(self, answers: dict[str, bool] | None = None):
        self._answers = dict(answers or {})

    def confirm(self, topic: str, question: str, default: bool = False) -> bool:
        if topic in self._answers:
            logger.debug("Preset answer for %s: %s", topic, self._answers[topic])
            return self._answers[topic]
        return click.confirm(question, default=default)
