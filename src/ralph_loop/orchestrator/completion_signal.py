"""Best-effort recovery of the completed task id from agent output."""

from __future__ import annotations

import re
from typing import Protocol

COMPLETION_MARKER = "COMPLETED_TASK_ID"
COMPLETION_SIGNAL_PARSER_VERSION = "v1"

_MARKER_LINE = re.compile(rf"{COMPLETION_MARKER}:[ \t]*([A-Za-z0-9_-]+)")
_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")


class CompletionSignalParser(Protocol):
    """Extracts the id of the task an agent claims to have finished."""

    def parse(self, raw_output: str) -> str | None:
        """Return the reported task id, or ``None`` when no signal is present."""


class MarkerLineParser:
    """Scrapes ``COMPLETED_TASK_ID: <id>`` lines out of free-form text.

    Agents often restate the marker (for example when echoing instructions
    back), so the last occurrence wins.
    """

    def parse(self, raw_output: str) -> str | None:
        return parse_completed_task_id(raw_output)


def parse_completed_task_id(raw_output: str) -> str | None:
    """Return the id from the last completion marker in ``raw_output``."""

    if not raw_output:
        return None
    text = _ANSI_ESCAPE.sub("", raw_output)
    matches = _MARKER_LINE.findall(text)
    if not matches:
        return None
    return matches[-1]
