"""Append-only progress log shared between iterations and human operators."""

from __future__ import annotations

from collections import deque
from datetime import datetime
from pathlib import Path

from ralph_loop.orchestrator.models import ProgressStatus

NO_HISTORY_PLACEHOLDER = "(no progress history yet)"
DEFAULT_TAIL_LINES = 250

_BANNER = "Ralph Wiggum Technique Progress Log\n====================================\n"
_HEAVY_RULE = "=" * 80
_LIGHT_RULE = "-" * 80


class ProgressLog:
    """Plain-text log that is only ever appended to."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def ensure_exists(self) -> None:
        """Create the log with a title banner if it is missing."""

        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._append(_BANNER)

    def tail(self, lines: int = DEFAULT_TAIL_LINES) -> str:
        """Return up to the last ``lines`` lines, or a placeholder when empty."""

        if lines <= 0 or not self.path.exists():
            return NO_HISTORY_PLACEHOLDER
        with self.path.open("r", encoding="utf-8", errors="replace") as handle:
            window = deque(handle, maxlen=lines)
        text = "".join(window).rstrip("\n")
        if not text.strip():
            return NO_HISTORY_PLACEHOLDER
        return text

    def append_iteration_header(
        self,
        *,
        iteration: int,
        timestamp: datetime,
        task_id: str,
        description: str,
    ) -> None:
        self._append(
            "\n"
            f"{_HEAVY_RULE}\n"
            f"Iteration {iteration} | {timestamp:%Y-%m-%d %H:%M:%S}\n"
            f"Task: {task_id}\n"
            f"Description: {description}\n"
            f"{_LIGHT_RULE}\n",
        )

    def append_result(self, status: ProgressStatus, detail: str) -> None:
        if status == ProgressStatus.COMPLETE:
            self._append(f"Status: ✓ COMPLETE\nVerification: {detail}\n")
            return
        self._append(f"Status: FAILED - {detail}\n")

    def _append(self, block: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(block)
