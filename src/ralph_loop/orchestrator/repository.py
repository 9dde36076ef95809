"""JSON file-backed task store."""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Any

from ralph_loop.orchestrator.errors import (
    TaskNotFoundError,
    TaskStoreError,
    TaskStoreParseError,
)
from ralph_loop.orchestrator.models import Task

logger = logging.getLogger(__name__)


class TaskStore:
    """Reads and rewrites the task backlog file.

    The file is a JSON array of task objects. Fields the loop does not know
    about are carried through untouched; the only mutation is flipping
    ``passes`` to ``true``.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def list_incomplete(self) -> list[Task]:
        """Return tasks with ``passes == false`` in file order."""

        return [Task.from_dict(raw) for raw in self._load() if raw["passes"] is False]

    def list_incomplete_raw(self) -> list[dict[str, Any]]:
        """Same selection as ``list_incomplete`` but with every stored field."""

        return [raw for raw in self._load() if raw["passes"] is False]

    def count(self) -> int:
        return len(self.list_incomplete_raw())

    def get(self, task_id: str) -> Task | None:
        for raw in self._load():
            if raw["id"] == task_id:
                return Task.from_dict(raw)
        return None

    def contains(self, task_id: str) -> bool:
        return self.get(task_id) is not None

    def mark_complete(self, task_id: str) -> Task:
        """Set ``passes = true`` for ``task_id`` and atomically replace the file."""

        tasks = self._load()
        for raw in tasks:
            if raw["id"] == task_id:
                raw["passes"] = True
                break
        else:
            raise TaskNotFoundError(f"Task {task_id!r} not found in {self.path}")

        self._write(tasks)
        logger.info("Marked task %r as complete in %s", task_id, self.path)
        return Task.from_dict(raw)

    def _load(self) -> list[dict[str, Any]]:
        try:
            text = self.path.read_text("utf-8")
        except FileNotFoundError as error:
            raise TaskStoreError(f"Task file not found: {self.path}") from error
        except OSError as error:
            raise TaskStoreError(f"Cannot read task file {self.path}: {error}") from error

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as error:
            raise TaskStoreParseError(f"Invalid JSON in {self.path}: {error}") from error
        return _validate_tasks(payload, self.path)

    def _write(self, tasks: list[dict[str, Any]]) -> None:
        content = json.dumps(tasks, ensure_ascii=False, indent=2) + "\n"
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            dir=self.path.parent,
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_path, stat.S_IMODE(self.path.stat().st_mode))
            os.replace(tmp_path, self.path)
        except OSError as error:
            tmp_path.unlink(missing_ok=True)
            raise TaskStoreError(f"Cannot write task file {self.path}: {error}") from error


def _validate_tasks(payload: object, path: Path) -> list[dict[str, Any]]:  # noqa: C901
    if not isinstance(payload, list):
        raise TaskStoreParseError(f"Expected a JSON array of tasks in {path}")

    seen: set[str] = set()
    for index, raw in enumerate(payload):
        if not isinstance(raw, dict):
            raise TaskStoreParseError(f"Task #{index} in {path} is not a JSON object")
        task_id = raw.get("id")
        if not isinstance(task_id, str) or not task_id.strip():
            raise TaskStoreParseError(f"Task #{index} in {path} has no string id")
        if task_id in seen:
            raise TaskStoreParseError(f"Duplicate task id {task_id!r} in {path}")
        seen.add(task_id)
        if not isinstance(raw.get("passes"), bool):
            raise TaskStoreParseError(f"Task {task_id!r} in {path} has non-boolean passes")
        description = raw.get("description", "")
        if not isinstance(description, str):
            raise TaskStoreParseError(f"Task {task_id!r} in {path} has non-string description")
        priority = raw.get("priority")
        if priority is not None and (isinstance(priority, bool) or not isinstance(priority, int)):
            raise TaskStoreParseError(f"Task {task_id!r} in {path} has non-integer priority")
        context = raw.get("context")
        if context is not None and not isinstance(context, str):
            raise TaskStoreParseError(f"Task {task_id!r} in {path} has non-string context")
    return payload
