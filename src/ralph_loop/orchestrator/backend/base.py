"""Backend interface for running one agent process."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class BackendRunRequest:
    """Inputs required to execute one agent invocation."""

    agent: str
    command_template: str
    prompt: str
    workdir: Path
    timeout_seconds: int
    transcript_path: Path
    needs_terminal: bool = False
    env: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class BackendRunResult:
    """Execution outcome from a backend runner."""

    exit_code: int
    timed_out: bool
    output: str
    transcript_path: Path
    elapsed_seconds: float = 0.0


class AgentBackend(Protocol):
    """Protocol implemented by backend runners."""

    def run(self, request: BackendRunRequest) -> BackendRunResult:
        """Run the agent to completion or timeout and capture its output."""
