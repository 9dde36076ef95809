"""Domain models for the task backlog and iteration loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class IterationState(str, Enum):
    """Controller states, in the order one iteration walks through them."""

    IDLE = "idle"
    GATHER_CONTEXT = "gather_context"
    INVOKE_AGENT = "invoke_agent"
    PARSE_RESULT = "parse_result"
    VALIDATE_TASK_ID = "validate_task_id"
    VERIFY = "verify"
    RECORD_COMPLETION = "record_completion"
    COMMIT = "commit"


class LoopOutcome(str, Enum):
    """Terminal states of one loop run."""

    ALL_COMPLETE = "all_complete"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    FATAL = "fatal"


class CheckStatus(str, Enum):
    """Result of a single verification check."""

    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"


class ProgressStatus(str, Enum):
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(slots=True)
class Task:
    """One backlog entry as stored in the task file."""

    task_id: str
    description: str
    passes: bool
    priority: int | None = None
    context: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Task:
        return cls(
            task_id=raw["id"],
            description=raw.get("description", ""),
            passes=raw["passes"],
            priority=raw.get("priority"),
            context=raw.get("context"),
        )


@dataclass(slots=True)
class CheckResult:
    """Outcome of one verification command."""

    name: str
    ecosystem: str
    status: CheckStatus
    blocking: bool
    exit_code: int | None = None
    detail: str = ""


@dataclass(slots=True)
class VerificationOutcome:
    """Aggregate verification result for one iteration."""

    passed: bool
    checks: list[CheckResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    used_custom_hook: bool = False

    @property
    def checks_run(self) -> int:
        return len(self.checks)

    @property
    def failed_check(self) -> CheckResult | None:
        for check in self.checks:
            if check.status == CheckStatus.FAILED and check.blocking:
                return check
        return None

    def summary(self) -> str:
        """One-line description for the progress log."""

        if self.used_custom_hook:
            if self.passed:
                return "Custom verification script passed"
            return "Custom verification script failed"
        failed = self.failed_check
        if failed is not None:
            return f"{failed.ecosystem} {failed.name} failed (exit code {failed.exit_code})"
        if not self.checks:
            return "No verification checks were run"
        warnings = sum(1 for check in self.checks if check.status == CheckStatus.WARNING)
        if warnings:
            return f"All checks passed ({warnings} non-blocking warning(s))"
        return "All checks passed"


@dataclass(slots=True)
class AgentInvocationResult:
    """Transient capture of one agent run."""

    raw_output: str
    exit_status: int
    completed_task_id: str | None = None
    transcript_path: str | None = None
    elapsed_seconds: float = 0.0


@dataclass(slots=True)
class CommitResult:
    """Outcome of the commit step."""

    committed: bool
    commit_hash: str | None = None
    attempts: int = 0
    bypassed_hooks: bool = False

    @property
    def nothing_to_commit(self) -> bool:
        return not self.committed
