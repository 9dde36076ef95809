"""Error taxonomy for the iteration loop.

Every error is local to one iteration and halts the whole run. ``summary`` is
the short phrase written to the progress log failure line; ``remediation``
holds operator guidance rendered by the CLI.
"""

from __future__ import annotations


class LoopError(RuntimeError):
    """Base class for fatal loop conditions."""

    summary = "Loop error"

    def __init__(self, message: str, *, remediation: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.remediation = remediation


class DependencyUnavailableError(LoopError):
    """Required external tool is missing; raised before anything is spawned."""

    summary = "Missing dependency"


class TaskStoreError(LoopError):
    """Task store file could not be read or written."""

    summary = "Task store error"


class TaskStoreParseError(TaskStoreError):
    """Task store file is not a valid task list."""

    summary = "Task store is malformed"


class TaskNotFoundError(TaskStoreError):
    """No task with the requested id exists."""

    summary = "Task not found"


class AgentRunError(LoopError):
    """Agent process failed."""

    summary = "Agentic task cycle error"

    def __init__(
        self,
        message: str,
        *,
        transcript_path: str | None = None,
        remediation: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message, remediation=remediation)
        self.transcript_path = transcript_path


class AgentTimeoutError(AgentRunError):
    summary = "Agent timed out"


class AgentAuthError(AgentRunError):
    summary = "Agent authentication failed"


class AgentRateLimitError(AgentRunError):
    summary = "Agent hit rate limit"


class NoCompletionSignalError(AgentRunError):
    """Agent output has no ``COMPLETED_TASK_ID`` line."""

    summary = "Agent did not report a completed task"


class UnknownTaskIdError(AgentRunError):
    """Agent reported an id that is not in the task store."""

    summary = "Agent reported an unknown task id"


class VerificationError(LoopError):
    summary = "Verification checks failed"


class CommitError(LoopError):
    summary = "Git commit failed (pre-commit hook issues)"
