"""Iteration controller that drives the agent through the backlog."""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from ralph_loop.orchestrator.commit import CommitManager
from ralph_loop.orchestrator.completion_signal import CompletionSignalParser, MarkerLineParser
from ralph_loop.orchestrator.errors import (
    DependencyUnavailableError,
    LoopError,
    NoCompletionSignalError,
    UnknownTaskIdError,
    VerificationError,
)
from ralph_loop.orchestrator.models import (
    AgentInvocationResult,
    CommitResult,
    IterationState,
    LoopOutcome,
    ProgressStatus,
    Task,
)
from ralph_loop.orchestrator.progress import DEFAULT_TAIL_LINES, ProgressLog
from ralph_loop.orchestrator.prompts import build_task_cycle_prompt
from ralph_loop.orchestrator.repository import TaskStore
from ralph_loop.orchestrator.verifier import Verifier

logger = logging.getLogger(__name__)


class AgentRunner(Protocol):
    """What the controller needs from the agent invoker."""

    def preflight(self) -> None: ...

    def invoke(self, prompt: str) -> AgentInvocationResult: ...


@dataclass(slots=True)
class IterationReport:
    """Result of one successful iteration."""

    iteration: int
    task_id: str
    description: str
    verification: str
    commit: CommitResult


@dataclass(slots=True)
class LoopRunSummary:
    """Aggregate run result for CLI reporting."""

    outcome: LoopOutcome
    max_iterations: int
    iterations: int = 0
    remaining: int | None = None
    reports: list[IterationReport] = field(default_factory=list)
    error: LoopError | None = None

    @property
    def success(self) -> bool:
        return self.outcome != LoopOutcome.FATAL and self.remaining == 0

    @property
    def completed_task_ids(self) -> list[str]:
        return [report.task_id for report in self.reports]


class IterationController:
    """Runs strictly sequential iterations until the backlog is empty.

    Each iteration: count remaining tasks, compose the prompt, invoke the agent,
    scrape the completed task id, verify, mark the task complete, commit. Any
    failure is appended to the progress log and ends the run.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        task_store: TaskStore,
        progress_log: ProgressLog,
        invoker: AgentRunner,
        verifier: Verifier,
        committer: CommitManager,
        parser: CompletionSignalParser | None = None,
        max_iterations: int = 10,
        pause_seconds: float = 1.0,
        progress_tail_lines: int = DEFAULT_TAIL_LINES,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.task_store = task_store
        self.progress_log = progress_log
        self.invoker = invoker
        self.verifier = verifier
        self.committer = committer
        self.parser = parser or MarkerLineParser()
        self.max_iterations = max_iterations
        self.pause_seconds = pause_seconds
        self.progress_tail_lines = progress_tail_lines
        self.sleep = sleep
        self.clock = clock
        self.which = which
        self.state = IterationState.IDLE

    def run(self) -> LoopRunSummary:
        """Run up to ``max_iterations`` iterations."""

        summary = LoopRunSummary(
            outcome=LoopOutcome.MAX_ITERATIONS_REACHED,
            max_iterations=self.max_iterations,
        )
        logger.info("Starting Ralph Wiggum Technique orchestration")
        logger.info("Max iterations: %s", self.max_iterations)

        try:
            self.progress_log.ensure_exists()
            self._preflight()
        except (LoopError, OSError) as error:
            return self._fail(summary, _as_loop_error(error))

        for iteration in range(1, self.max_iterations + 1):
            logger.info("Iteration %s of %s", iteration, self.max_iterations)
            self.state = IterationState.GATHER_CONTEXT
            try:
                remaining = self.task_store.count()
                logger.info("Remaining tasks: %s", remaining)
                if remaining == 0:
                    logger.info("All tasks complete!")
                    summary.outcome = LoopOutcome.ALL_COMPLETE
                    summary.remaining = 0
                    self.state = IterationState.IDLE
                    return summary
                report = self.run_iteration(iteration)
            except (LoopError, OSError) as error:
                summary.iterations = iteration
                return self._fail(summary, _as_loop_error(error))

            summary.iterations = iteration
            summary.reports.append(report)
            logger.info("Iteration %s complete", iteration)
            self.state = IterationState.IDLE
            if iteration < self.max_iterations:
                self.sleep(self.pause_seconds)

        summary.remaining = self._remaining_or_none()
        logger.warning("Reached maximum iterations (%s)", self.max_iterations)
        if summary.remaining:
            logger.warning("%s tasks still pending", summary.remaining)
        return summary

    def run_iteration(self, iteration: int) -> IterationReport:
        """Execute one full task cycle; raises ``LoopError`` on any failure."""

        self.state = IterationState.GATHER_CONTEXT
        logger.info("Gathering context for AI agent...")
        backlog = self.task_store.list_incomplete_raw()
        logger.info("Found %s incomplete task(s)", len(backlog))
        prompt = build_task_cycle_prompt(
            incomplete_tasks=backlog,
            progress=self.progress_log.tail(self.progress_tail_lines),
        )

        self.state = IterationState.INVOKE_AGENT
        invocation = self.invoker.invoke(prompt)

        self.state = IterationState.PARSE_RESULT
        task_id = self.parser.parse(invocation.raw_output)
        if task_id is None:
            raise NoCompletionSignalError(
                "Agent did not report a COMPLETED_TASK_ID",
                transcript_path=invocation.transcript_path,
                remediation=_transcript_hint(invocation),
            )
        invocation.completed_task_id = task_id

        self.state = IterationState.VALIDATE_TASK_ID
        task = self._validate_task_id(task_id, invocation)
        logger.info("Agent reported completion of task: %s", task.task_id)
        self.progress_log.append_iteration_header(
            iteration=iteration,
            timestamp=self.clock(),
            task_id=task.task_id,
            description=task.description,
        )

        self.state = IterationState.VERIFY
        logger.info("Verifying implementation...")
        outcome = self.verifier.verify()
        if not outcome.passed:
            raise VerificationError(
                outcome.summary(),
                remediation=("CI must stay green! Fix the failing check and run again.",),
            )

        self.state = IterationState.RECORD_COMPLETION
        self.task_store.mark_complete(task.task_id)
        verification_summary = outcome.summary()
        self.progress_log.append_result(ProgressStatus.COMPLETE, verification_summary)

        self.state = IterationState.COMMIT
        commit = self.committer.commit(task.task_id, task.description)
        return IterationReport(
            iteration=iteration,
            task_id=task.task_id,
            description=task.description,
            verification=verification_summary,
            commit=commit,
        )

    def _validate_task_id(self, task_id: str, invocation: AgentInvocationResult) -> Task:
        task = self.task_store.get(task_id)
        if task is None:
            raise UnknownTaskIdError(
                f"Task {task_id!r} not found in {self.task_store.path}",
                transcript_path=invocation.transcript_path,
                remediation=("Agent may have reported a wrong task id or used an example id.",),
            )
        if task.passes:
            logger.warning("Task %r is already complete; verifying and committing again", task_id)
        return task

    def _preflight(self) -> None:
        if self.which("git") is None:
            raise DependencyUnavailableError("Required dependency 'git' not found")
        self.task_store.count()
        self.invoker.preflight()

    def _fail(self, summary: LoopRunSummary, error: LoopError) -> LoopRunSummary:
        logger.error("%s: %s (state=%s)", error.summary, error, self.state.value)
        try:
            self.progress_log.append_result(ProgressStatus.FAILED, f"{error.summary}: {error}")
        except OSError as append_error:
            logger.error("Cannot append failure to %s: %s", self.progress_log.path, append_error)
        summary.outcome = LoopOutcome.FATAL
        summary.error = error
        summary.remaining = self._remaining_or_none()
        self.state = IterationState.IDLE
        return summary

    def _remaining_or_none(self) -> int | None:
        try:
            return self.task_store.count()
        except LoopError:
            return None


def _as_loop_error(error: Exception) -> LoopError:
    if isinstance(error, LoopError):
        return error
    wrapped = LoopError(str(error))
    wrapped.__cause__ = error
    return wrapped


def _transcript_hint(invocation: AgentInvocationResult) -> tuple[str, ...]:
    if invocation.transcript_path is None:
        return ()
    return (f"Check {invocation.transcript_path} for agent output",)
