"""Controllers for loop CLI commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ralph_loop.config import Settings
from ralph_loop.orchestrator.commit import CommitManager
from ralph_loop.orchestrator.errors import AgentRunError, LoopError
from ralph_loop.orchestrator.invoker import AgentInvoker
from ralph_loop.orchestrator.loop import IterationController, LoopRunSummary
from ralph_loop.orchestrator.models import CheckStatus, LoopOutcome
from ralph_loop.orchestrator.progress import ProgressLog
from ralph_loop.orchestrator.repository import TaskStore
from ralph_loop.orchestrator.routing import resolve_agent_route
from ralph_loop.orchestrator.verifier import Verifier

COMPLETION_SIGNAL = "promise complete here"

_CHECK_MARKERS = {
    CheckStatus.PASSED: "ok",
    CheckStatus.FAILED: "FAILED",
    CheckStatus.WARNING: "warning",
}


@dataclass(slots=True)
class RunLoopCommand:
    """CLI input for a loop run."""

    workdir: Path | None = None
    max_iterations: int | None = None
    agent: str | None = None
    timeout_seconds: int | None = None
    allow_no_verify: bool | None = None


@dataclass(slots=True)
class ListTasksCommand:
    workdir: Path | None = None


@dataclass(slots=True)
class VerifyCommand:
    workdir: Path | None = None


@dataclass(slots=True)
class CommandResult:
    """Lines to render in CLI plus the exit status."""

    lines: list[str]
    success: bool


def build_settings(command: RunLoopCommand) -> Settings:
    """Merge CLI overrides over environment settings and validate."""

    settings = Settings.from_env(workdir=command.workdir)
    if command.max_iterations is not None:
        settings.loop.max_iterations = command.max_iterations
    if command.agent is not None:
        settings.agent.name = command.agent.strip().lower()
    if command.timeout_seconds is not None:
        settings.agent.timeout_seconds = command.timeout_seconds
    if command.allow_no_verify is not None:
        settings.commit.allow_no_verify = command.allow_no_verify
    settings.validate()
    return settings


def build_verifier(settings: Settings) -> Verifier:
    return Verifier(
        workdir=settings.workdir,
        hook_path=settings.resolved_hook_path,
        lint_blocking=settings.verification.lint_blocking,
        node_runner=settings.verification.node_runner,
        check_timeout_seconds=settings.verification.check_timeout_seconds,
    )


def build_iteration_controller(settings: Settings) -> IterationController:
    """Wire every loop component from one settings object."""

    route = resolve_agent_route(
        agent=settings.agent.name,
        command_templates=settings.agent.command_templates,
        timeout_seconds=settings.agent.timeout_seconds,
    )
    return IterationController(
        task_store=TaskStore(settings.resolved_prd_path),
        progress_log=ProgressLog(settings.resolved_progress_path),
        invoker=AgentInvoker(
            route=route,
            workdir=settings.workdir,
            transcript_dir=settings.agent.transcript_dir,
        ),
        verifier=build_verifier(settings),
        committer=CommitManager(
            workdir=settings.workdir,
            allow_no_verify=settings.commit.allow_no_verify,
        ),
        max_iterations=settings.loop.max_iterations,
        pause_seconds=settings.loop.pause_seconds,
        progress_tail_lines=settings.loop.progress_tail_lines,
    )


class LoopCliController:
    """Coordinates loop, backlog inspection and verification CLI operations."""

    def run_loop(self, command: RunLoopCommand) -> CommandResult:
        settings = build_settings(command)
        controller = build_iteration_controller(settings)
        summary = controller.run()
        return CommandResult(lines=render_summary_lines(summary), success=summary.success)

    def list_tasks(self, command: ListTasksCommand) -> CommandResult:
        settings = Settings.from_env(workdir=command.workdir)
        store = TaskStore(settings.resolved_prd_path)
        try:
            tasks = store.list_incomplete()
        except LoopError as error:
            return CommandResult(lines=[f"FAILED: {error.summary}: {error}"], success=False)

        lines = [f"Incomplete tasks: {len(tasks)}"]
        for task in tasks:
            priority = "-" if task.priority is None else str(task.priority)
            lines.append(f"  {task.task_id} priority={priority} {task.description}")
        return CommandResult(lines=lines, success=True)

    def verify(self, command: VerifyCommand) -> CommandResult:
        settings = Settings.from_env(workdir=command.workdir)
        outcome = build_verifier(settings).verify()
        lines = []
        for check in outcome.checks:
            marker = _CHECK_MARKERS[check.status]
            lines.append(
                f"  [{marker}] {check.ecosystem} {check.name} (exit code {check.exit_code})",
            )
        lines.extend(f"  warning: {warning}" for warning in outcome.warnings)
        verdict = "passed" if outcome.passed else "failed"
        lines.append(f"Verification {verdict}: {outcome.summary()}")
        return CommandResult(lines=lines, success=outcome.passed)


def render_summary_lines(summary: LoopRunSummary) -> list[str]:
    """Human-readable result lines for the primary output stream."""

    lines = []
    for report in summary.reports:
        if report.commit.committed and report.commit.commit_hash:
            commit_text = f"commit {report.commit.commit_hash[:10]}"
            if report.commit.bypassed_hooks:
                commit_text += " (hooks bypassed)"
        else:
            commit_text = "nothing to commit"
        lines.append(
            f"Iteration {report.iteration}: task {report.task_id} complete "
            f"({report.verification}); {commit_text}",
        )

    if summary.outcome == LoopOutcome.FATAL and summary.error is not None:
        error = summary.error
        lines.append(f"FAILED: {error.summary}: {error}")
        lines.extend(error.remediation)
        if isinstance(error, AgentRunError) and error.transcript_path:
            lines.append(f"Agent transcript: {error.transcript_path}")
        return lines

    if summary.outcome == LoopOutcome.ALL_COMPLETE:
        lines.append("All tasks complete!")
        lines.append(COMPLETION_SIGNAL)
        return lines

    if summary.remaining == 0:
        lines.append(f"Reached maximum iterations ({summary.max_iterations}); all tasks complete")
        lines.append(COMPLETION_SIGNAL)
        return lines

    pending = "unknown" if summary.remaining is None else str(summary.remaining)
    lines.append(
        f"Reached maximum iterations ({summary.max_iterations}); {pending} task(s) still pending",
    )
    return lines
