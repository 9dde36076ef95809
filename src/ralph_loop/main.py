"""CLI entrypoint for the Ralph loop."""

import logging
import sys
from pathlib import Path

import rich_click as click

from ralph_loop import __version__
from ralph_loop.orchestrator.controllers import (
    ListTasksCommand,
    LoopCliController,
    RunLoopCommand,
    VerifyCommand,
)
from ralph_loop.orchestrator.routing import SUPPORTED_AGENTS

click.rich_click.USE_MARKDOWN = True
LOOP_CONTROLLER = LoopCliController()

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="ralph")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    envvar="RALPH_LOG_LEVEL",
    default="INFO",
    show_default=True,
    help="Diagnostics level written to stderr.",
)
@click.pass_context
def ralph(ctx: click.Context, log_level: str) -> None:
    """Drive an AI coding agent through the task backlog, one task per iteration."""

    handler = _configure_logging(log_level)
    ctx.call_on_close(lambda: logging.getLogger("ralph_loop").removeHandler(handler))


@ralph.command("run")
@click.argument("max_iterations", type=click.IntRange(min=1), required=False)
@click.option(
    "--workdir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Project directory holding plans/ and the git repository.",
)
@click.option(
    "--agent",
    type=click.Choice(SUPPORTED_AGENTS, case_sensitive=False),
    default=None,
    help="Agent to invoke. If omitted, RALPH_AI_AGENT is used (default claude).",
)
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.IntRange(min=1),
    default=None,
    help="Agent timeout in seconds. If omitted, RALPH_AGENT_TIMEOUT_SECONDS is used.",
)
@click.option(
    "--allow-no-verify/--no-allow-no-verify",
    default=None,
    help="Allow a final commit attempt with --no-verify when hooks keep failing.",
)
def run_loop(
    max_iterations: int | None,
    workdir: Path | None,
    agent: str | None,
    timeout_seconds: int | None,
    allow_no_verify: bool | None,
) -> None:
    """Run up to MAX_ITERATIONS agent iterations (default 10)."""

    try:
        result = LOOP_CONTROLLER.run_loop(
            RunLoopCommand(
                workdir=workdir,
                max_iterations=max_iterations,
                agent=agent,
                timeout_seconds=timeout_seconds,
                allow_no_verify=allow_no_verify,
            ),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Ralph loop did not complete the backlog.")


@ralph.command("tasks")
@click.option(
    "--workdir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Project directory holding plans/prd.json.",
)
def list_tasks(workdir: Path | None) -> None:
    """List incomplete tasks from the backlog."""

    try:
        result = LOOP_CONTROLLER.list_tasks(ListTasksCommand(workdir=workdir))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Cannot read the task backlog.")


@ralph.command("verify")
@click.option(
    "--workdir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Project directory to verify.",
)
def verify(workdir: Path | None) -> None:
    """Run the verification checks once without invoking an agent."""

    try:
        result = LOOP_CONTROLLER.verify(VerifyCommand(workdir=workdir))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Verification failed.")


def _configure_logging(level: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger = logging.getLogger("ralph_loop")
    package_logger.addHandler(handler)
    package_logger.setLevel(level.upper())
    return handler


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    ralph()
