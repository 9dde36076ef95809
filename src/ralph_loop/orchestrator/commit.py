"""Stage-all and commit with a bounded retry policy for git hooks."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from ralph_loop.orchestrator.errors import CommitError
from ralph_loop.orchestrator.models import CommitResult

logger = logging.getLogger(__name__)

COMMIT_TRAILER = "Co-Authored-By: Ralph Wiggum (AI Agent) <ralph@ai.local>"

_GIT_TIMEOUT_SECONDS = 300


def build_commit_message(task_id: str, description: str) -> str:
    return (
        f"feat: Complete task {task_id}\n"
        "\n"
        f"{description}\n"
        "\n"
        "- Implemented feature as specified\n"
        "- Updated PRD to mark task complete\n"
        "- Logged progress\n"
        "\n"
        f"{COMMIT_TRAILER}\n"
    )


class CommitManager:
    """Commits the working tree after a verified iteration.

    Policy: one plain attempt; if it fails and hooks rewrote files, re-stage and
    try exactly once more; if still failing and ``allow_no_verify`` is set, one
    last attempt with ``--no-verify``.
    """

    def __init__(self, *, workdir: Path, allow_no_verify: bool = False) -> None:
        self.workdir = workdir
        self.allow_no_verify = allow_no_verify

    def commit(self, task_id: str, description: str) -> CommitResult:
        self._stage_all()
        if not self._has_staged_changes():
            logger.warning("No changes to commit for task %s", task_id)
            return CommitResult(committed=False)

        message = build_commit_message(task_id, description)
        attempts = 1
        logger.info("Attempting git commit...")
        returncode, output = self._commit(message)
        if returncode == 0:
            logger.info("Created commit for task %s", task_id)
            return self._result(attempts=attempts)

        logger.warning(
            "Commit failed (exit code: %s). Checking for auto-formatted files...",
            returncode,
        )
        if self._has_unstaged_changes():
            logger.info("Detected files modified by pre-commit hooks. Re-staging and retrying...")
            self._stage_all()
            attempts += 1
            returncode, output = self._commit(message)
            if returncode == 0:
                logger.info(
                    "Created commit for task %s (after re-staging auto-formatted files)",
                    task_id,
                )
                return self._result(attempts=attempts)
            logger.error("Commit failed after retry (exit code: %s)", returncode)
        else:
            logger.error("Commit failed - pre-commit hooks found issues that cannot be auto-fixed")

        if self.allow_no_verify:
            logger.warning("RALPH_ALLOW_NO_VERIFY is set. Attempting commit with --no-verify...")
            attempts += 1
            returncode, output = self._commit(message, no_verify=True)
            if returncode == 0:
                logger.warning(
                    "Created commit for task %s (with --no-verify, hooks skipped)",
                    task_id,
                )
                return self._result(attempts=attempts, bypassed_hooks=True)

        raise CommitError(
            f"Failed to commit task {task_id} after {attempts} attempt(s): {output.strip()[-500:]}",
            remediation=(
                "Fix the pre-commit hook failures and commit manually, "
                "or set RALPH_ALLOW_NO_VERIFY=true to bypass hooks.",
            ),
        )

    def _result(self, *, attempts: int, bypassed_hooks: bool = False) -> CommitResult:
        return CommitResult(
            committed=True,
            commit_hash=self._head(),
            attempts=attempts,
            bypassed_hooks=bypassed_hooks,
        )

    def _stage_all(self) -> None:
        returncode, output = self._git("add", "-A")
        if returncode != 0:
            raise CommitError(f"git add -A failed: {output.strip()}")

    def _has_staged_changes(self) -> bool:
        returncode, output = self._git("diff", "--cached", "--quiet")
        if returncode not in (0, 1):
            raise CommitError(f"git diff --cached failed: {output.strip()}")
        return returncode == 1

    def _has_unstaged_changes(self) -> bool:
        returncode, output = self._git("status", "--porcelain")
        if returncode != 0:
            raise CommitError(f"git status failed: {output.strip()}")
        return any(line[1:2] not in ("", " ") for line in output.splitlines())

    def _commit(self, message: str, *, no_verify: bool = False) -> tuple[int, str]:
        args = ["commit", "-m", message]
        if no_verify:
            args.insert(1, "--no-verify")
        return self._git(*args)

    def _head(self) -> str | None:
        returncode, output = self._git("rev-parse", "HEAD")
        if returncode != 0:
            return None
        return output.strip()

    def _git(self, *args: str) -> tuple[int, str]:
        try:
            completed = subprocess.run(  # noqa: S603
                ["git", *args],  # noqa: S607
                cwd=self.workdir,
                capture_output=True,
                text=True,
                timeout=_GIT_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as error:
            raise CommitError(f"git {args[0]} could not run: {error}") from error
        return completed.returncode, f"{completed.stdout}{completed.stderr}"
