"""Runs the selected coding agent for one iteration and classifies failures."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from pathlib import Path

from ralph_loop.orchestrator.backend import (
    AgentBackend,
    BackendRunError,
    BackendRunRequest,
    BackendRunResult,
    CliAgentBackend,
)
from ralph_loop.orchestrator.backend.sandbox import find_existing_sandbox, sandbox_available
from ralph_loop.orchestrator.errors import (
    AgentAuthError,
    AgentRateLimitError,
    AgentRunError,
    AgentTimeoutError,
    DependencyUnavailableError,
)
from ralph_loop.orchestrator.failure_classifier import AgentFailureClass, classify_agent_output
from ralph_loop.orchestrator.models import AgentInvocationResult
from ralph_loop.orchestrator.routing import CODEX_INSTALL_URL, SANDBOX_DOCS_URL, AgentRoute
from ralph_loop.orchestrator.sanitization import sanitize_preview

logger = logging.getLogger(__name__)


class AgentInvoker:
    """Launches the agent non-interactively and captures its transcript."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        route: AgentRoute,
        workdir: Path,
        transcript_dir: Path,
        backend: AgentBackend | None = None,
        sandbox_probe: Callable[[], bool] = sandbox_available,
        sandbox_lookup: Callable[[Path], str | None] = find_existing_sandbox,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.route = route
        self.workdir = workdir
        self.transcript_dir = transcript_dir
        self.backend = backend or CliAgentBackend()
        self.sandbox_probe = sandbox_probe
        self.sandbox_lookup = sandbox_lookup
        self.which = which

    @property
    def transcript_path(self) -> Path:
        return self.transcript_dir / f"ralph_{self.route.agent}_output.log"

    def preflight(self) -> None:
        """Fail fast when the agent's runtime is not installed."""

        profile = self.route.profile
        if profile.sandboxed:
            if not self.sandbox_probe():
                raise DependencyUnavailableError(
                    "Docker sandbox command not available",
                    remediation=(
                        "This requires Docker Desktop with AI Sandboxes enabled.",
                        f"See: {SANDBOX_DOCS_URL}",
                    ),
                )
            return

        if self.which(_command_head(self.route.command_template)) is None:
            raise DependencyUnavailableError(
                f"'{profile.executable}' command not found",
                remediation=(f"Please install the {profile.name} CLI: {CODEX_INSTALL_URL}",),
            )

    def invoke(self, prompt: str) -> AgentInvocationResult:
        """Run the agent once with ``prompt`` and return its raw output."""

        self.preflight()
        if self.route.profile.sandboxed:
            existing = self.sandbox_lookup(self.workdir)
            if existing:
                logger.info("Found existing sandbox: %s (will be reused with auth state)", existing)
            else:
                logger.info(
                    "No existing sandbox found, a new one will be created for %s",
                    self.workdir,
                )

        logger.info(
            "Invoking AI agent (%s), timeout=%ss, transcript=%s",
            self.route.agent,
            self.route.timeout_seconds,
            self.transcript_path,
        )
        request = BackendRunRequest(
            agent=self.route.agent,
            command_template=self.route.command_template,
            prompt=prompt,
            workdir=self.workdir,
            timeout_seconds=self.route.timeout_seconds,
            transcript_path=self.transcript_path,
            needs_terminal=self.route.profile.needs_terminal,
        )
        try:
            result = self.backend.run(request)
        except BackendRunError as error:
            if not error.transient:
                raise DependencyUnavailableError(str(error)) from error
            raise AgentRunError(str(error)) from error

        self._raise_for_failure(result)
        logger.info(
            "Agent %s finished in %.1fs (exit code %s)",
            self.route.agent,
            result.elapsed_seconds,
            result.exit_code,
        )
        return AgentInvocationResult(
            raw_output=result.output,
            exit_status=result.exit_code,
            transcript_path=str(result.transcript_path),
            elapsed_seconds=result.elapsed_seconds,
        )

    def _raise_for_failure(self, result: BackendRunResult) -> None:
        transcript = str(result.transcript_path)
        if result.timed_out:
            raise AgentTimeoutError(
                f"Agent {self.route.agent} timed out after {self.route.timeout_seconds}s",
                transcript_path=transcript,
                remediation=(f"Check {transcript} for details",),
            )

        classification = classify_agent_output(
            agent=self.route.agent,
            exit_code=result.exit_code,
            output=result.output,
        )
        if classification is None:
            return

        logger.debug("Agent transcript tail:\n%s", sanitize_preview(result.output))
        if classification.failure_class == AgentFailureClass.RATE_LIMIT:
            raise AgentRateLimitError(
                f"AI agent ({self.route.agent}) hit rate limit "
                f"(matched {classification.matched_pattern!r})",
                transcript_path=transcript,
                remediation=("Wait for the limit to reset and run again.",),
            )
        if classification.failure_class == AgentFailureClass.ACCESS_OR_AUTH:
            raise AgentAuthError(
                f"AI agent ({self.route.agent}) authentication failed "
                f"(matched {classification.matched_pattern!r})",
                transcript_path=transcript,
                remediation=self._auth_remediation(),
            )
        raise AgentRunError(
            f"AI agent ({self.route.agent}) exited with code {result.exit_code}",
            transcript_path=transcript,
            remediation=(f"Check {transcript} for details",),
        )

    def _auth_remediation(self) -> tuple[str, ...]:
        agent = self.route.agent
        if not self.route.profile.sandboxed:
            return ("Make sure OPENAI_API_KEY is set in your environment.",)
        return (
            "To fix this, authenticate the Docker sandbox:",
            f"  1. Run: docker sandbox run {agent}",
            "  2. In the interactive session, run: /login",
            "  3. Follow the authentication prompts",
            "  4. After successful login, exit the session (Ctrl+D)",
            "  5. Run ralph again",
        )


def _command_head(command_template: str) -> str:
    parts = command_template.split()
    return parts[0] if parts else ""
