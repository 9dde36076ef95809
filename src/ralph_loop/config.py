"""Runtime configuration for the agent loop."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from ralph_loop.orchestrator.routing import (
    DEFAULT_AGENT,
    DEFAULT_COMMAND_TEMPLATES,
    SUPPORTED_AGENTS,
    normalize_agent,
    validate_supported_agent,
)


@dataclass(slots=True)
class AgentSettings:
    """Agent backend selection and invocation settings."""

    name: str = DEFAULT_AGENT
    timeout_seconds: int | None = None
    command_templates: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_COMMAND_TEMPLATES),
    )
    transcript_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))


@dataclass(slots=True)
class VerificationSettings:
    """Post-iteration verification settings."""

    hook_path: Path = Path("ralph-post-hook.sh")
    lint_blocking: bool = False
    node_runner: str = "pnpm"
    check_timeout_seconds: int = 0


@dataclass(slots=True)
class CommitSettings:
    allow_no_verify: bool = False


@dataclass(slots=True)
class LoopSettings:
    """Iteration bounds and pacing."""

    max_iterations: int = 10
    pause_seconds: float = 1.0
    progress_tail_lines: int = 250


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    workdir: Path = Path(".")
    prd_path: Path = Path("plans/prd.json")
    progress_path: Path = Path("plans/progress.txt")
    agent: AgentSettings = field(default_factory=AgentSettings)
    verification: VerificationSettings = field(default_factory=VerificationSettings)
    commit: CommitSettings = field(default_factory=CommitSettings)
    loop: LoopSettings = field(default_factory=LoopSettings)

    @classmethod
    def from_env(cls, workdir: Path | None = None) -> Settings:
        """Load settings from ``RALPH_*`` environment variables."""

        timeout_raw = os.getenv("RALPH_AGENT_TIMEOUT_SECONDS", "").strip()
        return cls(
            workdir=workdir or Path(os.getenv("RALPH_WORKDIR", ".")),
            prd_path=Path(os.getenv("RALPH_PRD_FILE", "plans/prd.json")),
            progress_path=Path(os.getenv("RALPH_PROGRESS_FILE", "plans/progress.txt")),
            agent=AgentSettings(
                name=normalize_agent(os.getenv("RALPH_AI_AGENT", DEFAULT_AGENT)),
                timeout_seconds=_env_int("RALPH_AGENT_TIMEOUT_SECONDS") if timeout_raw else None,
                command_templates=_collect_command_templates(),
                transcript_dir=Path(os.getenv("RALPH_TRANSCRIPT_DIR", tempfile.gettempdir())),
            ),
            verification=VerificationSettings(
                hook_path=Path(os.getenv("RALPH_POST_HOOK", "ralph-post-hook.sh")),
                lint_blocking=_env_bool("RALPH_LINT_BLOCKING", default=False),
                node_runner=os.getenv("RALPH_NODE_RUNNER", "pnpm").strip(),
                check_timeout_seconds=_env_int("RALPH_CHECK_TIMEOUT_SECONDS", default=0),
            ),
            commit=CommitSettings(
                allow_no_verify=_env_bool("RALPH_ALLOW_NO_VERIFY", default=False),
            ),
            loop=LoopSettings(
                max_iterations=_env_int("RALPH_MAX_ITERATIONS", default=10),
                pause_seconds=_env_float("RALPH_PAUSE_SECONDS", default=1.0),
                progress_tail_lines=_env_int("RALPH_PROGRESS_TAIL_LINES", default=250),
            ),
        )

    @property
    def resolved_prd_path(self) -> Path:
        return self.workdir / self.prd_path

    @property
    def resolved_progress_path(self) -> Path:
        return self.workdir / self.progress_path

    @property
    def resolved_hook_path(self) -> Path:
        return self.workdir / self.verification.hook_path

    def validate(self) -> None:
        """Raise ``ValueError`` describing the first invalid setting."""

        validate_supported_agent(self.agent.name)
        if self.agent.timeout_seconds is not None and self.agent.timeout_seconds <= 0:
            raise ValueError("RALPH_AGENT_TIMEOUT_SECONDS must be > 0.")
        for agent in SUPPORTED_AGENTS:
            template = self.agent.command_templates.get(agent, "").strip()
            if not template:
                raise ValueError(f"Empty command template for agent={agent!r}.")
            if "{prompt}" not in template and "{prompt_file}" not in template:
                raise ValueError(
                    f"Command template for agent={agent!r} must include {{prompt}} "
                    "or {prompt_file}.",
                )
        if self.loop.max_iterations <= 0:
            raise ValueError("Max iterations must be a positive integer.")
        if self.loop.pause_seconds < 0:
            raise ValueError("RALPH_PAUSE_SECONDS must be >= 0.")
        if self.loop.progress_tail_lines <= 0:
            raise ValueError("RALPH_PROGRESS_TAIL_LINES must be > 0.")
        if self.verification.check_timeout_seconds < 0:
            raise ValueError("RALPH_CHECK_TIMEOUT_SECONDS must be >= 0.")
        if not self.verification.node_runner:
            raise ValueError("RALPH_NODE_RUNNER must not be empty.")


def _collect_command_templates() -> dict[str, str]:
    templates: dict[str, str] = {}
    for agent in SUPPORTED_AGENTS:
        override = os.getenv(f"RALPH_{agent.upper()}_COMMAND_TEMPLATE", "").strip()
        templates[agent] = override or DEFAULT_COMMAND_TEMPLATES[agent]
    return templates


def _env_int(name: str, default: int = 0) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
