"""Supported coding agents and how each one is launched."""

from __future__ import annotations

from dataclasses import dataclass

SUPPORTED_AGENTS = ("claude", "gemini", "codex")
DEFAULT_AGENT = "claude"
DEFAULT_AGENT_TIMEOUT_SECONDS = 600

SANDBOX_DOCS_URL = "https://docs.docker.com/ai/sandboxes/"
CODEX_INSTALL_URL = "https://github.com/openai/codex"

DEFAULT_COMMAND_TEMPLATES = {
    "claude": "docker sandbox run claude --dangerously-skip-permissions -p {prompt}",
    "gemini": "docker sandbox run gemini --dangerously-skip-permissions -p {prompt}",
    "codex": "codex --full-auto --quiet {prompt}",
}


@dataclass(slots=True, frozen=True)
class AgentProfile:
    """Static launch properties of one agent backend."""

    name: str
    sandboxed: bool
    needs_terminal: bool
    executable: str
    default_timeout_seconds: int = DEFAULT_AGENT_TIMEOUT_SECONDS


AGENT_PROFILES: dict[str, AgentProfile] = {
    "claude": AgentProfile(name="claude", sandboxed=True, needs_terminal=True, executable="docker"),
    "gemini": AgentProfile(name="gemini", sandboxed=True, needs_terminal=True, executable="docker"),
    "codex": AgentProfile(name="codex", sandboxed=False, needs_terminal=False, executable="codex"),
}


@dataclass(slots=True)
class AgentRoute:
    """Resolved agent selection used by the invoker for a whole run."""

    profile: AgentProfile
    command_template: str
    timeout_seconds: int

    @property
    def agent(self) -> str:
        return self.profile.name


def resolve_agent_route(
    *,
    agent: str,
    command_templates: dict[str, str],
    timeout_seconds: int | None,
) -> AgentRoute:
    """Validate the agent name and pick its template and timeout."""

    normalized = normalize_agent(agent)
    validate_supported_agent(normalized)
    profile = AGENT_PROFILES[normalized]
    template = command_templates.get(normalized, DEFAULT_COMMAND_TEMPLATES[normalized]).strip()
    if not template:
        raise ValueError(f"Empty command template for agent={normalized!r}")
    timeout = timeout_seconds if timeout_seconds is not None else profile.default_timeout_seconds
    if timeout <= 0:
        raise ValueError(f"Agent timeout must be > 0, got {timeout}")
    return AgentRoute(profile=profile, command_template=template, timeout_seconds=timeout)


def normalize_agent(value: str) -> str:
    return value.strip().lower()


def validate_supported_agent(agent: str) -> None:
    if agent in SUPPORTED_AGENTS:
        return
    raise ValueError(f"Invalid AI agent: {agent!r}. Must be one of {', '.join(SUPPORTED_AGENTS)}.")
