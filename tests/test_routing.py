from __future__ import annotations

import allure
import pytest

from ralph_loop.orchestrator.routing import (
    DEFAULT_AGENT_TIMEOUT_SECONDS,
    DEFAULT_COMMAND_TEMPLATES,
    resolve_agent_route,
)

pytestmark = [
    allure.epic("Ralph Loop"),
    allure.feature("Agent Routing"),
]


def test_sandboxed_agents_need_terminal() -> None:
    route = resolve_agent_route(
        agent="claude",
        command_templates=DEFAULT_COMMAND_TEMPLATES,
        timeout_seconds=None,
    )

    assert route.agent == "claude"
    assert route.profile.sandboxed is True
    assert route.profile.needs_terminal is True
    assert route.timeout_seconds == DEFAULT_AGENT_TIMEOUT_SECONDS
    assert route.command_template.startswith("docker sandbox run claude")


def test_codex_runs_directly_with_overrides() -> None:
    route = resolve_agent_route(
        agent=" CODEX ",
        command_templates={"codex": "my-codex --prompt-file {prompt_file}"},
        timeout_seconds=30,
    )

    assert route.agent == "codex"
    assert route.profile.sandboxed is False
    assert route.profile.needs_terminal is False
    assert route.command_template == "my-codex --prompt-file {prompt_file}"
    assert route.timeout_seconds == 30


def test_missing_template_falls_back_to_default() -> None:
    route = resolve_agent_route(agent="gemini", command_templates={}, timeout_seconds=None)

    assert route.command_template == DEFAULT_COMMAND_TEMPLATES["gemini"]


def test_unknown_agent_is_rejected() -> None:
    with pytest.raises(ValueError, match="Invalid AI agent: 'copilot'"):
        resolve_agent_route(
            agent="copilot",
            command_templates=DEFAULT_COMMAND_TEMPLATES,
            timeout_seconds=None,
        )


def test_non_positive_timeout_is_rejected() -> None:
    with pytest.raises(ValueError, match="timeout"):
        resolve_agent_route(
            agent="codex",
            command_templates=DEFAULT_COMMAND_TEMPLATES,
            timeout_seconds=0,
        )
