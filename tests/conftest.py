"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import subprocess
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

ECHO_AGENT_COMMAND_TEMPLATE = (
    f"{sys.executable} -m ralph_loop.orchestrator.backend.echo_agent --prompt-file {{prompt_file}}"
)


def _run_git(repo: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return completed.stdout


@pytest.fixture()
def echo_agent_template() -> str:
    """Command template that runs the local echo agent."""

    return ECHO_AGENT_COMMAND_TEMPLATE


@pytest.fixture()
def git() -> Callable[..., str]:
    """Return a helper that runs git in a repository and returns stdout."""

    return _run_git


@pytest.fixture(autouse=True)
def _isolated_ralph_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("RALPH_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def write_prd() -> Callable[[Path, list[dict[str, object]]], Path]:
    """Return a helper that writes a task file under ``<root>/plans/prd.json``."""

    def _write(root: Path, tasks: list[dict[str, object]]) -> Path:
        path = root / "plans" / "prd.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(tasks, indent=2) + "\n", "utf-8")
        return path

    return _write


@pytest.fixture()
def git_repo(tmp_path: Path) -> Path:
    """Fresh git repository with one initial commit."""

    repo = tmp_path / "repo"
    repo.mkdir()
    _run_git(repo, "init", "-q")
    _run_git(repo, "config", "user.name", "Loop Tests")
    _run_git(repo, "config", "user.email", "loop-tests@example.invalid")
    _run_git(repo, "config", "commit.gpgsign", "false")
    _run_git(repo, "config", "core.hooksPath", ".git/hooks")
    (repo / "README.md").write_text("fixture\n", "utf-8")
    _run_git(repo, "add", "-A")
    _run_git(repo, "commit", "-q", "-m", "initial")
    return repo
