from __future__ import annotations

from pathlib import Path

import allure
import pytest

from ralph_loop.orchestrator.commit import COMMIT_TRAILER, CommitManager, build_commit_message
from ralph_loop.orchestrator.errors import CommitError

pytestmark = [
    allure.epic("Ralph Loop"),
    allure.feature("Commit Manager"),
]


def _install_pre_commit(repo: Path, body: str) -> None:
    hook = repo / ".git" / "hooks" / "pre-commit"
    hook.parent.mkdir(parents=True, exist_ok=True)
    hook.write_text(f"#!/bin/sh\n{body}\n", "utf-8")
    hook.chmod(0o755)


def _commit_count(git, repo: Path) -> int:
    return int(git(repo, "rev-list", "--count", "HEAD").strip())


def test_commit_message_layout() -> None:
    assert build_commit_message("fix-login", "Fix login redirect") == (
        "feat: Complete task fix-login\n"
        "\n"
        "Fix login redirect\n"
        "\n"
        "- Implemented feature as specified\n"
        "- Updated PRD to mark task complete\n"
        "- Logged progress\n"
        "\n"
        f"{COMMIT_TRAILER}\n"
    )


def test_commit_stages_everything_and_reports_hash(git_repo: Path, git) -> None:
    (git_repo / "feature.txt").write_text("done\n", "utf-8")
    (git_repo / "README.md").write_text("changed\n", "utf-8")

    result = CommitManager(workdir=git_repo).commit("fix-login", "Fix login redirect")

    assert result.committed is True
    assert result.attempts == 1
    assert result.bypassed_hooks is False
    assert result.commit_hash == git(git_repo, "rev-parse", "HEAD").strip()
    assert git(git_repo, "log", "-1", "--format=%s").strip() == "feat: Complete task fix-login"
    assert COMMIT_TRAILER in git(git_repo, "log", "-1", "--format=%B")
    assert git(git_repo, "status", "--porcelain") == ""


def test_nothing_to_commit_is_not_an_error(git_repo: Path, git) -> None:
    result = CommitManager(workdir=git_repo).commit("noop", "Nothing changed")

    assert result.committed is False
    assert result.nothing_to_commit is True
    assert _commit_count(git, git_repo) == 1


def test_retries_once_after_hook_rewrites_files(git_repo: Path, git) -> None:
    _install_pre_commit(
        git_repo,
        "if ! grep -q formatted work.txt; then echo formatted >> work.txt; exit 1; fi\nexit 0",
    )
    (git_repo / "work.txt").write_text("draft\n", "utf-8")

    result = CommitManager(workdir=git_repo).commit("fmt", "Formatted by hook")

    assert result.committed is True
    assert result.attempts == 2
    assert git(git_repo, "show", "HEAD:work.txt") == "draft\nformatted\n"
    assert _commit_count(git, git_repo) == 2


_ALWAYS_REWRITING_HOOK = "echo run >> .git/hook-runs\necho formatted >> work.txt\nexit 1"


def _hook_runs(repo: Path) -> int:
    return len((repo / ".git" / "hook-runs").read_text("utf-8").splitlines())


def test_hook_that_keeps_rewriting_is_retried_only_once(git_repo: Path, git) -> None:
    _install_pre_commit(git_repo, _ALWAYS_REWRITING_HOOK)
    (git_repo / "work.txt").write_text("draft\n", "utf-8")

    with pytest.raises(CommitError, match="after 2 attempt"):
        CommitManager(workdir=git_repo).commit("fmt", "Hook never settles")

    assert _hook_runs(git_repo) == 2
    assert _commit_count(git, git_repo) == 1


def test_no_verify_follows_failed_retry_when_allowed(git_repo: Path, git) -> None:
    _install_pre_commit(git_repo, _ALWAYS_REWRITING_HOOK)
    (git_repo / "work.txt").write_text("draft\n", "utf-8")

    result = CommitManager(workdir=git_repo, allow_no_verify=True).commit("fmt", "Skip hooks")

    assert result.committed is True
    assert result.attempts == 3
    assert result.bypassed_hooks is True
    assert _hook_runs(git_repo) == 2
    assert _commit_count(git, git_repo) == 2


def test_rejecting_hook_raises_commit_error(git_repo: Path, git) -> None:
    _install_pre_commit(git_repo, "echo 'lint failed' >&2\nexit 1")
    (git_repo / "work.txt").write_text("draft\n", "utf-8")

    with pytest.raises(CommitError, match="lint failed") as error_info:
        CommitManager(workdir=git_repo).commit("bad", "Hook rejects")

    assert any("RALPH_ALLOW_NO_VERIFY" in line for line in error_info.value.remediation)
    assert _commit_count(git, git_repo) == 1


def test_no_verify_fallback_when_allowed(git_repo: Path, git) -> None:
    _install_pre_commit(git_repo, "exit 1")
    (git_repo / "work.txt").write_text("draft\n", "utf-8")

    result = CommitManager(workdir=git_repo, allow_no_verify=True).commit("bypass", "Skip hooks")

    assert result.committed is True
    assert result.bypassed_hooks is True
    assert result.attempts == 2
    assert _commit_count(git, git_repo) == 2
