from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import allure
import pytest

from ralph_loop.orchestrator.models import CheckStatus
from ralph_loop.orchestrator.verifier import (
    NOT_FOUND_EXIT_CODE,
    CommandOutcome,
    Verifier,
    run_command,
)

pytestmark = [
    allure.epic("Ralph Loop"),
    allure.feature("Verifier"),
]


class _RecordingRunner:
    def __init__(self, exit_codes: dict[tuple[str, ...], int] | None = None) -> None:
        self.exit_codes = exit_codes or {}
        self.calls: list[tuple[str, ...]] = []

    def __call__(
        self,
        argv: Sequence[str],
        cwd: Path,
        timeout_seconds: int | None,
    ) -> CommandOutcome:
        key = tuple(argv)
        self.calls.append(key)
        return CommandOutcome(exit_code=self.exit_codes.get(key, 0), output=f"ran {' '.join(key)}")


def _node_project(root: Path, scripts: Sequence[str] = ("typecheck", "test", "lint")) -> None:
    manifest = {"name": "demo", "scripts": {name: f"run-{name}" for name in scripts}}
    (root / "package.json").write_text(json.dumps(manifest), "utf-8")


def _hook(root: Path, body: str, *, executable: bool = True) -> Path:
    path = root / "ralph-post-hook.sh"
    path.write_text(f"#!/bin/sh\n{body}\n", "utf-8")
    path.chmod(0o755 if executable else 0o644)
    return path


def _verifier(root: Path, runner, *, which=lambda name: f"/usr/bin/{name}", **kwargs) -> Verifier:
    return Verifier(
        workdir=root,
        hook_path=root / "ralph-post-hook.sh",
        runner=runner,
        which=which,
        **kwargs,
    )


def test_executable_hook_decides_alone(tmp_path: Path) -> None:
    _node_project(tmp_path)
    hook = _hook(tmp_path, "exit 0")
    runner = _RecordingRunner()

    outcome = _verifier(tmp_path, runner).verify()

    assert outcome.passed is True
    assert outcome.used_custom_hook is True
    assert runner.calls == [(str(hook.resolve()),)]
    assert outcome.summary() == "Custom verification script passed"


def test_failing_hook_is_blocking_even_when_checks_would_pass(tmp_path: Path) -> None:
    _node_project(tmp_path)
    hook = _hook(tmp_path, "exit 1")
    runner = _RecordingRunner({(str(hook.resolve()),): 1})

    outcome = _verifier(tmp_path, runner).verify()

    assert outcome.passed is False
    assert outcome.summary() == "Custom verification script failed"
    assert len(runner.calls) == 1


def test_real_hook_exit_code_is_used(tmp_path: Path) -> None:
    _hook(tmp_path, "echo checking\nexit 3")

    outcome = _verifier(tmp_path, run_command).verify()

    assert outcome.passed is False
    assert outcome.checks[0].exit_code == 3
    assert "checking" in outcome.checks[0].detail


def test_non_executable_hook_is_skipped(tmp_path: Path) -> None:
    _hook(tmp_path, "exit 1", executable=False)
    _node_project(tmp_path, scripts=("test",))
    runner = _RecordingRunner()

    outcome = _verifier(tmp_path, runner).verify()

    assert outcome.passed is True
    assert outcome.used_custom_hook is False
    assert runner.calls == [("pnpm", "test")]


def test_no_checks_run_passes_with_warning(tmp_path: Path) -> None:
    outcome = _verifier(tmp_path, _RecordingRunner()).verify()

    assert outcome.passed is True
    assert outcome.checks_run == 0
    assert outcome.summary() == "No verification checks were run"
    assert any("No verification checks were run" in warning for warning in outcome.warnings)


def test_node_lint_failure_is_a_warning(tmp_path: Path) -> None:
    _node_project(tmp_path)
    runner = _RecordingRunner({("pnpm", "lint"): 1})

    outcome = _verifier(tmp_path, runner).verify()

    assert outcome.passed is True
    assert runner.calls == [("pnpm", "typecheck"), ("pnpm", "test"), ("pnpm", "lint")]
    assert [check.status for check in outcome.checks] == [
        CheckStatus.PASSED,
        CheckStatus.PASSED,
        CheckStatus.WARNING,
    ]
    assert outcome.summary() == "All checks passed (1 non-blocking warning(s))"


def test_lint_can_be_made_blocking(tmp_path: Path) -> None:
    _node_project(tmp_path)
    runner = _RecordingRunner({("pnpm", "lint"): 1})

    outcome = _verifier(tmp_path, runner, lint_blocking=True).verify()

    assert outcome.passed is False
    assert outcome.summary() == "node lint failed (exit code 1)"


def test_blocking_failure_stops_remaining_checks(tmp_path: Path) -> None:
    _node_project(tmp_path)
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'demo'\n", "utf-8")
    runner = _RecordingRunner({("pnpm", "test"): 1})

    outcome = _verifier(tmp_path, runner).verify()

    assert outcome.passed is False
    assert runner.calls == [("pnpm", "typecheck"), ("pnpm", "test")]
    assert outcome.failed_check is not None
    assert outcome.failed_check.name == "test"
    assert outcome.summary() == "node test failed (exit code 1)"


def test_only_declared_node_scripts_run_with_configured_runner(tmp_path: Path) -> None:
    _node_project(tmp_path, scripts=("test",))
    runner = _RecordingRunner()

    _verifier(tmp_path, runner, node_runner="npm").verify()

    assert runner.calls == [("npm", "test")]


def test_rust_fmt_is_non_blocking(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text("[package]\nname = 'demo'\n", "utf-8")
    runner = _RecordingRunner({("cargo", "fmt", "--", "--check"): 1})

    outcome = _verifier(tmp_path, runner).verify()

    assert outcome.passed is True
    assert runner.calls == [("cargo", "test"), ("cargo", "fmt", "--", "--check")]
    assert outcome.checks[1].status == CheckStatus.WARNING


@pytest.mark.parametrize("marker", ["pyproject.toml", "requirements.txt"])
def test_python_project_runs_pytest(tmp_path: Path, marker: str) -> None:
    (tmp_path / marker).write_text("", "utf-8")
    runner = _RecordingRunner()

    outcome = _verifier(tmp_path, runner).verify()

    assert outcome.passed is True
    assert runner.calls == [("pytest",)]


def test_python_project_without_pytest_only_warns(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text("", "utf-8")
    runner = _RecordingRunner()

    outcome = _verifier(tmp_path, runner, which=lambda _name: None).verify()

    assert outcome.passed is True
    assert runner.calls == []
    assert any("pytest not found" in warning for warning in outcome.warnings)


def test_run_command_reports_missing_executable(tmp_path: Path) -> None:
    outcome = run_command([str(tmp_path / "missing-tool")], tmp_path, None)

    assert outcome.exit_code == NOT_FOUND_EXIT_CODE
    assert "command not found" in outcome.output
