"""Post-iteration verification: custom hook first, else per-ecosystem checks."""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ralph_loop.orchestrator.models import CheckResult, CheckStatus, VerificationOutcome
from ralph_loop.orchestrator.sanitization import sanitize_preview

logger = logging.getLogger(__name__)

NOT_FOUND_EXIT_CODE = 127
NODE_RUNNER_TOKEN = "{node_runner}"


class CheckRole(str, Enum):
    TYPECHECK = "typecheck"
    TEST = "test"
    LINT = "lint"


@dataclass(slots=True, frozen=True)
class CheckSpec:
    """One command of an ecosystem's check sequence."""

    name: str
    role: CheckRole
    argv: tuple[str, ...]
    requires_script: str | None = None
    requires_executable: str | None = None


@dataclass(slots=True, frozen=True)
class Ecosystem:
    """Marker files that identify a project type and the checks it gets."""

    name: str
    markers: tuple[str, ...]
    checks: tuple[CheckSpec, ...]


ECOSYSTEMS: tuple[Ecosystem, ...] = (
    Ecosystem(
        name="node",
        markers=("package.json",),
        checks=(
            CheckSpec(
                "typecheck",
                CheckRole.TYPECHECK,
                (NODE_RUNNER_TOKEN, "typecheck"),
                requires_script="typecheck",
            ),
            CheckSpec("test", CheckRole.TEST, (NODE_RUNNER_TOKEN, "test"), requires_script="test"),
            CheckSpec("lint", CheckRole.LINT, (NODE_RUNNER_TOKEN, "lint"), requires_script="lint"),
        ),
    ),
    Ecosystem(
        name="rust",
        markers=("Cargo.toml",),
        checks=(
            CheckSpec("cargo test", CheckRole.TEST, ("cargo", "test")),
            CheckSpec("cargo fmt", CheckRole.LINT, ("cargo", "fmt", "--", "--check")),
        ),
    ),
    Ecosystem(
        name="python",
        markers=("pyproject.toml", "requirements.txt"),
        checks=(
            CheckSpec("pytest", CheckRole.TEST, ("pytest",), requires_executable="pytest"),
        ),
    ),
)


@dataclass(slots=True)
class CommandOutcome:
    exit_code: int | None
    output: str
    timed_out: bool = False


CommandRunner = Callable[[Sequence[str], Path, int | None], CommandOutcome]


def run_command(argv: Sequence[str], cwd: Path, timeout_seconds: int | None) -> CommandOutcome:
    """Run one check command, capturing combined output."""

    try:
        completed = subprocess.run(  # noqa: S603
            list(argv),
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
            check=False,
        )
    except FileNotFoundError:
        return CommandOutcome(exit_code=NOT_FOUND_EXIT_CODE, output=f"command not found: {argv[0]}")
    except subprocess.TimeoutExpired as error:
        output = error.stdout if isinstance(error.stdout, str) else ""
        return CommandOutcome(exit_code=None, output=output, timed_out=True)
    return CommandOutcome(
        exit_code=completed.returncode,
        output=f"{completed.stdout}{completed.stderr}",
    )


class Verifier:
    """Evaluates verification strategies in precedence order.

    A custom hook, when present and executable, decides alone. Otherwise every
    ecosystem whose marker file exists contributes its checks; type checks and
    tests are blocking, lint is blocking only when configured so. The first
    blocking failure ends the run of checks.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        workdir: Path,
        hook_path: Path,
        lint_blocking: bool = False,
        node_runner: str = "pnpm",
        check_timeout_seconds: int = 0,
        ecosystems: tuple[Ecosystem, ...] = ECOSYSTEMS,
        runner: CommandRunner = run_command,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.workdir = workdir
        self.hook_path = hook_path
        self.lint_blocking = lint_blocking
        self.node_runner = node_runner
        self.check_timeout_seconds = check_timeout_seconds or None
        self.ecosystems = ecosystems
        self.runner = runner
        self.which = which

    def verify(self) -> VerificationOutcome:
        logger.info("Running verification checks...")
        hook_outcome = self._run_custom_hook()
        if hook_outcome is not None:
            return hook_outcome

        outcome = VerificationOutcome(passed=True)
        for ecosystem in self.ecosystems:
            if not any((self.workdir / marker).is_file() for marker in ecosystem.markers):
                continue
            logger.info("Detected %s project", ecosystem.name)
            if not self._run_ecosystem(ecosystem, outcome):
                return outcome

        if not outcome.checks:
            warning = (
                "No verification checks were run "
                "(custom script missing and no known project structure detected)"
            )
            logger.warning(warning)
            outcome.warnings.append(warning)
        else:
            logger.info("All verification checks passed")
        return outcome

    def _run_custom_hook(self) -> VerificationOutcome | None:
        if not self.hook_path.is_file():
            return None
        if not os.access(self.hook_path, os.X_OK):
            logger.warning("Found %s but it is not executable. Skipped.", self.hook_path)
            return None

        logger.info("Found custom verification script: %s", self.hook_path)
        result = self.runner(
            [str(self.hook_path.resolve())],
            self.workdir,
            self.check_timeout_seconds,
        )
        passed = result.exit_code == 0
        check = CheckResult(
            name=self.hook_path.name,
            ecosystem="custom",
            status=CheckStatus.PASSED if passed else CheckStatus.FAILED,
            blocking=True,
            exit_code=result.exit_code,
            detail=_detail(result),
        )
        if passed:
            logger.info("Custom verification script passed")
        else:
            logger.error("Custom verification script failed: %s", check.detail)
        return VerificationOutcome(passed=passed, checks=[check], used_custom_hook=True)

    def _run_ecosystem(self, ecosystem: Ecosystem, outcome: VerificationOutcome) -> bool:
        """Run one ecosystem's checks; return ``False`` on a blocking failure."""

        scripts: dict[str, object] = {}
        if ecosystem.name == "node":
            scripts = _package_scripts(self.workdir / "package.json")
        for spec in ecosystem.checks:
            if spec.requires_script is not None and spec.requires_script not in scripts:
                continue
            executable = spec.requires_executable
            if executable is not None and self.which(executable) is None:
                warning = f"{executable} not found, skipping {ecosystem.name} {spec.name}"
                logger.warning(warning)
                outcome.warnings.append(warning)
                continue

            blocking = spec.role != CheckRole.LINT or self.lint_blocking
            argv = [self.node_runner if part == NODE_RUNNER_TOKEN else part for part in spec.argv]
            logger.info("Running %s %s: %s", ecosystem.name, spec.name, " ".join(argv))
            result = self.runner(argv, self.workdir, self.check_timeout_seconds)

            if result.exit_code == 0:
                status = CheckStatus.PASSED
            elif blocking:
                status = CheckStatus.FAILED
            else:
                status = CheckStatus.WARNING
            check = CheckResult(
                name=spec.name,
                ecosystem=ecosystem.name,
                status=status,
                blocking=blocking,
                exit_code=result.exit_code,
                detail=_detail(result),
            )
            outcome.checks.append(check)

            if status == CheckStatus.FAILED:
                logger.error("%s %s failed:\n%s", ecosystem.name, spec.name, check.detail)
                outcome.passed = False
                return False
            if status == CheckStatus.WARNING:
                warning = f"{ecosystem.name} {spec.name} issues found (non-blocking)"
                logger.warning(warning)
                outcome.warnings.append(warning)
        return True


def _package_scripts(manifest_path: Path) -> dict[str, object]:
    try:
        payload = json.loads(manifest_path.read_text("utf-8"))
    except (OSError, json.JSONDecodeError) as error:
        logger.warning("Cannot read scripts from %s: %s", manifest_path, error)
        return {}
    if not isinstance(payload, dict):
        return {}
    scripts = payload.get("scripts")
    return scripts if isinstance(scripts, dict) else {}


def _detail(result: CommandOutcome) -> str:
    if result.timed_out:
        return "timed out"
    return sanitize_preview(result.output, max_chars=1_000)
