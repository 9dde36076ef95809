"""Subprocess-based backend runner for CLI agents."""

from __future__ import annotations

import codecs
import os
import pty
import select
import shlex
import subprocess
import tempfile
import time
from pathlib import Path
from typing import TextIO

from ralph_loop.orchestrator.backend.base import BackendRunRequest, BackendRunResult

TIMEOUT_EXIT_CODE = 124

_POLL_SECONDS = 0.1
_READ_CHUNK_BYTES = 4096


class BackendRunError(RuntimeError):
    """Backend execution error with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class CliAgentBackend:
    """Execute an agent command template and capture everything it prints.

    The prompt goes through a private scratch file so quotes, newlines and
    code fences survive intact; templates reference it as ``{prompt_file}``
    or receive its content as a single ``{prompt}`` argument.
    """

    def run(self, request: BackendRunRequest) -> BackendRunResult:
        request.transcript_path.parent.mkdir(parents=True, exist_ok=True)
        prompt_file = _write_prompt_file(request.prompt)
        try:
            run_args = _build_run_args(
                command_template=request.command_template,
                prompt=request.prompt,
                prompt_file=prompt_file,
                workdir=request.workdir,
            )

            env = os.environ.copy()
            env.update(request.env)
            env["RALPH_AI_AGENT"] = request.agent
            if request.needs_terminal:
                env.setdefault("TERM", "xterm-256color")

            start_monotonic = time.monotonic()
            try:
                with request.transcript_path.open("w", encoding="utf-8") as transcript:
                    if request.needs_terminal:
                        exit_code, timed_out = _run_in_pseudo_terminal(
                            run_args=run_args,
                            cwd=request.workdir,
                            env=env,
                            timeout_seconds=request.timeout_seconds,
                            transcript=transcript,
                        )
                    else:
                        exit_code, timed_out = _run_with_pipes(
                            run_args=run_args,
                            cwd=request.workdir,
                            env=env,
                            timeout_seconds=request.timeout_seconds,
                            transcript=transcript,
                        )
            except FileNotFoundError as error:
                raise BackendRunError(
                    f"CLI backend command not found: {run_args[0]}",
                    transient=False,
                ) from error
            except OSError as error:
                raise BackendRunError(
                    f"CLI backend failed to start: {error}",
                    transient=True,
                ) from error
            elapsed = time.monotonic() - start_monotonic
        finally:
            prompt_file.unlink(missing_ok=True)

        output = request.transcript_path.read_text("utf-8", errors="replace")
        return BackendRunResult(
            exit_code=exit_code,
            timed_out=timed_out,
            output=output,
            transcript_path=request.transcript_path,
            elapsed_seconds=elapsed,
        )


def _write_prompt_file(prompt: str) -> Path:
    fd, name = tempfile.mkstemp(prefix="ralph_prompt_", suffix=".txt")
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(prompt)
    return Path(name)


def _build_run_args(
    *,
    command_template: str,
    prompt: str,
    prompt_file: Path,
    workdir: Path,
) -> list[str]:
    stripped = command_template.strip()
    if not stripped:
        raise BackendRunError("CLI backend command template is empty.", transient=False)
    if "{prompt}" not in stripped and "{prompt_file}" not in stripped:
        raise BackendRunError(
            "CLI backend command template must include {prompt} or {prompt_file}.",
            transient=False,
        )

    try:
        rendered = stripped.format(
            prompt=shlex.quote(prompt),
            prompt_file=shlex.quote(str(prompt_file)),
            workdir=shlex.quote(str(workdir)),
        )
    except (KeyError, IndexError) as error:
        raise BackendRunError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise BackendRunError(
            "CLI backend command template rendered empty command.",
            transient=False,
        )
    return argv


def _run_with_pipes(
    *,
    run_args: list[str],
    cwd: Path,
    env: dict[str, str],
    timeout_seconds: int,
    transcript: TextIO,
) -> tuple[int, bool]:
    process = subprocess.Popen(  # noqa: S603
        run_args,
        cwd=cwd,
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=transcript,
        stderr=subprocess.STDOUT,
        text=True,
    )
    start_monotonic = time.monotonic()

    while True:
        returncode = process.poll()
        if returncode is not None:
            return returncode, False

        if time.monotonic() - start_monotonic >= timeout_seconds:
            _terminate_process(process)
            return TIMEOUT_EXIT_CODE, True

        time.sleep(_POLL_SECONDS)


def _run_in_pseudo_terminal(
    *,
    run_args: list[str],
    cwd: Path,
    env: dict[str, str],
    timeout_seconds: int,
    transcript: TextIO,
) -> tuple[int, bool]:
    """Run attached to a pty so interactive CLIs behave as in a terminal."""

    master_fd, slave_fd = pty.openpty()
    try:
        try:
            process = subprocess.Popen(  # noqa: S603
                run_args,
                cwd=cwd,
                env=env,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                close_fds=True,
                start_new_session=True,
            )
        finally:
            os.close(slave_fd)
        return _pump_terminal(
            process=process,
            master_fd=master_fd,
            timeout_seconds=timeout_seconds,
            transcript=transcript,
        )
    finally:
        os.close(master_fd)


def _pump_terminal(
    *,
    process: subprocess.Popen[bytes],
    master_fd: int,
    timeout_seconds: int,
    transcript: TextIO,
) -> tuple[int, bool]:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    deadline = time.monotonic() + timeout_seconds

    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            _terminate_process(process)
            return TIMEOUT_EXIT_CODE, True

        ready, _, _ = select.select([master_fd], [], [], min(remaining, _POLL_SECONDS))
        if ready:
            try:
                chunk = os.read(master_fd, _READ_CHUNK_BYTES)
            except OSError:
                # Linux raises EIO once the child side of the pty is closed.
                chunk = b""
            if not chunk:
                break
            transcript.write(decoder.decode(chunk).replace("\r\n", "\n"))
            transcript.flush()
            continue
        if process.poll() is not None:
            break

    transcript.write(decoder.decode(b"", final=True))
    try:
        return process.wait(timeout=max(deadline - time.monotonic(), _POLL_SECONDS)), False
    except subprocess.TimeoutExpired:
        _terminate_process(process)
        return TIMEOUT_EXIT_CODE, True


def _terminate_process(process: subprocess.Popen[str] | subprocess.Popen[bytes]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
