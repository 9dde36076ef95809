"""Docker sandbox probes used before launching sandboxed agents."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

_PROBE_TIMEOUT_SECONDS = 30
_WORKSPACE_COLUMN = 3


def sandbox_available(docker_executable: str = "docker") -> bool:
    """Return whether ``docker sandbox`` is usable on this machine."""

    try:
        completed = subprocess.run(  # noqa: S603
            [docker_executable, "sandbox", "--help"],
            capture_output=True,
            text=True,
            timeout=_PROBE_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return completed.returncode == 0


def find_existing_sandbox(workdir: Path, docker_executable: str = "docker") -> str | None:
    """Return the id of a sandbox already bound to ``workdir``, if any.

    Only used for diagnostics; the sandbox runtime owns the lifecycle.
    """

    try:
        completed = subprocess.run(  # noqa: S603
            [docker_executable, "sandbox", "ls"],
            capture_output=True,
            text=True,
            timeout=_PROBE_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as error:
        logger.debug("docker sandbox ls failed: %s", error)
        return None
    if completed.returncode != 0:
        return None
    return parse_sandbox_listing(completed.stdout, workdir)


def parse_sandbox_listing(listing: str, workdir: Path) -> str | None:
    """Find the row whose workspace column matches ``workdir``."""

    target = str(workdir.resolve())
    for line in listing.splitlines()[1:]:
        columns = line.split()
        if len(columns) <= _WORKSPACE_COLUMN:
            continue
        if columns[_WORKSPACE_COLUMN] == target:
            return columns[0]
    return None
