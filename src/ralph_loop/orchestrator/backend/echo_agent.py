"""Local deterministic agent for CLI backend integration tests.

Reads the composed prompt, picks the first task from the backlog block,
touches a file so there is something to commit and prints the completion
signal line.
"""

from __future__ import annotations

import argparse
import json
import re
import sys
import time
from pathlib import Path

_BACKLOG_BLOCK = re.compile(r"```json\s*(\[.*?\])\s*```", re.DOTALL)


def main(argv: list[str] | None = None) -> int:
    """Run the fake agent."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--prompt-file", required=True)
    parser.add_argument("--task-id", default=None, help="Report this id instead of the first task.")
    parser.add_argument("--no-signal", action="store_true", help="Omit the completion line.")
    parser.add_argument("--no-change", action="store_true", help="Do not touch the workdir.")
    parser.add_argument("--message", default="", help="Extra line printed before exiting.")
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--exit-code", type=int, default=0)
    args = parser.parse_args(argv)

    prompt = Path(args.prompt_file).read_text("utf-8")
    backlog = _read_backlog(prompt)
    task_id = args.task_id or (backlog[0]["id"] if backlog else None)

    print(f"echo agent: {len(backlog)} task(s) in backlog")
    if args.sleep:
        time.sleep(args.sleep)
    if task_id is not None and not args.no_change:
        Path(f"echo_agent_{task_id}.txt").write_text(f"implemented {task_id}\n", "utf-8")
        print(f"echo agent: implemented {task_id}")
    if args.message:
        print(args.message)
    if task_id is not None and not args.no_signal:
        print(f"COMPLETED_TASK_ID: {task_id}")
    sys.stdout.flush()
    return args.exit_code


def _read_backlog(prompt: str) -> list[dict[str, object]]:
    match = _BACKLOG_BLOCK.search(prompt)
    if match is None:
        return []
    try:
        payload = json.loads(match.group(1))
    except json.JSONDecodeError:
        return []
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
