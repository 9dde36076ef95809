"""Prompt template for one agentic task cycle."""

from __future__ import annotations

import json
from typing import Any

from ralph_loop.orchestrator.completion_signal import COMPLETION_MARKER

TASK_CYCLE_PROMPT = """\
You are an autonomous developer working on this project.

## Your Backlog (Incomplete Tasks)
Review these tasks and determine the highest priority task to work on next based on \
dependencies and context.

```json
{backlog}
```

## Recent Progress History
Here is the recent work done on this project:

```
{progress}
```

## Instructions
1. Analyze the backlog and recent history.
2. Determine the most logical next task based on:
   - Dependencies between tasks (check context field)
   - What has already been completed
   - Logical ordering (foundational tasks before dependent ones)
3. Implement that task completely.
4. After you have successfully implemented and verified the task, you MUST output the \
following line EXACTLY:

   {marker}: <task-id>

   (IMPORTANT: Replace <task-id> with the actual ID string from the backlog above, \
e.g., 'setup-ci' or 'fix-login'. Do NOT use placeholders.)

This output is critical for the orchestration script to track progress.
"""


def build_task_cycle_prompt(*, incomplete_tasks: list[dict[str, Any]], progress: str) -> str:
    """Compose the agent prompt from the backlog and the progress log tail."""

    return TASK_CYCLE_PROMPT.format(
        backlog=json.dumps(incomplete_tasks, ensure_ascii=False, indent=2),
        progress=progress,
        marker=COMPLETION_MARKER,
    )
