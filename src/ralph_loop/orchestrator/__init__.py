"""Single-task-at-a-time loop that drives a CLI coding agent through a backlog.

One iteration: gather context, invoke the agent, scrape the completion signal,
verify, record, commit. Any failure halts the run so the working tree never
advances past a red build.
"""
