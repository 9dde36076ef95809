"""Autonomous coding-agent loop that works a task backlog until it is empty."""

__version__ = "0.1.0"
