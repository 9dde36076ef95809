"""Agent process runners."""

from ralph_loop.orchestrator.backend.base import AgentBackend, BackendRunRequest, BackendRunResult
from ralph_loop.orchestrator.backend.cli_backend import BackendRunError, CliAgentBackend

__all__ = [
    "AgentBackend",
    "BackendRunError",
    "BackendRunRequest",
    "BackendRunResult",
    "CliAgentBackend",
]
