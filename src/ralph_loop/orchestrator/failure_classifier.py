"""Deterministic classification of agent transcripts into failure classes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

AGENT_FAILURE_CLASSIFIER_VERSION = 1

_LIMIT_NOTICE_PATTERNS: tuple[str, ...] = ("hit your limit",)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "hit your limit",
    "rate limit",
    "too many requests",
    "usage limit",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "invalid api key",
    "openai_api_key",
    "unauthorized",
    "authentication",
    "please run /login",
)


class AgentFailureClass(str, Enum):
    RATE_LIMIT = "rate_limit"
    ACCESS_OR_AUTH = "access_or_auth"
    NON_ZERO_EXIT = "non_zero_exit"


@dataclass(slots=True)
class AgentFailureClassification:
    """Normalized classification result."""

    failure_class: AgentFailureClass
    reason_code: str
    matched_pattern: str | None


def classify_agent_output(
    *,
    agent: str,
    exit_code: int,
    output: str,
) -> AgentFailureClassification | None:
    """Classify a finished agent run; ``None`` means nothing looks wrong.

    The usage-limit notice counts even on a zero exit code because agents print
    it and exit cleanly. Generic rate-limit and auth markers only count on a
    non-zero exit, since a successful run may legitimately mention them.
    """

    haystack = output.lower()

    patterns = _RATE_LIMIT_PATTERNS if exit_code != 0 else _LIMIT_NOTICE_PATTERNS
    pattern = _first_match(haystack, patterns)
    if pattern is not None:
        return AgentFailureClassification(
            failure_class=AgentFailureClass.RATE_LIMIT,
            reason_code=f"{agent}_rate_limit",
            matched_pattern=pattern,
        )

    if exit_code == 0:
        return None

    pattern = _first_match(haystack, _ACCESS_OR_AUTH_PATTERNS)
    if pattern is not None:
        return AgentFailureClassification(
            failure_class=AgentFailureClass.ACCESS_OR_AUTH,
            reason_code=f"{agent}_access_or_auth",
            matched_pattern=pattern,
        )

    return AgentFailureClassification(
        failure_class=AgentFailureClass.NON_ZERO_EXIT,
        reason_code=f"{agent}_non_zero_exit",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
