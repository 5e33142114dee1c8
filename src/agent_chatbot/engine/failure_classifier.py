"""Deterministic tool failure classification for the retry policy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

TOOL_FAILURE_CLASSIFIER_VERSION = 1


class FailureClass(str, Enum):
    """Normalized failure classes used by retry policy."""

    TOOL_NOT_FOUND = "tool_not_found"
    ACCESS_OR_AUTH = "access_or_auth"
    PERMISSION_DENIED = "permission_denied"
    MISSING_PATH = "missing_path"
    BILLING_OR_QUOTA = "billing_or_quota"
    RATE_LIMIT_TRANSIENT = "rate_limit_transient"
    TIMEOUT = "timeout"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_FAILURE = "backend_failure"


_RETRYABLE_CLASSES = frozenset(
    {
        FailureClass.RATE_LIMIT_TRANSIENT,
        FailureClass.TIMEOUT,
        FailureClass.BACKEND_TRANSIENT,
        FailureClass.BACKEND_FAILURE,
    },
)

TOOL_NOT_FOUND_PATTERNS: tuple[str, ...] = (
    "command not found",
    "executable file not found",
    "is not recognized as an internal or external command",
    "is not installed",
    "not installed",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "invalid api key",
    "authentication",
    "not logged in",
    "please log in",
    "forbidden",
)
_PERMISSION_PATTERNS: tuple[str, ...] = (
    "permission denied",
    "operation not permitted",
    "eacces",
)
_MISSING_PATH_PATTERNS: tuple[str, ...] = ("no such file or directory",)
_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "insufficient",
    "billing",
    "credits",
    "usage limit",
)
_RATE_LIMIT_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "429",
    "please retry",
    "try again later",
)
_TIMEOUT_PATTERNS: tuple[str, ...] = (
    "timeout",
    "timed out",
)
_GENERIC_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "temporarily unavailable",
    "temporary failure",
    "connection reset",
    "connection refused",
    "network error",
    "could not resolve host",
    "overloaded",
)

_RULES: tuple[tuple[FailureClass, tuple[str, ...]], ...] = (
    (FailureClass.TOOL_NOT_FOUND, TOOL_NOT_FOUND_PATTERNS),
    (FailureClass.ACCESS_OR_AUTH, _ACCESS_OR_AUTH_PATTERNS),
    (FailureClass.PERMISSION_DENIED, _PERMISSION_PATTERNS),
    (FailureClass.MISSING_PATH, _MISSING_PATH_PATTERNS),
    (FailureClass.BILLING_OR_QUOTA, _BILLING_OR_QUOTA_PATTERNS),
    (FailureClass.RATE_LIMIT_TRANSIENT, _RATE_LIMIT_TRANSIENT_PATTERNS),
    (FailureClass.TIMEOUT, _TIMEOUT_PATTERNS),
    (FailureClass.BACKEND_TRANSIENT, _GENERIC_TRANSIENT_PATTERNS),
)


@dataclass(slots=True)
class ToolFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    reason_code: str
    matched_pattern: str | None

    @property
    def retryable(self) -> bool:
        return self.failure_class in _RETRYABLE_CLASSES


def classify_tool_failure(
    *,
    tool: str,
    exit_code: int | None,
    stderr: str,
    stdout: str = "",
) -> ToolFailureClassification:
    """Classify a non-zero tool exit by the first matching pattern table."""

    haystack = f"{stderr}\n{stdout}".lower()
    for failure_class, patterns in _RULES:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return ToolFailureClassification(
                failure_class=failure_class,
                reason_code=f"{tool}_{failure_class.value}",
                matched_pattern=pattern,
            )

    return ToolFailureClassification(
        failure_class=FailureClass.BACKEND_FAILURE,
        reason_code=f"{tool}_exit_{exit_code}",
        matched_pattern=None,
    )


def is_tool_missing(stderr: str, command: str | None = None) -> bool:
    """True when stderr says the executable (or ``command``) is missing or not installed."""

    lowered = stderr.lower()
    if _first_match(lowered, TOOL_NOT_FOUND_PATTERNS) is not None:
        return True
    return command is not None and f"{command.lower()}: not found" in lowered


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
