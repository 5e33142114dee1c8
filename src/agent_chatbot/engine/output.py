"""Sanitization of tool output and user-facing error text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import partial

from agent_chatbot.engine.errors import ToolNotFoundError, UnknownToolError

TRUNCATION_MARKER = "\n\n[output truncated: maximum output size exceeded]"

_ANSI_SGR = re.compile(r"\x1b\[[0-9;]*m")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")

_PREVIEW_LIMIT = 2_000
# Applied in order; a ``keep`` group survives in front of the mask.
_SECRET_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("token", re.compile(r"(?i)(?P<keep>\bbearer\s+)[a-z0-9._\-]{8,}")),
    ("param", re.compile(r"(?i)(?P<keep>[?&](?:token|key|signature|auth)=)[^&\s]+")),
    (
        "secret",
        re.compile(
            r"(?i)(?P<keep>\b[a-z0-9_]*(?:_key|token|secret)\s*[:=]\s*)['\"]?[^\s'\"&\[]+['\"]?",
        ),
    ),
    ("key", re.compile(r"(?i)\bsk-(?:ant-)?[a-z0-9\-]{8,}")),
    ("token", re.compile(r"\b(?:xox[abprs]-[A-Za-z0-9-]{10,}|gh[pousr]_[A-Za-z0-9]{20,})")),
    ("email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")),
)


def sanitize_output(output: str) -> str:
    """Strip colour codes and control characters, collapse blank-line runs."""

    processed = output.strip()
    processed = _ANSI_SGR.sub("", processed)
    processed = _CONTROL_CHARS.sub("", processed)
    return _EXCESS_BLANK_LINES.sub("\n\n", processed)


def stderr_preview(stderr: str, *, limit: int = _PREVIEW_LIMIT) -> str:
    """One-line stderr excerpt for logs, with credentials and addresses masked."""

    preview = " ".join(stderr.split())
    for label, pattern in _SECRET_PATTERNS:
        preview = pattern.sub(partial(_masked, label), preview)
    if len(preview) > limit:
        return preview[: max(limit - 3, 0)] + "..."
    return preview


def _masked(label: str, match: re.Match[str]) -> str:
    return (match.groupdict().get("keep") or "") + f"[redacted-{label}]"


def format_error(stderr: str, exit_code: int | None, *, background: bool = False) -> str:
    """Turn raw stderr into a message with a hint for the common causes."""

    processed = sanitize_output(stderr)
    if processed:
        if "Permission denied" in processed:
            return f"Permission error: no access to a file or directory\n{processed}"
        if "No such file or directory" in processed:
            return f"File or directory not found\n{processed}"
        if "timeout" in processed.lower():
            return f"Timeout: the operation is taking too long\n{processed}"
        return processed

    prefix = "Background process" if background else "Process"
    return f"{prefix} exited with code {exit_code}"


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """User-facing error summary with an optional fix and help link."""

    message: str
    solution: str | None = None
    help_url: str | None = None


ERROR_CATALOG: dict[str, ErrorInfo] = {
    "TOOL_NOT_FOUND": ErrorInfo(
        message="Tool CLI not found",
        solution=(
            "Install the CLI and make sure it is on PATH.\n"
            "For Claude: download it from https://claude.ai/download, "
            "then verify with `claude --version`."
        ),
        help_url="https://claude.ai/download",
    ),
    "UNKNOWN_TOOL": ErrorInfo(
        message="This tool is not configured",
        solution="Run `agent-chatbot tools list` to see the available tools.",
    ),
    "AUTH_REQUIRED": ErrorInfo(
        message="The tool CLI requires authentication",
        solution="Log in with the tool CLI (for Claude: `claude login`).",
    ),
    "PERMISSION_DENIED": ErrorInfo(
        message="No access to a file or directory",
        solution="Grant the bot's user the required permissions.",
    ),
    "DISK_SPACE_LOW": ErrorInfo(
        message="Not enough disk space",
        solution="Remove unused repositories or increase disk capacity.",
    ),
    "NETWORK_ERROR": ErrorInfo(
        message="A network error occurred",
        solution="Check the internet connection and try again.",
    ),
    "TIMEOUT": ErrorInfo(
        message="The operation timed out",
        solution=(
            "Wait a moment and try again. If it keeps happening, split the task "
            "into smaller pieces."
        ),
    ),
    "RATE_LIMIT": ErrorInfo(
        message="Rate limit reached",
        solution="Wait a moment and try again.",
    ),
}

_GENERIC_SOLUTION = "If the problem persists, contact the administrator."


def get_error_info(code: str) -> ErrorInfo:
    fallback = ErrorInfo(message="An error occurred", solution=_GENERIC_SOLUTION)
    return ERROR_CATALOG.get(code, fallback)


def describe_error(error: BaseException | str) -> ErrorInfo:  # noqa: PLR0911
    """Guess the catalog entry that best explains ``error``."""

    if isinstance(error, UnknownToolError):
        return get_error_info("UNKNOWN_TOOL")
    if isinstance(error, ToolNotFoundError):
        return get_error_info("TOOL_NOT_FOUND")

    text = str(error).lower()
    if text.startswith("unknown tool"):
        return get_error_info("UNKNOWN_TOOL")
    if "command not found" in text or "not found. check" in text:
        return get_error_info("TOOL_NOT_FOUND")
    if "permission denied" in text or "eacces" in text:
        return get_error_info("PERMISSION_DENIED")
    if "authentication" in text or "unauthorized" in text:
        return get_error_info("AUTH_REQUIRED")
    if "timeout" in text or "timed out" in text:
        return get_error_info("TIMEOUT")
    if "rate limit" in text or "too many requests" in text:
        return get_error_info("RATE_LIMIT")
    if "network" in text or "could not resolve host" in text:
        return get_error_info("NETWORK_ERROR")
    if "no space" in text or "enospc" in text:
        return get_error_info("DISK_SPACE_LOW")
    return ErrorInfo(message="An error occurred", solution=f"Details: {error}")


def format_error_info(info: ErrorInfo) -> str:
    """Render an ``ErrorInfo`` as a multi-line chat message."""

    formatted = f"Error: {info.message}"
    if info.solution:
        formatted += f"\n\nHow to fix:\n{info.solution}"
    if info.help_url:
        formatted += f"\n\nMore: {info.help_url}"
    return formatted
