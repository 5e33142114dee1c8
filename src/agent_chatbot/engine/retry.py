"""Exponential-backoff retry with pluggable retryability classification."""

from __future__ import annotations

import errno
import logging
import socket
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from agent_chatbot.engine.errors import (
    ExecutionFailedError,
    ToolNotFoundError,
    UnknownToolError,
)
from agent_chatbot.engine.failure_classifier import classify_tool_failure

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERROR_CODES: frozenset[str] = frozenset(
    {"ECONNREFUSED", "ECONNRESET", "ETIMEDOUT", "ENOTFOUND"},
)
_RETRYABLE_ERRNOS: frozenset[int] = frozenset(
    {errno.ECONNREFUSED, errno.ECONNRESET, errno.ETIMEDOUT},
)
_NETWORK_ERROR_TYPES: tuple[type[BaseException], ...] = (
    ConnectionRefusedError,
    ConnectionResetError,
    TimeoutError,
    socket.gaierror,
)
TRANSIENT_GIT_PHRASES: tuple[str, ...] = (
    "Could not resolve host",
    "Connection timed out",
    "Operation timed out",
)


class RetryError(RuntimeError):
    """All attempts failed, or the classifier refused to retry."""

    def __init__(self, message: str, *, last_error: BaseException, attempts: int) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Backoff parameters for ``with_retry``."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0

    def delays(self) -> list[float]:
        """Waits between consecutive attempts."""

        result: list[float] = []
        delay = self.initial_delay
        for _ in range(max(self.max_attempts - 1, 0)):
            result.append(delay)
            delay = min(delay * self.backoff_multiplier, self.max_delay)
        return result


def with_retry(  # noqa: PLR0913
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_multiplier: float = 2.0,
    should_retry: Callable[[BaseException], bool] | None = None,
    on_retry: Callable[[BaseException, int], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation`` until it succeeds or retrying stops making sense.

    The first wait is ``initial_delay``; each following one is multiplied by
    ``backoff_multiplier`` and capped at ``max_delay``. ``on_retry`` sees the
    failing error and the 1-based attempt number before each wait.
    """

    attempts = max(1, max_attempts)
    delay = initial_delay
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except Exception as error:  # noqa: BLE001
            retry_allowed = should_retry(error) if should_retry is not None else True
            if attempt == attempts or not retry_allowed:
                raise RetryError(
                    f"Failed after {attempt} attempts: {error}",
                    last_error=error,
                    attempts=attempt,
                ) from error

            if on_retry is not None:
                try:
                    on_retry(error, attempt)
                except Exception:
                    logger.exception("on_retry callback failed")

            sleep(delay)
            delay = min(delay * backoff_multiplier, max_delay)

    raise AssertionError("unreachable")  # pragma: no cover


def with_retry_policy(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    should_retry: Callable[[BaseException], bool] | None = None,
    on_retry: Callable[[BaseException, int], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    return with_retry(
        operation,
        max_attempts=policy.max_attempts,
        initial_delay=policy.initial_delay,
        max_delay=policy.max_delay,
        backoff_multiplier=policy.backoff_multiplier,
        should_retry=should_retry,
        on_retry=on_retry,
        sleep=sleep,
    )


def is_retryable_error(error: BaseException) -> bool:  # noqa: PLR0911
    """Default classifier: network, 5xx/429, timeouts and flaky git transport."""

    if isinstance(error, _NETWORK_ERROR_TYPES):
        return True
    if isinstance(error, OSError) and error.errno in _RETRYABLE_ERRNOS:
        return True
    if getattr(error, "code", None) in RETRYABLE_ERROR_CODES:
        return True

    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if isinstance(status, int) and (500 <= status < 600 or status == 429):  # noqa: PLR2004
        return True

    message = str(error)
    if "timeout" in message.lower():
        return True
    return any(phrase in message for phrase in TRANSIENT_GIT_PHRASES)


def should_retry_tool_error(error: BaseException) -> bool:
    """Engine classifier layered over ``is_retryable_error``."""

    if getattr(error, "timed_out", False):
        return False
    if isinstance(error, (UnknownToolError, ToolNotFoundError)):
        return False
    if isinstance(error, ExecutionFailedError):
        if not error.transient:
            return False
        classification = classify_tool_failure(
            tool="tool",
            exit_code=error.exit_code,
            stderr=error.stderr,
        )
        return classification.retryable
    return is_retryable_error(error)
