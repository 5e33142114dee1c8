"""Collaborator-facing facade over registry, executor and retry policy."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any

from agent_chatbot.engine.commands import PrivilegePolicy
from agent_chatbot.engine.errors import UnknownToolError
from agent_chatbot.engine.executor import (
    DEFAULT_MAX_OUTPUT_SIZE,
    ActiveProcessSet,
    BackgroundCallback,
    ExecutionRequest,
    ExecutionResult,
    ProcessExecutor,
    StreamCallback,
)
from agent_chatbot.engine.registry import FALLBACK_TOOL_NAME, ToolDefinition, ToolRegistry
from agent_chatbot.engine.retry import (
    RetryError,
    RetryPolicy,
    should_retry_tool_error,
    with_retry_policy,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from agent_chatbot.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_RETRY_POLICY = RetryPolicy(
    max_attempts=3,
    initial_delay=2.0,
    max_delay=30.0,
    backoff_multiplier=2.0,
)
_UNEXPECTED_ERROR = "An unexpected error occurred"


class ToolCliClient:
    """Send prompts to registered CLI tools and normalize every outcome."""

    def __init__(  # noqa: PLR0913
        self,
        tool_configs: Mapping[str, Mapping[str, Any]] | None = None,
        default_tool_name: str = FALLBACK_TOOL_NAME,
        timeout_seconds: float = 0,
        max_output_size: int = DEFAULT_MAX_OUTPUT_SIZE,
        *,
        retry_policy: RetryPolicy = DEFAULT_CLIENT_RETRY_POLICY,
        privilege_policy: PrivilegePolicy | None = None,
        active_processes: ActiveProcessSet | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._registry = ToolRegistry(tool_configs, default_tool_name)
        self.retry_policy = retry_policy
        self.executor = ProcessExecutor(
            timeout_seconds=timeout_seconds,
            max_output_size=max_output_size,
            privilege_policy=privilege_policy or PrivilegePolicy.from_env(),
            active_processes=active_processes,
        )
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> ToolCliClient:
        """Build a client from the settings layer."""

        return cls(
            settings.tools.definitions,
            settings.tools.default_tool,
            timeout_seconds=settings.execution.timeout_seconds,
            max_output_size=settings.execution.max_output_size,
            retry_policy=settings.retry.to_policy(),
            privilege_policy=PrivilegePolicy(
                force_allow_root=settings.execution.force_allow_root,
                run_as_user=settings.execution.run_as_user,
            ),
        )

    def __enter__(self) -> ToolCliClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.cleanup()

    @property
    def default_tool_name(self) -> str:
        return self._registry.default_tool_name

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._registry)

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self._registry

    def reload(
        self,
        tool_configs: Mapping[str, Mapping[str, Any]] | None,
        default_tool_name: str = FALLBACK_TOOL_NAME,
    ) -> None:
        """Replace the whole registry, e.g. after a configuration reload."""

        self._registry = ToolRegistry(tool_configs, default_tool_name)
        logger.info(
            "Tool registry reloaded: tools=%s default=%s",
            ",".join(self._registry.names()),
            self._registry.default_tool_name,
        )

    def send_prompt(  # noqa: PLR0913
        self,
        prompt: str,
        *,
        tool_name: str | None = None,
        working_directory: str | Path | None = None,
        skip_permissions: bool = False,
        continue_session: bool = False,
        max_output_size: int | None = None,
        on_stream: StreamCallback | None = None,
        on_background_complete: BackgroundCallback | None = None,
    ) -> ExecutionResult:
        """Run ``prompt`` with retries; never raises."""

        request = ExecutionRequest(
            prompt=prompt,
            tool_name=tool_name,
            working_directory=working_directory,
            skip_permissions=skip_permissions,
            continue_session=continue_session,
            max_output_size=max_output_size,
            on_stream=on_stream,
            on_background_complete=on_background_complete,
        )
        retry_kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep

        try:
            return with_retry_policy(
                lambda: self._execute(request),
                self.retry_policy,
                should_retry=should_retry_tool_error,
                on_retry=_log_retry,
                **retry_kwargs,
            )
        except RetryError as error:
            last_error = error.last_error
            return ExecutionResult(
                response="",
                error=str(last_error) or str(error),
                timed_out=bool(getattr(last_error, "timed_out", False)),
            )
        except Exception as error:
            logger.exception("Unexpected failure while sending prompt")
            return ExecutionResult(response="", error=str(error) or _UNEXPECTED_ERROR)

    def check_availability(self, tool_name: str | None = None) -> bool:
        """Return whether the tool's version probe succeeds."""

        try:
            tool = self._registry.resolve(tool_name)
        except UnknownToolError:
            return False
        return self.executor.check_availability(tool)

    def cleanup(self) -> None:
        self.executor.cleanup()

    def _execute(self, request: ExecutionRequest) -> ExecutionResult:
        tool = self._registry.resolve(request.tool_name)
        return self.executor.execute(tool, request)


def _log_retry(error: BaseException, attempt: int) -> None:
    logger.warning("Retrying tool command: attempt=%d error=%s", attempt, error)
