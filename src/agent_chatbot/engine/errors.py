"""Typed failures raised by the tool-execution engine."""

from __future__ import annotations


class ToolExecutionError(RuntimeError):
    """Tool execution error with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class UnknownToolError(ToolExecutionError):
    """Requested tool name is not registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"unknown tool: {tool_name}", transient=False)
        self.tool_name = tool_name


class ToolNotFoundError(ToolExecutionError):
    """Tool executable is missing or the shell reported it as not found."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(
            f"{tool_name} CLI not found. Check that it is installed and on PATH.",
            transient=False,
        )
        self.tool_name = tool_name


class ExecutionFailedError(ToolExecutionError):
    """Tool process exited with a non-zero code."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None,
        stderr: str = "",
        transient: bool = True,
    ) -> None:
        super().__init__(message, transient=transient)
        self.exit_code = exit_code
        self.stderr = stderr
