"""Controllers for agent-chatbot CLI commands."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from agent_chatbot.config import Settings
from agent_chatbot.engine import ExecutionResult, ToolCliClient
from agent_chatbot.engine.output import describe_error, format_error_info


@dataclass(slots=True)
class ToolsListCommand:
    """CLI input for tool listing."""

    config_path: Path | None


@dataclass(slots=True)
class ToolsCheckCommand:
    """CLI input for availability probes."""

    config_path: Path | None
    tool_names: tuple[str, ...]


@dataclass(slots=True)
class PromptCommand:
    """CLI input for a one-off prompt."""

    config_path: Path | None
    prompt: str
    tool_name: str | None
    working_directory: Path | None
    skip_permissions: bool
    continue_session: bool
    timeout_seconds: float | None
    wait_background: bool
    on_stream: Callable[[str, bool], None] | None = None


@dataclass(slots=True)
class ControllerResult:
    """Lines to render plus overall success flag."""

    lines: list[str]
    success: bool


class ToolCliController:
    """Coordinates registry inspection, probes and prompt execution."""

    def __init__(self, client_factory: Callable[[Settings], ToolCliClient] | None = None) -> None:
        self._client_factory = client_factory or ToolCliClient.from_settings

    def list_tools(self, command: ToolsListCommand) -> list[str]:
        settings = Settings.from_env(config_path=command.config_path)
        with self._client_factory(settings) as client:
            lines = []
            for tool in client.list_tools():
                marker = "*" if tool.name == client.default_tool_name else " "
                skip = "yes" if tool.supports_skip_permissions else "no"
                lines.append(
                    f"{marker} {tool.name}: command={tool.command} "
                    f"args={' '.join(tool.args)} skip_permissions={skip}"
                    + (f" - {tool.description}" if tool.description else ""),
                )
        return lines or ["No tools configured."]

    def check(self, command: ToolsCheckCommand) -> ControllerResult:
        """Probe each requested tool (all tools when none requested)."""

        settings = Settings.from_env(config_path=command.config_path)
        with self._client_factory(settings) as client:
            names = command.tool_names or tuple(tool.name for tool in client.list_tools())
            lines: list[str] = []
            success = True
            for name in names:
                if not client.has_tool(name):
                    lines.append(f"tool={name} available=no (unknown tool)")
                    success = False
                    continue
                available = client.check_availability(name)
                success = success and available
                lines.append(f"tool={name} available={'yes' if available else 'no'}")
        lines.append(f"Check status: {'passed' if success else 'failed'}")
        return ControllerResult(lines=lines, success=success)

    def prompt(self, command: PromptCommand) -> ControllerResult:
        """Send one prompt; with a deadline, optionally wait for the background result."""

        settings = Settings.from_env(config_path=command.config_path)
        if command.timeout_seconds is not None:
            settings = replace(
                settings,
                execution=replace(settings.execution, timeout_seconds=command.timeout_seconds),
            )

        background_done = threading.Event()
        background: list[ExecutionResult] = []

        def on_background_complete(result: ExecutionResult) -> None:
            background.append(result)
            background_done.set()

        # no cleanup() here: a detached tool must survive a CLI exit without --wait
        client = self._client_factory(settings)
        result = client.send_prompt(
            command.prompt,
            tool_name=command.tool_name,
            working_directory=command.working_directory,
            skip_permissions=command.skip_permissions,
            continue_session=command.continue_session,
            on_stream=command.on_stream,
            on_background_complete=on_background_complete,
        )
        lines: list[str] = []
        if result.timed_out:
            lines.append(f"Still running: {result.error}")
            if not command.wait_background:
                return ControllerResult(lines=lines, success=True)
            background_done.wait()
            result = background[0]
            lines.append("Background result:")

        if result.error is not None:
            lines.append(format_error_info(describe_error(result.error)))
            lines.append(result.error)
            return ControllerResult(lines=lines, success=False)
        lines.append(result.response)
        return ControllerResult(lines=lines, success=True)
