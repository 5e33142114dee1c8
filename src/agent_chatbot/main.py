"""CLI entrypoint for agent-chatbot."""

import logging
import os
from pathlib import Path

import rich_click as click

from agent_chatbot import __version__
from agent_chatbot.controllers import (
    PromptCommand,
    ToolCliController,
    ToolsCheckCommand,
    ToolsListCommand,
)

click.rich_click.USE_MARKDOWN = True
TOOL_CONTROLLER = ToolCliController()

_CONFIG_OPTION = click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="YAML/JSON config file. Defaults to AGENT_CHATBOT_CONFIG_FILE or auto-discovery.",
)


@click.group()
@click.version_option(version=__version__, prog_name="agent-chatbot")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level. Defaults to AGENT_CHATBOT_LOG_LEVEL or INFO.",
)
def agent_chatbot(log_level: str | None) -> None:
    """Run prompts through pluggable CLI AI tools."""

    level = (log_level or os.getenv("AGENT_CHATBOT_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )


@agent_chatbot.group()
def tools() -> None:
    """Tool registry commands."""


@tools.command("list")
@_CONFIG_OPTION
def tools_list(config_path: Path | None) -> None:
    """List registered tools; the default tool is marked with `*`."""

    _emit_lines(TOOL_CONTROLLER.list_tools(ToolsListCommand(config_path=config_path)))


@tools.command("check")
@_CONFIG_OPTION
@click.option(
    "--tool",
    "tool_names",
    multiple=True,
    help="Tool to probe. Repeat to probe several; defaults to every registered tool.",
)
def tools_check(config_path: Path | None, tool_names: tuple[str, ...]) -> None:
    """Probe tool availability with each tool's version arguments."""

    result = TOOL_CONTROLLER.check(
        ToolsCheckCommand(config_path=config_path, tool_names=tool_names),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Tool availability check failed.")


@agent_chatbot.command("prompt")
@_CONFIG_OPTION
@click.argument("text")
@click.option("--tool", "tool_name", default=None, help="Tool name. Defaults to the default tool.")
@click.option(
    "--cwd",
    "working_directory",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Working directory for the tool process.",
)
@click.option(
    "--skip-permissions/--no-skip-permissions",
    default=False,
    show_default=True,
    help="Run tools that support it in skip-permissions mode.",
)
@click.option(
    "--continue",
    "continue_session",
    is_flag=True,
    default=False,
    help="Continue the tool's most recent session.",
)
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Caller deadline; 0 waits indefinitely. Defaults to AGENT_CHATBOT_TIMEOUT_SECONDS.",
)
@click.option(
    "--wait-background/--no-wait-background",
    default=True,
    show_default=True,
    help="After the deadline, wait for the tool to finish in the background.",
)
@click.option(
    "--stream/--no-stream",
    default=False,
    show_default=True,
    help="Echo tool output as it arrives.",
)
def prompt(  # noqa: PLR0913
    config_path: Path | None,
    text: str,
    tool_name: str | None,
    working_directory: Path | None,
    skip_permissions: bool,
    continue_session: bool,
    timeout_seconds: float | None,
    wait_background: bool,
    stream: bool,
) -> None:
    """Send one prompt to a tool and print its response."""

    result = TOOL_CONTROLLER.prompt(
        PromptCommand(
            config_path=config_path,
            prompt=text,
            tool_name=tool_name,
            working_directory=working_directory,
            skip_permissions=skip_permissions,
            continue_session=continue_session,
            timeout_seconds=timeout_seconds,
            wait_background=wait_background,
            on_stream=_echo_chunk if stream else None,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Prompt failed.")


def _echo_chunk(chunk: str, is_error: bool) -> None:
    click.echo(chunk, nl=False, err=is_error)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_chatbot()
