"""Shared test fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ECHO_TOOL_ARGS = ["-m", "agent_chatbot.engine.echo_tool"]


def echo_tool_config(*extra_args: str, placeholder: bool = True) -> dict[str, object]:
    """Tool config running the local echo tool through the current interpreter."""

    args = [*ECHO_TOOL_ARGS, *extra_args]
    if placeholder:
        args.append("{prompt}")
    return {
        "command": sys.executable,
        "args": args,
        "version_args": [*ECHO_TOOL_ARGS, "--version"],
    }


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep host configuration out of the tests."""

    for name in (
        "AGENT_CHATBOT_CONFIG_FILE",
        "AGENT_CHATBOT_DEFAULT_TOOL",
        "AGENT_CHATBOT_TIMEOUT_SECONDS",
        "AGENT_CHATBOT_MAX_OUTPUT_SIZE",
        "AGENT_CHATBOT_RETRY_MAX_ATTEMPTS",
        "AGENT_CHATBOT_RETRY_INITIAL_DELAY_SECONDS",
        "AGENT_CHATBOT_RETRY_MAX_DELAY_SECONDS",
        "AGENT_CHATBOT_RETRY_BACKOFF_MULTIPLIER",
        "AGENT_CHATBOT_LOG_LEVEL",
        "CLAUDE_FORCE_ALLOW_ROOT",
        "CLAUDE_RUN_AS_USER",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    src_dir = Path(__file__).resolve().parent.parent / "src"
    existing = os.environ.get("PYTHONPATH", "")
    monkeypatch.setenv(
        "PYTHONPATH",
        f"{src_dir}{os.pathsep}{existing}" if existing else str(src_dir),
    )


@pytest.fixture()
def echo_tool():
    """Factory for echo tool configs."""

    return echo_tool_config
