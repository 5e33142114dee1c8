from __future__ import annotations

import json
import sys
from pathlib import Path

from click.testing import CliRunner

from agent_chatbot import __version__
from agent_chatbot.main import agent_chatbot


def _write_config(tmp_path: Path, definitions: dict[str, object], default: str) -> Path:
    path = tmp_path / "agent-chatbot.json"
    path.write_text(
        json.dumps({"tools": {"defaultTool": default, "definitions": definitions}}),
        "utf-8",
    )
    return path


def test_version_option() -> None:
    result = CliRunner().invoke(agent_chatbot, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_tools_list_marks_default_tool(tmp_path: Path, echo_tool) -> None:
    config = _write_config(tmp_path, {"echo": echo_tool()}, "echo")

    result = CliRunner().invoke(agent_chatbot, ["tools", "list", "--config", str(config)])

    assert result.exit_code == 0
    assert "  claude: command=claude args=--print {prompt} skip_permissions=yes" in result.output
    assert "* echo: command=" in result.output


def test_tools_check_reports_available_and_unknown(tmp_path: Path, echo_tool) -> None:
    config = _write_config(tmp_path, {"echo": echo_tool()}, "echo")

    ok = CliRunner().invoke(
        agent_chatbot,
        ["tools", "check", "--config", str(config), "--tool", "echo"],
    )
    unknown = CliRunner().invoke(
        agent_chatbot,
        ["tools", "check", "--config", str(config), "--tool", "echo", "--tool", "nope"],
    )

    assert ok.exit_code == 0
    assert "tool=echo available=yes" in ok.output
    assert "Check status: passed" in ok.output
    assert unknown.exit_code != 0
    assert "tool=nope available=no (unknown tool)" in unknown.output
    assert "Check status: failed" in unknown.output


def test_prompt_prints_tool_response(tmp_path: Path, echo_tool) -> None:
    config = _write_config(tmp_path, {"echo": echo_tool()}, "echo")

    result = CliRunner().invoke(
        agent_chatbot,
        ["prompt", "hello from cli", "--config", str(config)],
    )

    assert result.exit_code == 0
    assert "hello from cli" in result.output


def test_prompt_with_unknown_tool_fails_with_guidance(tmp_path: Path, echo_tool) -> None:
    config = _write_config(tmp_path, {"echo": echo_tool()}, "echo")

    result = CliRunner().invoke(
        agent_chatbot,
        ["prompt", "hi", "--config", str(config), "--tool", "missing"],
    )

    assert result.exit_code != 0
    assert "unknown tool: missing" in result.output
    assert "How to fix:" in result.output


def test_prompt_reports_background_result_after_deadline(tmp_path: Path) -> None:
    slow = {
        "command": sys.executable,
        "args": ["-c", "import sys, time; time.sleep(0.2); print(sys.argv[1])", "{prompt}"],
    }
    config = _write_config(tmp_path, {"slow": slow}, "slow")

    result = CliRunner().invoke(
        agent_chatbot,
        ["prompt", "late answer", "--config", str(config), "--timeout-seconds", "0.01"],
    )

    assert result.exit_code == 0
    assert "Still running: deadline reached, continuing in background" in result.output
    assert "Background result:" in result.output
    assert "late answer" in result.output
