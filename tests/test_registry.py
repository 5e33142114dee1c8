from __future__ import annotations

import allure
import pytest

from agent_chatbot.engine.errors import UnknownToolError
from agent_chatbot.engine.registry import ToolDefinition, ToolRegistry

pytestmark = [
    allure.epic("Tool Execution"),
    allure.feature("Tool Registry"),
]


def test_builtin_claude_is_always_registered() -> None:
    registry = ToolRegistry({"codex": {"command": "codex", "args": ["exec", "{prompt}"]}})

    claude = registry.resolve("claude")
    assert claude.command == "claude"
    assert claude.args == ("--print", "{prompt}")
    assert claude.supports_skip_permissions is True
    assert registry.names() == ["claude", "codex"]


def test_caller_config_overrides_builtin_claude() -> None:
    registry = ToolRegistry({"claude": {"command": "/opt/claude", "args": ["-p"]}})

    claude = registry.resolve("claude")
    assert claude.command == "/opt/claude"
    assert claude.args == ("-p",)
    assert claude.supports_skip_permissions is False


def test_defaults_fill_missing_fields() -> None:
    tool = ToolDefinition.from_config("gemini", {"command": "gemini", "args": []})

    assert tool.args == ("{prompt}",)
    assert tool.version_args == ("--version",)
    assert tool.supports_skip_permissions is False
    assert tool.description is None


def test_camel_case_config_keys_are_accepted() -> None:
    tool = ToolDefinition.from_config(
        "vibe-local",
        {
            "command": "vibe-local",
            "versionArgs": ["-V"],
            "supportsSkipPermissions": True,
            "description": "Local model",
        },
    )

    assert tool.version_args == ("-V",)
    assert tool.supports_skip_permissions is True
    assert tool.description == "Local model"


def test_non_boolean_skip_permissions_flag_is_ignored() -> None:
    tool = ToolDefinition.from_config("x", {"command": "x", "supports_skip_permissions": "yes"})
    assert tool.supports_skip_permissions is False


def test_entries_without_command_are_skipped() -> None:
    registry = ToolRegistry({"broken": {"args": ["{prompt}"]}})
    assert "broken" not in registry


def test_default_tool_prefers_requested_then_claude_then_first() -> None:
    configs = {"codex": {"command": "codex"}, "gemini": {"command": "gemini"}}

    assert ToolRegistry(configs, "gemini").default_tool_name == "gemini"
    assert ToolRegistry(configs, "missing").default_tool_name == "claude"

    without_claude = {"claude": {}, **configs}
    assert ToolRegistry(without_claude, "missing").default_tool_name == "codex"


def test_empty_registry_returns_sentinel_and_fails_on_use() -> None:
    registry = ToolRegistry({"claude": {}}, "anything")

    assert len(registry) == 0
    assert registry.default_tool_name == "claude"
    with pytest.raises(UnknownToolError, match="unknown tool: claude"):
        registry.resolve()


def test_resolve_unknown_tool_names_it() -> None:
    registry = ToolRegistry()

    with pytest.raises(UnknownToolError) as error_info:
        registry.resolve("nope")
    assert error_info.value.tool_name == "nope"
    assert error_info.value.transient is False
