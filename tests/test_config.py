from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest

from agent_chatbot.config import Settings, find_config_file, load_config_file, parse_size
from agent_chatbot.engine.executor import DEFAULT_MAX_OUTPUT_SIZE

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]


def test_settings_defaults_without_config_file(tmp_path: Path) -> None:
    settings = Settings.from_env(cwd=tmp_path)

    assert settings.config_path is None
    assert settings.execution.timeout_seconds == 0
    assert settings.execution.max_output_size == DEFAULT_MAX_OUTPUT_SIZE
    assert settings.execution.force_allow_root is False
    assert settings.execution.run_as_user is None
    assert settings.tools.default_tool == "claude"
    assert settings.tools.definitions == {}
    assert settings.retry.max_attempts == 3
    assert settings.log_level == "INFO"


def test_settings_read_yaml_with_camel_case_keys(tmp_path: Path) -> None:
    (tmp_path / "agent-chatbot.yml").write_text(
        "defaults:\n"
        "  timeout: 90\n"
        "  maxOutputSize: 2MB\n"
        "tools:\n"
        "  defaultTool: codex\n"
        "  definitions:\n"
        "    codex:\n"
        "      command: codex\n"
        "      args: [exec, '{prompt}']\n"
        "      supportsSkipPermissions: true\n",
        "utf-8",
    )

    settings = Settings.from_env(cwd=tmp_path)

    assert settings.config_path == tmp_path / "agent-chatbot.yml"
    assert settings.execution.timeout_seconds == 90
    assert settings.execution.max_output_size == 2 * 1024 * 1024
    assert settings.tools.default_tool == "codex"
    assert settings.tools.definitions["codex"]["args"] == ["exec", "{prompt}"]


def test_settings_discover_json_in_config_directory(tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "agent-chatbot.json").write_text(
        json.dumps({"tools": {"default_tool": "vibe-local"}}),
        "utf-8",
    )

    settings = Settings.from_env(cwd=tmp_path)

    assert settings.config_path == config_dir / "agent-chatbot.json"
    assert settings.tools.default_tool == "vibe-local"


def test_environment_overrides_config_file(tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "agent-chatbot.yml").write_text(
        "defaults:\n  timeout: 90\ntools:\n  defaultTool: codex\n",
        "utf-8",
    )
    monkeypatch.setenv("AGENT_CHATBOT_TIMEOUT_SECONDS", "5")
    monkeypatch.setenv("AGENT_CHATBOT_MAX_OUTPUT_SIZE", "512KB")
    monkeypatch.setenv("AGENT_CHATBOT_DEFAULT_TOOL", "claude")
    monkeypatch.setenv("AGENT_CHATBOT_RETRY_MAX_ATTEMPTS", "1")
    monkeypatch.setenv("AGENT_CHATBOT_LOG_LEVEL", "debug")
    monkeypatch.setenv("CLAUDE_FORCE_ALLOW_ROOT", "true")
    monkeypatch.setenv("CLAUDE_RUN_AS_USER", "runner")

    settings = Settings.from_env(cwd=tmp_path)

    assert settings.execution.timeout_seconds == 5
    assert settings.execution.max_output_size == 512 * 1024
    assert settings.tools.default_tool == "claude"
    assert settings.retry.max_attempts == 1
    assert settings.log_level == "DEBUG"
    assert settings.execution.force_allow_root is True
    assert settings.execution.run_as_user == "runner"


def test_explicit_config_path_wins_over_discovery(tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "agent-chatbot.yml").write_text("tools:\n  defaultTool: codex\n", "utf-8")
    explicit = tmp_path / "other.yaml"
    explicit.write_text("tools:\n  defaultTool: gemini\n", "utf-8")
    monkeypatch.setenv("AGENT_CHATBOT_CONFIG_FILE", str(explicit))

    assert Settings.from_env(cwd=tmp_path).tools.default_tool == "gemini"


@pytest.mark.parametrize(
    ("env_name", "value"),
    [
        ("AGENT_CHATBOT_TIMEOUT_SECONDS", "-1"),
        ("AGENT_CHATBOT_MAX_OUTPUT_SIZE", "lots"),
        ("AGENT_CHATBOT_MAX_OUTPUT_SIZE", "0"),
        ("AGENT_CHATBOT_RETRY_MAX_ATTEMPTS", "0"),
        ("AGENT_CHATBOT_RETRY_BACKOFF_MULTIPLIER", "0.5"),
    ],
)
def test_invalid_values_raise(tmp_path: Path, monkeypatch, env_name: str, value: str) -> None:
    monkeypatch.setenv(env_name, value)

    with pytest.raises(ValueError):
        Settings.from_env(cwd=tmp_path)


def test_tool_args_must_be_a_list(tmp_path: Path) -> None:
    (tmp_path / "agent-chatbot.yml").write_text(
        "tools:\n  definitions:\n    bad:\n      command: bad\n      args: '--print'\n",
        "utf-8",
    )

    with pytest.raises(ValueError, match="args must be a list"):
        Settings.from_env(cwd=tmp_path)


def test_load_config_file_rejects_bad_content(tmp_path: Path) -> None:
    broken = tmp_path / "broken.yml"
    broken.write_text("tools: [unclosed\n", "utf-8")
    scalar = tmp_path / "scalar.yml"
    scalar.write_text("just text\n", "utf-8")
    unknown = tmp_path / "config.toml"
    unknown.write_text("x = 1\n", "utf-8")

    with pytest.raises(ValueError, match="Invalid YAML"):
        load_config_file(broken)
    with pytest.raises(ValueError, match="mapping"):
        load_config_file(scalar)
    with pytest.raises(ValueError, match="Unsupported"):
        load_config_file(unknown)


def test_find_config_file_prefers_working_directory(tmp_path: Path) -> None:
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "agent-chatbot.yml").write_text("{}\n", "utf-8")
    assert find_config_file(tmp_path) == tmp_path / "config" / "agent-chatbot.yml"

    (tmp_path / ".agent-chatbot.json").write_text("{}", "utf-8")
    assert find_config_file(tmp_path) == tmp_path / ".agent-chatbot.json"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("10MB", 10 * 1024 * 1024),
        ("512kb", 512 * 1024),
        ("1.5 KB", 1536),
        ("42", 42),
        (7, 7),
        ("1GB", 1024**3),
        ("ten", None),
        ("-1MB", None),
    ],
)
def test_parse_size(raw: str | int, expected: int | None) -> None:
    assert parse_size(raw) == expected
