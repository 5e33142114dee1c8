"""Runtime configuration for the tool-execution engine."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from agent_chatbot.engine.executor import DEFAULT_MAX_OUTPUT_SIZE
from agent_chatbot.engine.registry import FALLBACK_TOOL_NAME
from agent_chatbot.engine.retry import RetryPolicy

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES: tuple[str, ...] = (
    "agent-chatbot.yml",
    "agent-chatbot.yaml",
    "agent-chatbot.json",
    ".agent-chatbot.yml",
    ".agent-chatbot.yaml",
    ".agent-chatbot.json",
)

_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(B|KB|MB|GB|TB)?$", re.IGNORECASE)
_SIZE_UNITS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
    "TB": 1024**4,
}


@dataclass(slots=True)
class ExecutionSettings:
    """Process execution limits and privilege switches."""

    timeout_seconds: float = 0.0
    max_output_size: int = DEFAULT_MAX_OUTPUT_SIZE
    force_allow_root: bool = False
    run_as_user: str | None = None


@dataclass(slots=True)
class RetrySettings:
    """Backoff for transient tool failures."""

    max_attempts: int = 3
    initial_delay_seconds: float = 2.0
    max_delay_seconds: float = 30.0
    backoff_multiplier: float = 2.0

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay_seconds,
            max_delay=self.max_delay_seconds,
            backoff_multiplier=self.backoff_multiplier,
        )


@dataclass(slots=True)
class ToolSettings:
    """Raw tool definitions and the requested default tool."""

    default_tool: str = FALLBACK_TOOL_NAME
    definitions: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    config_path: Path | None = None
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    tools: ToolSettings = field(default_factory=ToolSettings)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, config_path: Path | None = None, cwd: Path | None = None) -> Settings:
        """Load the config file (if any) and apply environment overrides."""

        env_path = os.getenv("AGENT_CHATBOT_CONFIG_FILE", "").strip()
        resolved_path = config_path or (Path(env_path) if env_path else None)
        if resolved_path is None:
            resolved_path = find_config_file(cwd or Path.cwd())
        raw = load_config_file(resolved_path) if resolved_path is not None else {}

        defaults = _section(raw, "defaults")
        tools = _section(raw, "tools")
        definitions = _section(tools, "definitions")

        file_timeout = defaults.get("timeout") or 0
        file_max_output = defaults.get("maxOutputSize", defaults.get("max_output_size"))

        settings = cls(
            config_path=resolved_path,
            execution=ExecutionSettings(
                timeout_seconds=float(
                    os.getenv("AGENT_CHATBOT_TIMEOUT_SECONDS", str(file_timeout)),
                ),
                max_output_size=_size_setting(
                    "AGENT_CHATBOT_MAX_OUTPUT_SIZE",
                    file_max_output,
                    default=DEFAULT_MAX_OUTPUT_SIZE,
                ),
                force_allow_root=os.getenv("CLAUDE_FORCE_ALLOW_ROOT") == "true",
                run_as_user=os.getenv("CLAUDE_RUN_AS_USER", "").strip() or None,
            ),
            retry=RetrySettings(
                max_attempts=int(os.getenv("AGENT_CHATBOT_RETRY_MAX_ATTEMPTS", "3")),
                initial_delay_seconds=float(
                    os.getenv("AGENT_CHATBOT_RETRY_INITIAL_DELAY_SECONDS", "2.0"),
                ),
                max_delay_seconds=float(
                    os.getenv("AGENT_CHATBOT_RETRY_MAX_DELAY_SECONDS", "30.0"),
                ),
                backoff_multiplier=float(
                    os.getenv("AGENT_CHATBOT_RETRY_BACKOFF_MULTIPLIER", "2.0"),
                ),
            ),
            tools=ToolSettings(
                default_tool=os.getenv(
                    "AGENT_CHATBOT_DEFAULT_TOOL",
                    str(tools.get("defaultTool", tools.get("default_tool", FALLBACK_TOOL_NAME))),
                ),
                definitions={
                    str(name): dict(definition)
                    for name, definition in definitions.items()
                    if isinstance(definition, dict)
                },
            ),
            log_level=os.getenv("AGENT_CHATBOT_LOG_LEVEL", "INFO").upper(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if self.execution.timeout_seconds < 0:
            raise ValueError("AGENT_CHATBOT_TIMEOUT_SECONDS must be >= 0.")
        if self.execution.max_output_size <= 0:
            raise ValueError("AGENT_CHATBOT_MAX_OUTPUT_SIZE must be > 0.")
        if self.retry.max_attempts < 1:
            raise ValueError("AGENT_CHATBOT_RETRY_MAX_ATTEMPTS must be >= 1.")
        if self.retry.initial_delay_seconds < 0 or self.retry.max_delay_seconds < 0:
            raise ValueError("Retry delays must be >= 0.")
        if self.retry.backoff_multiplier < 1:
            raise ValueError("AGENT_CHATBOT_RETRY_BACKOFF_MULTIPLIER must be >= 1.")
        for name, definition in self.tools.definitions.items():
            args = definition.get("args")
            if args is not None and not isinstance(args, list):
                raise ValueError(f"Tool {name!r}: args must be a list of strings.")


def find_config_file(cwd: Path) -> Path | None:
    """Return the first known config file in ``cwd`` or ``cwd/config``."""

    for directory in (cwd, cwd / "config"):
        for file_name in CONFIG_FILE_NAMES:
            candidate = directory / file_name
            if candidate.is_file():
                return candidate
    return None


def load_config_file(path: Path) -> dict[str, Any]:
    """Parse a YAML or JSON config file into a mapping."""

    suffix = path.suffix.lower()
    content = path.read_text("utf-8")
    if suffix == ".json":
        data = json.loads(content)
    elif suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as error:
            raise ValueError(f"Invalid YAML in config file {path}: {error}") from error
    else:
        raise ValueError(f"Unsupported config file format: {suffix or path.name}")

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level.")
    logger.info("Configuration loaded: file=%s", path)
    return data


def parse_size(value: str | int) -> int | None:
    """Convert ``10MB``-style strings (1024 based) to bytes; ``None`` if invalid."""

    if isinstance(value, int):
        return value
    match = _SIZE_PATTERN.match(value.strip())
    if match is None:
        return None
    unit = (match.group(2) or "B").upper()
    return int(float(match.group(1)) * _SIZE_UNITS[unit])


def _size_setting(env_name: str, file_value: object, *, default: int) -> int:
    raw = os.getenv(env_name)
    source = env_name
    if raw is None:
        if file_value is None:
            return default
        raw = file_value if isinstance(file_value, int) else str(file_value)
        source = "defaults.maxOutputSize"
    parsed = parse_size(raw)
    if parsed is None:
        raise ValueError(f"Invalid size for {source}: {raw!r}")
    return parsed


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key)
    return value if isinstance(value, dict) else {}
