"""Tool definitions and default-tool resolution."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from agent_chatbot.engine.errors import UnknownToolError

logger = logging.getLogger(__name__)

PROMPT_PLACEHOLDER = "{prompt}"
FALLBACK_TOOL_NAME = "claude"
DEFAULT_ARGS: tuple[str, ...] = (PROMPT_PLACEHOLDER,)
DEFAULT_VERSION_ARGS: tuple[str, ...] = ("--version",)

BUILTIN_TOOL_CONFIGS: dict[str, dict[str, Any]] = {
    "claude": {
        "command": "claude",
        "args": ["--print", PROMPT_PLACEHOLDER],
        "version_args": ["--version"],
        "description": "Anthropic Claude CLI",
        "supports_skip_permissions": True,
    },
}


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """Canonical, immutable description of one invocable CLI tool."""

    name: str
    command: str
    args: tuple[str, ...] = DEFAULT_ARGS
    version_args: tuple[str, ...] = DEFAULT_VERSION_ARGS
    description: str | None = None
    supports_skip_permissions: bool = False

    @classmethod
    def from_config(cls, name: str, config: Mapping[str, Any]) -> ToolDefinition:
        """Normalize one raw tool config, accepting camelCase or snake_case keys."""

        args = _string_tuple(config.get("args")) or DEFAULT_ARGS
        version_args = (
            _string_tuple(config.get("version_args", config.get("versionArgs")))
            or DEFAULT_VERSION_ARGS
        )
        supports = config.get(
            "supports_skip_permissions",
            config.get("supportsSkipPermissions", False),
        )
        description = config.get("description")
        return cls(
            name=name,
            command=str(config["command"]),
            args=args,
            version_args=version_args,
            description=str(description) if description is not None else None,
            supports_skip_permissions=supports is True,
        )


class ToolRegistry:
    """Read-only mapping of tool name to definition plus the default tool."""

    def __init__(
        self,
        tool_configs: Mapping[str, Mapping[str, Any]] | None = None,
        default_tool_name: str = FALLBACK_TOOL_NAME,
    ) -> None:
        self._tools = normalize_tools(tool_configs or {})
        self.default_tool_name = resolve_default_tool(self._tools, default_tool_name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def resolve(self, name: str | None = None) -> ToolDefinition:
        """Return the named tool, or the default one when ``name`` is empty."""

        selected = name or self.default_tool_name
        tool = self._tools.get(selected)
        if tool is None:
            raise UnknownToolError(selected)
        return tool

    def names(self) -> list[str]:
        return list(self._tools)


def normalize_tools(
    configs: Mapping[str, Mapping[str, Any]],
) -> dict[str, ToolDefinition]:
    """Merge built-in definitions with caller configs into canonical form.

    Caller entries replace built-ins of the same name. Entries without a
    ``command`` are skipped.
    """

    merged: dict[str, Mapping[str, Any]] = {**BUILTIN_TOOL_CONFIGS, **configs}
    normalized: dict[str, ToolDefinition] = {}
    for name, config in merged.items():
        if not config or not config.get("command"):
            logger.debug("Skipping tool without command: %s", name)
            continue
        normalized[name] = ToolDefinition.from_config(name, config)
    return normalized


def resolve_default_tool(tools: Mapping[str, ToolDefinition], requested: str) -> str:
    """Pick the requested default, then ``claude``, then the first tool.

    Returns the ``claude`` sentinel for an empty registry; the miss surfaces as
    ``UnknownToolError`` on first use.
    """

    if requested in tools:
        return requested
    if FALLBACK_TOOL_NAME in tools:
        return FALLBACK_TOOL_NAME
    return next(iter(tools), FALLBACK_TOOL_NAME)


def _string_tuple(value: object) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item) for item in value)
