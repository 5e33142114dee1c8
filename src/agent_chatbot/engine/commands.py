"""Pure argv construction for tool invocations.

Every function here maps inputs to a new argument list without touching the
process environment, so platform and privilege decisions are unit-testable
without spawning anything.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from agent_chatbot.engine.registry import PROMPT_PLACEHOLDER, ToolDefinition

logger = logging.getLogger(__name__)

VIBE_LOCAL = "vibe-local"
CLAUDE = "claude"
CODEX = "codex"

DEFAULT_RUN_AS_USER = "agent-chatbot"
POWERSHELL = "powershell.exe"

_AUTO_APPROVE_FLAGS = ("-y", "--yes")
_CLAUDE_SKIP_PERMISSIONS_FLAG = "--dangerously-skip-permissions"
_CODEX_SANDBOX_FLAGS = ("--sandbox", "danger-full-access")


@dataclass(frozen=True, slots=True)
class PrivilegePolicy:
    """Host-level switches for running tools in skip-permissions mode as root."""

    force_allow_root: bool = False
    run_as_user: str | None = None

    @classmethod
    def from_env(cls) -> PrivilegePolicy:
        run_as_user = os.getenv("CLAUDE_RUN_AS_USER", "").strip()
        return cls(
            force_allow_root=os.getenv("CLAUDE_FORCE_ALLOW_ROOT") == "true",
            run_as_user=run_as_user or None,
        )

    @property
    def target_user(self) -> str:
        return self.run_as_user or DEFAULT_RUN_AS_USER


@dataclass(frozen=True, slots=True)
class RuntimeCommand:
    """Concrete command, argv tail and extra environment for one spawn."""

    command: str
    args: tuple[str, ...]
    env: dict[str, str] = field(default_factory=dict)
    detached: bool = True

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


def build_args(tool: ToolDefinition, prompt: str) -> list[str]:
    """Substitute ``{prompt}`` in the template or append the prompt once."""

    has_placeholder = any(PROMPT_PLACEHOLDER in arg for arg in tool.args)
    args = [arg.replace(PROMPT_PLACEHOLDER, prompt) for arg in tool.args]
    if not has_placeholder:
        args.append(prompt)
    return args


def ensure_auto_approve(tool_name: str, args: Sequence[str]) -> list[str]:
    """Force vibe-local into non-interactive mode."""

    if tool_name != VIBE_LOCAL:
        return list(args)
    if any(flag in args for flag in _AUTO_APPROVE_FLAGS):
        return list(args)
    return ["-y", *args]


def inject_standard_options(
    tool_name: str,
    args: Sequence[str],
    *,
    dangerous_mode: bool,
) -> list[str]:
    """Apply per-tool execution flags in a fixed order, each at most once."""

    result = ensure_auto_approve(tool_name, args)
    if tool_name == CODEX and _CODEX_SANDBOX_FLAGS[0] not in result:
        return [*_CODEX_SANDBOX_FLAGS, *result]
    if tool_name == CLAUDE and dangerous_mode and _CLAUDE_SKIP_PERMISSIONS_FLAG not in result:
        return [_CLAUDE_SKIP_PERMISSIONS_FLAG, *result]
    return result


def inject_resume_flags(tool_name: str, args: Sequence[str]) -> list[str]:
    """Add the flag that makes a tool continue its most recent session."""

    result = list(args)
    if tool_name == CLAUDE:
        return result if "--continue" in result else ["--continue", *result]
    if tool_name == VIBE_LOCAL:
        return result if "--resume" in result else ["--resume", *result]
    if tool_name == CODEX:
        if "exec" not in result:
            return result
        position = result.index("exec") + 1
        if result[position : position + 1] == ["resume"]:
            return result
        return [*result[:position], "resume", "--last", *result[position:]]
    return result


def resolve_runtime_command(  # noqa: PLR0913
    tool_name: str,
    command: str,
    args: Sequence[str],
    *,
    platform: str | None = None,
    user_profile: str | None = None,
    path_exists: Callable[[str], bool] = os.path.exists,
) -> RuntimeCommand:
    """Map a tool invocation to what the current platform can actually spawn."""

    current_platform = platform or sys.platform
    if current_platform != "win32" or tool_name != VIBE_LOCAL:
        return RuntimeCommand(command=command, args=tuple(args))

    profile = user_profile if user_profile is not None else os.getenv("USERPROFILE", "")
    if not profile:
        return RuntimeCommand(command=command, args=tuple(args))
    script_path = "\\".join((profile.rstrip("\\/"), ".local", "bin", "vibe-local.ps1"))
    if not path_exists(script_path):
        return RuntimeCommand(command=command, args=tuple(args))

    normalized = ["--prompt" if arg == "-p" else arg for arg in args]
    return RuntimeCommand(
        command=POWERSHELL,
        args=("-ExecutionPolicy", "Bypass", "-File", script_path, *normalized),
        detached=False,
    )


def narrow_privileges(
    command: str,
    args: Sequence[str],
    *,
    skip_permissions_granted: bool,
    is_root: bool,
    policy: PrivilegePolicy,
) -> RuntimeCommand:
    """Rewrite to ``sudo -u <user>`` when a root host grants skip-permissions."""

    if not skip_permissions_granted or not is_root or policy.force_allow_root:
        return RuntimeCommand(command=command, args=tuple(args))
    user = policy.target_user
    return RuntimeCommand(
        command="sudo",
        args=("-u", user, command, *args),
        env={"USER": user, "HOME": f"/tmp/{user}"},  # noqa: S108
    )


def build_command(  # noqa: PLR0913
    tool: ToolDefinition,
    prompt: str,
    *,
    skip_permissions: bool = False,
    continue_session: bool = False,
    policy: PrivilegePolicy | None = None,
    is_root: bool | None = None,
    platform: str | None = None,
) -> RuntimeCommand:
    """Compose substitution, flag injection, privilege narrowing and platform mapping."""

    granted = skip_permissions and tool.supports_skip_permissions
    if skip_permissions and not tool.supports_skip_permissions:
        logger.warning(
            "skip_permissions requested but tool does not support it: tool=%s",
            tool.name,
        )

    args = inject_standard_options(
        tool.name,
        build_args(tool, prompt),
        dangerous_mode=granted,
    )
    if continue_session:
        args = inject_resume_flags(tool.name, args)

    narrowed = narrow_privileges(
        tool.command,
        args,
        skip_permissions_granted=granted,
        is_root=running_as_root() if is_root is None else is_root,
        policy=policy or PrivilegePolicy(),
    )
    runtime = resolve_runtime_command(
        tool.name,
        narrowed.command,
        narrowed.args,
        platform=platform,
    )
    return RuntimeCommand(
        command=runtime.command,
        args=runtime.args,
        env=narrowed.env,
        detached=runtime.detached,
    )


def build_probe_command(tool: ToolDefinition, *, platform: str | None = None) -> RuntimeCommand:
    """Version-probe command: same platform mapping, never privilege-narrowed."""

    args = ensure_auto_approve(tool.name, tool.version_args)
    return resolve_runtime_command(tool.name, tool.command, args, platform=platform)


def running_as_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0
