"""Tool-execution engine: run pluggable CLI AI tools as external processes.

The engine resolves which tool and argv to run, spawns the process, caps its
output, and returns one bounded-latency result. A process that outlives the
caller's deadline keeps running; its final outcome arrives later through a
background-completion callback.
"""

from agent_chatbot.engine.client import ToolCliClient
from agent_chatbot.engine.errors import (
    ExecutionFailedError,
    ToolExecutionError,
    ToolNotFoundError,
    UnknownToolError,
)
from agent_chatbot.engine.executor import (
    ActiveProcessSet,
    ExecutionRequest,
    ExecutionResult,
    ProcessExecutor,
)
from agent_chatbot.engine.registry import ToolDefinition, ToolRegistry
from agent_chatbot.engine.retry import RetryError, RetryPolicy, is_retryable_error, with_retry

__all__ = [
    "ActiveProcessSet",
    "ExecutionFailedError",
    "ExecutionRequest",
    "ExecutionResult",
    "ProcessExecutor",
    "RetryError",
    "RetryPolicy",
    "ToolCliClient",
    "ToolDefinition",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolRegistry",
    "UnknownToolError",
    "is_retryable_error",
    "with_retry",
]
