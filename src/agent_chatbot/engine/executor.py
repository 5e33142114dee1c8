"""Subprocess executor with a caller deadline decoupled from process lifetime.

A call waits for the tool process up to ``timeout_seconds``. When the deadline
passes first, the caller gets a ``timed_out`` result and the process keeps
running; its final outcome is handed to ``on_background_complete`` when it
exits. Processes are only ever killed by ``cleanup()`` (and by the bounded
availability probe).
"""

from __future__ import annotations

import codecs
import logging
import os
import subprocess
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from agent_chatbot.engine.commands import (
    PrivilegePolicy,
    RuntimeCommand,
    build_command,
    build_probe_command,
)
from agent_chatbot.engine.errors import (
    ExecutionFailedError,
    ToolExecutionError,
    ToolNotFoundError,
)
from agent_chatbot.engine.failure_classifier import is_tool_missing
from agent_chatbot.engine.output import (
    TRUNCATION_MARKER,
    format_error,
    sanitize_output,
    stderr_preview,
)
from agent_chatbot.engine.registry import ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_SIZE = 10 * 1024 * 1024
PROBE_TIMEOUT_SECONDS = 5.0
DEADLINE_MESSAGE = "deadline reached, continuing in background"

_CHUNK_SIZE = 64 * 1024

StreamCallback = Callable[[str, bool], None]


@dataclass(slots=True)
class ExecutionResult:
    """Caller-visible outcome of one tool invocation."""

    response: str
    error: str | None = None
    timed_out: bool = False


BackgroundCallback = Callable[[ExecutionResult], None]


@dataclass(slots=True)
class ExecutionRequest:
    """Per-call inputs for ``ProcessExecutor.execute``."""

    prompt: str
    tool_name: str | None = None
    working_directory: str | Path | None = None
    skip_permissions: bool = False
    continue_session: bool = False
    max_output_size: int | None = None
    on_stream: StreamCallback | None = None
    on_background_complete: BackgroundCallback | None = None


class ActiveProcessSet:
    """Thread-safe set of spawned processes not yet known to have exited."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._processes: set[subprocess.Popen[bytes]] = set()

    def add(self, process: subprocess.Popen[bytes]) -> None:
        with self._lock:
            self._processes.add(process)

    def discard(self, process: subprocess.Popen[bytes]) -> None:
        with self._lock:
            self._processes.discard(process)

    def drain(self) -> list[subprocess.Popen[bytes]]:
        """Remove and return every tracked process."""

        with self._lock:
            processes = list(self._processes)
            self._processes.clear()
        return processes

    def __contains__(self, process: object) -> bool:
        with self._lock:
            return process in self._processes

    def __len__(self) -> int:
        with self._lock:
            return len(self._processes)

    def __iter__(self) -> Iterator[subprocess.Popen[bytes]]:
        with self._lock:
            return iter(list(self._processes))


class _ResultSlot:
    """One-shot outcome holder; the first ``offer`` wins."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._filled = threading.Event()
        self._result: ExecutionResult | None = None
        self._error: BaseException | None = None

    @property
    def resolved(self) -> bool:
        return self._filled.is_set()

    def offer(
        self,
        result: ExecutionResult | None = None,
        error: BaseException | None = None,
    ) -> bool:
        with self._lock:
            if self._filled.is_set():
                return False
            self._result = result
            self._error = error
            self._filled.set()
            return True

    def wait(self, timeout: float | None) -> bool:
        return self._filled.wait(timeout)

    def get(self) -> ExecutionResult:
        if self._error is not None:
            raise self._error
        if self._result is None:
            raise RuntimeError("result slot read before it was filled")
        return self._result


@dataclass(slots=True)
class _OutputBuffer:
    """Accumulates decoded stdout/stderr under a byte cap on stdout."""

    max_output_size: int
    stdout_parts: list[str] = field(default_factory=list)
    stderr_parts: list[str] = field(default_factory=list)
    stdout_bytes: int = 0
    truncated: bool = False

    def add_stdout(self, text: str, size: int) -> None:
        self.stdout_bytes += size
        if self.stdout_bytes > self.max_output_size:
            if not self.truncated:
                self.stdout_parts.append(TRUNCATION_MARKER)
                self.truncated = True
            return
        self.stdout_parts.append(text)

    def add_stderr(self, text: str) -> None:
        self.stderr_parts.append(text)

    @property
    def stdout(self) -> str:
        return "".join(self.stdout_parts)

    @property
    def stderr(self) -> str:
        return "".join(self.stderr_parts)


class ProcessExecutor:
    """Spawn tool processes and report a bounded-latency result."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 0,
        max_output_size: int = DEFAULT_MAX_OUTPUT_SIZE,
        privilege_policy: PrivilegePolicy | None = None,
        active_processes: ActiveProcessSet | None = None,
        extra_env: dict[str, str] | None = None,
    ) -> None:
        self.timeout_seconds = max(0.0, timeout_seconds)
        self.max_output_size = max_output_size
        self.privilege_policy = privilege_policy or PrivilegePolicy()
        self.active_processes = (
            active_processes if active_processes is not None else ActiveProcessSet()
        )
        self.extra_env = dict(extra_env or {})

    def execute(self, tool: ToolDefinition, request: ExecutionRequest) -> ExecutionResult:
        """Run one prompt through ``tool``.

        Returns the sanitized stdout on exit code 0, or a ``timed_out`` result
        when the deadline passes first. Raises ``ToolNotFoundError`` or
        ``ExecutionFailedError`` for failed runs.
        """

        runtime = build_command(
            tool,
            request.prompt,
            skip_permissions=request.skip_permissions,
            continue_session=request.continue_session,
            policy=self.privilege_policy,
        )
        max_output_size = (
            request.max_output_size
            if request.max_output_size is not None
            else self.max_output_size
        )
        cwd = Path(request.working_directory).resolve() if request.working_directory else None

        logger.debug(
            "Executing tool command: tool=%s command=%s cwd=%s timeout=%s max_output=%d "
            "skip_permissions=%s",
            tool.name,
            runtime.command,
            cwd or "current",
            self.timeout_seconds,
            max_output_size,
            request.skip_permissions,
        )

        process = self._spawn(tool, runtime, cwd)
        self.active_processes.add(process)

        slot = _ResultSlot()
        buffer = _OutputBuffer(max_output_size=max_output_size)
        buffer_lock = threading.Lock()

        def forward(chunk: str, is_error: bool) -> None:
            if request.on_stream is None or slot.resolved:
                return
            try:
                request.on_stream(chunk, is_error)
            except Exception:
                logger.exception("Stream callback failed: tool=%s", tool.name)

        def read_stdout(text: str, size: int) -> None:
            with buffer_lock:
                buffer.add_stdout(text, size)
            forward(text, False)

        def read_stderr(text: str, size: int) -> None:  # noqa: ARG001
            with buffer_lock:
                buffer.add_stderr(text)
            forward(text, True)

        readers = [
            _start_reader(process.stdout, read_stdout, name=f"{tool.name}-stdout"),
            _start_reader(process.stderr, read_stderr, name=f"{tool.name}-stderr"),
        ]

        def wait_for_exit() -> None:
            for reader in readers:
                reader.join()
            returncode = process.wait()
            self.active_processes.discard(process)
            with buffer_lock:
                stdout, stderr = buffer.stdout, buffer.stderr

            result, error = _final_outcome(tool, runtime, returncode, stdout, stderr)
            if slot.offer(result, error):
                return
            _deliver_background(tool, request.on_background_complete, returncode, stdout, stderr)

        threading.Thread(target=wait_for_exit, name=f"{tool.name}-wait", daemon=True).start()

        deadline = self.timeout_seconds or None
        if not slot.wait(deadline):
            claimed = slot.offer(
                ExecutionResult(response="", error=DEADLINE_MESSAGE, timed_out=True),
            )
            if claimed:
                logger.warning(
                    "Tool process timed out, continuing in background: tool=%s timeout=%ss cwd=%s",
                    tool.name,
                    self.timeout_seconds,
                    cwd or "current",
                )
        return slot.get()

    def check_availability(self, tool: ToolDefinition) -> bool:
        """Probe ``tool`` with its version args under a fixed 5 second limit."""

        runtime = build_probe_command(tool)
        try:
            process = subprocess.Popen(  # noqa: S603
                runtime.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
            )
        except OSError as error:
            logger.debug("Availability probe failed to start: tool=%s error=%s", tool.name, error)
            return False

        try:
            stdout, _ = process.communicate(timeout=PROBE_TIMEOUT_SECONDS)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            logger.info("Availability probe timed out: tool=%s", tool.name)
            return False

        available = process.returncode == 0 or bool(stdout)
        logger.info(
            "Availability probe: tool=%s exit_code=%s available=%s",
            tool.name,
            process.returncode,
            available,
        )
        return available

    def cleanup(self) -> None:
        """Terminate every tracked process; used at host shutdown."""

        processes = self.active_processes.drain()
        for process in processes:
            try:
                process.terminate()
            except OSError:
                continue
        if processes:
            logger.info("Sent termination signal to %d tool process(es)", len(processes))

    def _spawn(
        self,
        tool: ToolDefinition,
        runtime: RuntimeCommand,
        cwd: Path | None,
    ) -> subprocess.Popen[bytes]:
        env = {**os.environ, **self.extra_env, **runtime.env}
        kwargs: dict[str, object] = {}
        if os.name == "nt":
            if runtime.detached:
                kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = runtime.detached
        try:
            return subprocess.Popen(  # noqa: S603
                runtime.argv,
                cwd=cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **kwargs,
            )
        except FileNotFoundError as error:
            if cwd is not None and not cwd.is_dir():
                raise ExecutionFailedError(
                    format_error(f"{cwd}: No such file or directory", None),
                    exit_code=None,
                    transient=False,
                ) from error
            raise ToolNotFoundError(tool.name) from error
        except OSError as error:
            raise ExecutionFailedError(
                f"{tool.name} failed to start: {error}",
                exit_code=None,
            ) from error


def _start_reader(
    stream: IO[bytes] | None,
    sink: Callable[[str, int], None],
    *,
    name: str,
) -> threading.Thread:
    def pump() -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        with stream:
            for chunk in iter(lambda: stream.read1(_CHUNK_SIZE), b""):
                text = decoder.decode(chunk)
                if text:
                    sink(text, len(chunk))
            tail = decoder.decode(b"", final=True)
            if tail:
                sink(tail, 0)

    thread = threading.Thread(target=pump, name=name, daemon=True)
    thread.start()
    return thread


def _final_outcome(
    tool: ToolDefinition,
    runtime: RuntimeCommand,
    returncode: int,
    stdout: str,
    stderr: str,
) -> tuple[ExecutionResult | None, ToolExecutionError | None]:
    if returncode == 0:
        return ExecutionResult(response=sanitize_output(stdout)), None

    logger.debug(
        "Tool exited with non-zero code: tool=%s exit_code=%s stderr=%s",
        tool.name,
        returncode,
        stderr_preview(stderr),
    )
    if is_tool_missing(stderr, tool.command) or is_tool_missing(stderr, runtime.command):
        return None, ToolNotFoundError(tool.name)
    return None, ExecutionFailedError(
        format_error(stderr, returncode),
        exit_code=returncode,
        stderr=stderr,
    )


def _deliver_background(
    tool: ToolDefinition,
    callback: BackgroundCallback | None,
    returncode: int,
    stdout: str,
    stderr: str,
) -> None:
    logger.info(
        "Background tool process finished: tool=%s exit_code=%s",
        tool.name,
        returncode,
    )
    if callback is None:
        return
    if returncode == 0:
        result = ExecutionResult(response=sanitize_output(stdout))
    else:
        result = ExecutionResult(
            response="",
            error=format_error(stderr, returncode, background=True),
        )
    try:
        callback(result)
    except Exception:
        logger.exception("Background completion callback failed: tool=%s", tool.name)
