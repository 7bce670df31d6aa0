"""
apkforge.infrastructure.tool_invoker - External Tool Execution
================================================================

Runs one external command as a child process with a timeout and an output
cap, and maps the process outcome to a ToolResult or a structured error.

Architecture Context:
    Every stage that touches an external tool goes through this class:

    ┌──────────────┐  run(argv, cwd)  ┌──────────────┐  exec   ┌───────────┐
    │ Orchestrator │ ───────────────→ │ ToolInvoker  │ ──────→ │  child    │
    │              │ ←─────────────── │              │ ←────── │  process  │
    └──────────────┘    ToolResult    └──────────────┘  bytes  └───────────┘
                        or ToolError

Outcome Mapping:
    executable missing / not executable → ToolUnavailableError
    ran longer than ``timeout``         → process killed, ToolTimeoutError
    stdout+stderr above the byte cap    → process killed, ToolOutputOverflowError
    exited (any status)                 → ToolResult (``check()`` raises on non-zero)

Processes are started with ``asyncio.create_subprocess_exec``: the argument
vector is passed straight to the OS, no shell parses it, and a long-running
tool only suspends the coroutine of the job that started it.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Optional, Sequence

import structlog

from apkforge.core.exceptions import (
    ToolOutputOverflowError,
    ToolTimeoutError,
    ToolUnavailableError,
    WorkspaceError,
)
from apkforge.core.models import ToolResult


# =============================================================================
# Logger
# =============================================================================
logger = structlog.get_logger()


DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
_READ_CHUNK_SIZE = 64 * 1024


class _OutputLimitExceeded(Exception):
    """Internal signal raised by _OutputCapture when the cap is crossed."""


# =============================================================================
# Output Capture
# =============================================================================
# stdout and stderr are drained concurrently into separate buffers that share
# one byte budget. Draining both pipes is required: a tool that fills the
# stderr pipe while nobody reads it blocks forever.
# =============================================================================
class _OutputCapture:
    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes
        self.total = 0
        self.stdout = bytearray()
        self.stderr = bytearray()

    async def drain(self, stream: Optional[asyncio.StreamReader], buffer: bytearray) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK_SIZE)
            if not chunk:
                return
            self.total += len(chunk)
            if self.total > self.max_bytes:
                raise _OutputLimitExceeded()
            buffer.extend(chunk)


class ToolInvoker:
    """Runs external commands with a timeout and a combined output cap.

    The invoker never interprets tool output; it only captures bytes.
    Side effects are confined to ``working_dir``, which must already exist.

    Attributes:
        default_timeout: Seconds before a tool is killed, when ``run`` is
            called without an explicit timeout.
        default_max_output_bytes: Output cap used when ``run`` is called
            without an explicit cap.

    Example:
        >>> invoker = ToolInvoker()
        >>> result = await invoker.run(
        ...     "java", ["-jar", "tools/apktool.jar", "d", "release.apk", "-o", "out"],
        ...     working_dir=workspace.root,
        ...     stage="unpack",
        ... )
        >>> result.check("unpack")
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        default_max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        self.default_timeout = default_timeout
        self.default_max_output_bytes = default_max_output_bytes
        self._logger = logger.bind(component="tool_invoker")

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        working_dir: Path | str = ".",
        timeout: Optional[float] = None,
        max_output_bytes: Optional[int] = None,
        stage: Optional[str] = None,
    ) -> ToolResult:
        """Execute ``command`` with ``args`` inside ``working_dir``.

        Args:
            command: Executable name or path.
            args: Arguments, passed to the process verbatim.
            working_dir: Directory the process runs in. Must exist.
            timeout: Seconds before the process is killed.
            max_output_bytes: Cap on combined stdout+stderr bytes.
            stage: Pipeline stage name, attached to logs and errors.

        Returns:
            ToolResult with captured output and exit status.

        Raises:
            WorkspaceError: If ``working_dir`` does not exist.
            ToolUnavailableError: If the executable cannot be started.
            ToolTimeoutError: If the process exceeded ``timeout``.
            ToolOutputOverflowError: If the process exceeded the output cap.
        """
        timeout = self.default_timeout if timeout is None else timeout
        max_output_bytes = (
            self.default_max_output_bytes if max_output_bytes is None else max_output_bytes
        )
        cwd = Path(working_dir)
        argv = [command, *args]

        if not cwd.is_dir():
            raise WorkspaceError(
                message=f"Working directory does not exist: {cwd}",
                path=str(cwd),
                error_code="WORKING_DIR_MISSING",
            )

        self._logger.info("tool_started", stage=stage, command=command, argc=len(argv))
        started = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self._logger.warning(
                "tool_unavailable", stage=stage, command=command, error=str(e)
            )
            raise ToolUnavailableError(
                message=f"Required tool '{command}' could not be started: {e.strerror or e}",
                stage=stage,
                details={"command": command},
            ) from e

        capture = _OutputCapture(max_output_bytes)
        try:
            exit_code = await asyncio.wait_for(
                self._communicate(process, capture), timeout=timeout
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            self._logger.warning(
                "tool_timed_out", stage=stage, command=command, timeout_seconds=timeout
            )
            raise ToolTimeoutError(
                message=f"{stage or command} timed out after {timeout:g} seconds",
                stage=stage,
                timeout_seconds=timeout,
                details={"command": command},
            ) from None
        except _OutputLimitExceeded:
            await self._kill(process)
            self._logger.warning(
                "tool_output_overflow",
                stage=stage,
                command=command,
                max_output_bytes=max_output_bytes,
            )
            raise ToolOutputOverflowError(
                message=(
                    f"{stage or command} produced more than {max_output_bytes} bytes of output"
                ),
                stage=stage,
                max_output_bytes=max_output_bytes,
                details={"command": command},
            ) from None
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        result = ToolResult(
            command=argv,
            exit_code=exit_code,
            stdout=bytes(capture.stdout),
            stderr=bytes(capture.stderr),
            duration_seconds=round(time.monotonic() - started, 3),
        )

        self._logger.info(
            "tool_finished",
            stage=stage,
            command=command,
            exit_code=result.exit_code,
            duration_seconds=result.duration_seconds,
            output_bytes=capture.total,
        )
        if result.stderr:
            self._logger.debug("tool_stderr", stage=stage, tail=result.stderr_tail(500))

        return result

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    @staticmethod
    async def _communicate(
        process: asyncio.subprocess.Process, capture: _OutputCapture
    ) -> int:
        readers = [
            asyncio.create_task(capture.drain(process.stdout, capture.stdout)),
            asyncio.create_task(capture.drain(process.stderr, capture.stderr)),
        ]
        try:
            await asyncio.gather(*readers)
        finally:
            for reader in readers:
                reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)
        return await process.wait()

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()
