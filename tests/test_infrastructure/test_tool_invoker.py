"""
Tests for apkforge.infrastructure.tool_invoker
================================================

Runs real child processes (the current Python interpreter with ``-c``)
to verify the outcome mapping of ToolInvoker.

What's Being Tested:
    - Successful runs capture stdout/stderr and the exit status
    - Non-zero exits are returned, and ``check()`` turns them into errors
    - Timeouts kill the process and raise ToolTimeoutError
    - Output above the cap raises ToolOutputOverflowError
    - Missing executables and working directories are reported
    - Arguments reach the process verbatim, without a shell
"""

import asyncio
import os
import sys
from pathlib import Path

import pytest

from apkforge.core.enums import ErrorKind
from apkforge.core.exceptions import (
    ToolExecutionError,
    ToolOutputOverflowError,
    ToolTimeoutError,
    ToolUnavailableError,
    WorkspaceError,
)
from apkforge.infrastructure.tool_invoker import ToolInvoker


# =============================================================================
# Helpers
# =============================================================================
async def _python(invoker: ToolInvoker, code: str, cwd: Path, **kwargs):
    return await invoker.run(sys.executable, ["-c", code], working_dir=cwd, **kwargs)


# =============================================================================
# Tests: Completed Processes
# =============================================================================
class TestCompletedRuns:
    async def test_captures_stdout(self, tmp_path: Path) -> None:
        result = await _python(ToolInvoker(), "print('hello')", tmp_path)
        assert result.exit_code == 0
        assert result.succeeded
        assert result.stdout.strip() == b"hello"
        assert result.command[0] == sys.executable

    async def test_non_zero_exit_is_returned(self, tmp_path: Path) -> None:
        code = "import sys; sys.stderr.write('apktool: bad resource'); sys.exit(4)"
        result = await _python(ToolInvoker(), code, tmp_path)
        assert result.exit_code == 4
        assert b"bad resource" in result.stderr

    async def test_check_raises_with_stage(self, tmp_path: Path) -> None:
        result = await _python(ToolInvoker(), "raise SystemExit(2)", tmp_path, stage="repack")
        with pytest.raises(ToolExecutionError) as exc_info:
            result.check("repack")
        assert exc_info.value.exit_code == 2
        assert exc_info.value.kind == ErrorKind.TOOL_EXECUTION_FAILURE

    async def test_runs_in_working_dir(self, tmp_path: Path) -> None:
        result = await _python(ToolInvoker(), "import os; print(os.getcwd())", tmp_path)
        assert Path(result.stdout.decode().strip()).resolve() == tmp_path.resolve()

    async def test_arguments_are_not_shell_parsed(self, tmp_path: Path) -> None:
        result = await ToolInvoker().run(
            sys.executable,
            ["-c", "import sys; print(sys.argv[1])", "$(echo hi); touch pwned"],
            working_dir=tmp_path,
        )
        assert result.stdout.decode().strip() == "$(echo hi); touch pwned"
        assert not (tmp_path / "pwned").exists()

    async def test_large_stderr_does_not_block(self, tmp_path: Path) -> None:
        """Both pipes are drained, so a chatty stderr cannot deadlock the tool."""
        code = "import sys; sys.stderr.write('e' * 300000); print('done')"
        result = await _python(ToolInvoker(), code, tmp_path, timeout=20)
        assert result.stdout.strip() == b"done"
        assert len(result.stderr) == 300000


# =============================================================================
# Tests: Failure Mapping
# =============================================================================
class TestFailures:
    async def test_timeout_kills_process(self, tmp_path: Path) -> None:
        started = asyncio.get_running_loop().time()
        with pytest.raises(ToolTimeoutError) as exc_info:
            await _python(
                ToolInvoker(), "import time; time.sleep(30)", tmp_path,
                timeout=0.5, stage="unpack",
            )
        assert asyncio.get_running_loop().time() - started < 10
        assert exc_info.value.stage == "unpack"
        assert exc_info.value.timeout_seconds == 0.5

    async def test_default_timeout_is_used(self, tmp_path: Path) -> None:
        invoker = ToolInvoker(default_timeout=0.5)
        with pytest.raises(ToolTimeoutError):
            await _python(invoker, "import time; time.sleep(30)", tmp_path)

    async def test_output_overflow(self, tmp_path: Path) -> None:
        code = "import sys; sys.stdout.write('x' * 500000)"
        with pytest.raises(ToolOutputOverflowError) as exc_info:
            await _python(ToolInvoker(), code, tmp_path, max_output_bytes=4096)
        assert exc_info.value.max_output_bytes == 4096
        assert exc_info.value.error_code == "TOOL_OUTPUT_OVERFLOW"

    async def test_missing_executable(self, tmp_path: Path) -> None:
        with pytest.raises(ToolUnavailableError) as exc_info:
            await ToolInvoker().run(
                str(tmp_path / "no-such-tool"), ["--version"], working_dir=tmp_path, stage="sign"
            )
        assert exc_info.value.kind == ErrorKind.TOOL_UNAVAILABLE
        assert exc_info.value.stage == "sign"

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
    async def test_non_executable_file(self, tmp_path: Path) -> None:
        script = tmp_path / "tool.sh"
        script.write_text("#!/bin/sh\necho hi\n")
        script.chmod(0o644)
        with pytest.raises(ToolUnavailableError):
            await ToolInvoker().run(str(script), working_dir=tmp_path)

    @pytest.mark.skipif(os.name == "nt", reason="POSIX exec semantics")
    async def test_unrecognized_executable_format(self, tmp_path: Path) -> None:
        binary = tmp_path / "tool"
        binary.write_bytes(b"\x00\x01\x02\x03 not an executable image")
        binary.chmod(0o755)
        with pytest.raises(ToolUnavailableError):
            await ToolInvoker().run(str(binary), working_dir=tmp_path, stage="repack")

    async def test_executable_path_through_a_file(self, tmp_path: Path) -> None:
        (tmp_path / "file").write_text("not a directory")
        with pytest.raises(ToolUnavailableError):
            await ToolInvoker().run(str(tmp_path / "file" / "tool"), working_dir=tmp_path)

    async def test_missing_working_dir(self, tmp_path: Path) -> None:
        with pytest.raises(WorkspaceError) as exc_info:
            await _python(ToolInvoker(), "print(1)", tmp_path / "gone")
        assert exc_info.value.error_code == "WORKING_DIR_MISSING"

    async def test_cancellation_propagates(self, tmp_path: Path) -> None:
        task = asyncio.create_task(
            _python(ToolInvoker(), "import time; time.sleep(30)", tmp_path)
        )
        await asyncio.sleep(0.3)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
