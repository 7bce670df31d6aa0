"""
apkforge.integrations.toolchain - Unpack / Repack / Sign Tool Contracts
=========================================================================

Turns ToolchainConfig templates into concrete argument vectors and knows the
naming contract of the signing tool. It never starts a process itself; the
ToolInvoker does that.

Tool Contracts:
    unpack(source, dest)      → directory tree at dest
    repack(source, dest)      → archive file at dest
    sign(input, output_dir)   → {output_dir}/{stem}{signed_name_suffix}{ext}

Usage:
    >>> toolchain = Toolchain(ToolchainConfig())
    >>> toolchain.unpack_command(Path("/srv/release.apk"), Path("/tmp/apk-1/decompiled"))
    ["java", "-jar", "/srv/tools/apktool.jar", "d", "/srv/release.apk",
     "-o", "/tmp/apk-1/decompiled", "--force-all"]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog

from apkforge.core.config import ToolchainConfig
from apkforge.core.exceptions import ApkForgeError, ToolUnavailableError
from apkforge.infrastructure.tool_invoker import ToolInvoker

logger = structlog.get_logger()


class Toolchain:
    """Renders tool argument vectors from configuration.

    Every template element is formatted on its own, so substituted paths are
    never split or re-parsed. Tool file paths are made absolute because the
    tools run with a workspace as their working directory.

    Attributes:
        config: The toolchain configuration.
    """

    def __init__(self, config: ToolchainConfig) -> None:
        self.config = config
        self._logger = logger.bind(component="toolchain")

    # =========================================================================
    # Command Rendering
    # =========================================================================

    def _render(self, template: list[str], **values: Any) -> list[str]:
        context = {
            "java": self.config.java_executable,
            "apktool_jar": str(Path(self.config.apktool_jar).resolve()),
            "signer_jar": str(Path(self.config.signer_jar).resolve()),
            **{key: str(value) for key, value in values.items()},
        }
        return [part.format(**context) for part in template]

    def unpack_command(self, source: Path, dest: Path) -> list[str]:
        return self._render(self.config.unpack_command, source=source, dest=dest)

    def repack_command(self, source: Path, dest: Path) -> list[str]:
        return self._render(self.config.repack_command, source=source, dest=dest)

    def sign_command(self, input_path: Path, output_dir: Path) -> list[str]:
        return self._render(
            self.config.sign_command, input=input_path, output_dir=output_dir
        )

    def probe_command(self) -> list[str]:
        return self._render(self.config.probe_command)

    def required_paths(self) -> list[Path]:
        return [Path(p) for p in self._render(self.config.required_files)]

    def signed_output_path(self, input_path: Path, output_dir: Path) -> Path:
        """Where the signing tool writes its output for ``input_path``.

        ``modified_release.apk`` → ``modified_release-aligned-debugSigned.apk``
        """
        name = f"{input_path.stem}{self.config.signed_name_suffix}{input_path.suffix}"
        return output_dir / name

    # =========================================================================
    # Preflight
    # =========================================================================

    async def preflight(self, invoker: ToolInvoker, working_dir: Path) -> None:
        """Check that every tool file exists and the runtime probe succeeds.

        Args:
            invoker: The ToolInvoker used to run the probe.
            working_dir: Directory the probe runs in.

        Raises:
            ToolUnavailableError: If a tool file is missing, or the probe
                cannot run, times out or exits non-zero.
        """
        missing = [str(p) for p in self.required_paths() if not p.is_file()]
        if missing:
            raise ToolUnavailableError(
                message=f"Required tool files not found: {', '.join(missing)}",
                stage="preflight",
                details={"missing": missing},
            )

        argv = self.probe_command()
        if not argv:
            return

        try:
            result = await invoker.run(
                argv[0],
                argv[1:],
                working_dir=working_dir,
                timeout=self.config.probe_timeout_seconds,
                max_output_bytes=self.config.max_output_bytes,
                stage="preflight",
            )
        except ToolUnavailableError:
            raise
        except ApkForgeError as e:
            raise ToolUnavailableError(
                message=f"Tool runtime probe failed: {e.message}",
                stage="preflight",
                details={"command": argv[0], "cause": e.error_code},
            ) from e

        if not result.succeeded:
            raise ToolUnavailableError(
                message=(
                    f"Tool runtime probe '{argv[0]}' exited with code {result.exit_code}"
                ),
                stage="preflight",
                details={"command": argv[0], "output_tail": result.stderr_tail()},
            )

        self._logger.debug("toolchain_preflight_passed", command=argv[0])

    async def describe(self, invoker: ToolInvoker, working_dir: Path) -> dict[str, Any]:
        """Report tool file presence and probe output without raising."""
        files = {str(p): p.is_file() for p in self.required_paths()}
        report: dict[str, Any] = {"tool_files": files, "probe": None}

        argv = self.probe_command()
        if not argv:
            return report

        try:
            result = await invoker.run(
                argv[0],
                argv[1:],
                working_dir=working_dir,
                timeout=self.config.probe_timeout_seconds,
                max_output_bytes=self.config.max_output_bytes,
                stage="diagnostics",
            )
        except ApkForgeError as e:
            report["probe"] = {"available": False, "error": e.message}
        else:
            report["probe"] = {
                "available": result.succeeded,
                "exit_code": result.exit_code,
                "output": result.stderr_tail(500).strip(),
            }
        return report
