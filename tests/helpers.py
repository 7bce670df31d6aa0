"""
Test helpers shared by fixtures and test modules.
"""

from __future__ import annotations

import json
import sys
import zipfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable

from apkforge.core.config import (
    ForgeConfig,
    StorageConfig,
    ToolchainConfig,
    WorkspaceConfig,
)

FAKE_TOOL = Path(__file__).with_name("fake_tools.py")
CONFIG_PATH = "assets/flutter_assets/assets/config.json"


# =============================================================================
# Helpers
# =============================================================================
class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def build_artifact(path: Path, files: dict[str, Any]) -> Path:
    """Write a zip artifact. Non-string values are stored as JSON."""
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in files.items():
            if isinstance(content, (bytes, str)):
                archive.writestr(name, content)
            else:
                archive.writestr(name, json.dumps(content))
    return path


def read_embedded_config(artifact: Path) -> Any:
    with zipfile.ZipFile(artifact) as archive:
        return json.loads(archive.read(CONFIG_PATH))


def fake_toolchain_config(
    unpack: Iterable[str] = (),
    repack: Iterable[str] = (),
    sign: Iterable[str] = (),
    probe: Iterable[str] = (),
    **overrides: Any,
) -> ToolchainConfig:
    """ToolchainConfig that drives fake_tools.py, with extra options per tool."""
    values: dict[str, Any] = {
        "java_executable": sys.executable,
        "apktool_jar": str(FAKE_TOOL),
        "signer_jar": str(FAKE_TOOL),
        "unpack_command": ["{java}", "{apktool_jar}", "unpack", "{source}", "{dest}", *unpack],
        "repack_command": ["{java}", "{apktool_jar}", "repack", "{source}", "{dest}", *repack],
        "sign_command": ["{java}", "{signer_jar}", "sign", "{input}", "{output_dir}", *sign],
        "probe_command": ["{java}", "{apktool_jar}", "probe", *probe],
        "stage_timeout_seconds": 20.0,
        "probe_timeout_seconds": 20.0,
    }
    values.update(overrides)
    return ToolchainConfig(**values)


def make_forge_config(tmp_path: Path, toolchain: ToolchainConfig | None = None, **overrides: Any) -> ForgeConfig:
    values: dict[str, Any] = {
        "log_level": "WARNING",
        "source_artifact_path": str(tmp_path / "uploads" / "release.apk"),
        "toolchain": toolchain or fake_toolchain_config(),
        "workspace": WorkspaceConfig(
            root_dir=str(tmp_path / "work"),
            success_cleanup_delay_seconds=0.0,
            failure_cleanup_delay_seconds=0.0,
            retry_cleanup_delay_seconds=0.05,
        ),
        "storage": StorageConfig(artifact_dir=str(tmp_path / "user_apks")),
    }
    values.update(overrides)
    return ForgeConfig(**values)
