"""
apkforge.infrastructure.config_patcher - Embedded Config Replacement
======================================================================

Replaces the JSON configuration document inside an unpacked artifact tree.

Patch Steps:
    1. Locate   {unpack_root}/assets/flutter_assets/assets/config.json
    2. Parse    the original (it must be valid JSON, its content is discarded)
    3. Write    the new document as JSON with 2-space indentation
    4. Verify   by re-reading and parsing the written file

The new document replaces the original completely; keys present only in the
original are not carried over.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from apkforge.core.exceptions import ConfigNotFoundError, ConfigParseError

logger = structlog.get_logger()

DEFAULT_CONFIG_RELATIVE_PATH = "assets/flutter_assets/assets/config.json"


class ConfigPatcher:
    """Overwrites the configuration file of an unpacked artifact.

    Attributes:
        relative_path: Location of the config file inside the unpacked tree.

    Example:
        >>> patcher = ConfigPatcher()
        >>> path = patcher.patch(handle.unpack_dir, {"apiUrl": "https://example.com"})
    """

    def __init__(self, relative_path: str = DEFAULT_CONFIG_RELATIVE_PATH) -> None:
        self.relative_path = relative_path
        self._logger = logger.bind(component="config_patcher")

    def resolve(self, unpack_root: Path) -> Path:
        """Absolute location of the config file under ``unpack_root``.

        Raises:
            ConfigNotFoundError: If the relative path escapes the tree.
        """
        root = Path(unpack_root).resolve()
        target = (root / self.relative_path).resolve()
        if not target.is_relative_to(root):
            raise ConfigNotFoundError(
                message=f"Config path {self.relative_path!r} escapes the unpacked tree",
                path=str(target),
            )
        return target

    def patch(self, unpack_root: Path, new_config: dict[str, Any]) -> Path:
        """Replace the config file with ``new_config``.

        Args:
            unpack_root: Root of the unpacked artifact tree.
            new_config: The complete replacement document.

        Returns:
            Path of the rewritten file.

        Raises:
            ConfigNotFoundError: If the file does not exist.
            ConfigParseError: If the original or rewritten file is not valid
                JSON, or the file cannot be read or written.
        """
        path = self.resolve(unpack_root)
        if not path.is_file():
            raise ConfigNotFoundError(
                message=(
                    f"Configuration file not found at {self.relative_path}; "
                    f"the source artifact does not have the expected layout"
                ),
                path=str(path),
            )

        self._load(path, "original")

        try:
            serialized = json.dumps(new_config, indent=2)
        except (TypeError, ValueError) as e:
            raise ConfigParseError(
                message=f"Configuration payload is not JSON-serializable: {e}",
                path=str(path),
            ) from e

        try:
            path.write_text(serialized, encoding="utf-8")
        except OSError as e:
            raise ConfigParseError(
                message=f"Could not write configuration file: {e}",
                path=str(path),
                error_code="CONFIG_WRITE_FAILURE",
            ) from e

        written = self._load(path, "rewritten")
        if written != new_config:
            raise ConfigParseError(
                message="Rewritten configuration file does not match the payload",
                path=str(path),
                error_code="CONFIG_VERIFY_FAILURE",
            )

        self._logger.info(
            "config_patched", path=str(path), keys=sorted(new_config)[:20]
        )
        return path

    @staticmethod
    def _load(path: Path, which: str) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValueError) as e:
            raise ConfigParseError(
                message=f"Could not parse {which} configuration file: {e}",
                path=str(path),
                details={"document": which},
            ) from e
