"""
apkforge.infrastructure.workspace - Ephemeral Job Workspaces
==============================================================

Every job gets its own directory, created before the first tool runs and
removed after the job is terminal. Nothing outside the workspace (apart from
the durable artifact copy) is ever written by a job.

Workspace Lifecycle:
    create() ──→ tools write inside root ──→ CleanupScheduler ──→ destroy()

Names are ``{prefix}{monotonic_ns}-{random}``; the directory is created with
``exist_ok=False`` so two jobs can never share one.
"""

from __future__ import annotations

import errno
import secrets
import shutil
import time
from pathlib import Path
from typing import Union

import structlog

from apkforge.core.exceptions import (
    WorkspaceBusyError,
    WorkspaceCleanupError,
    WorkspaceError,
)
from apkforge.core.models import WorkspaceHandle

logger = structlog.get_logger()

_BUSY_ERRNOS = frozenset({errno.EBUSY, errno.ENOTEMPTY})


class WorkspaceManager:
    """Creates and removes per-job workspace directories.

    Attributes:
        root_dir: Parent directory of every workspace.
        name_prefix: Prefix of workspace directory names.
        artifact_suffix: File extension used for the repacked and signed files.

    Example:
        >>> manager = WorkspaceManager("/tmp", name_prefix="apk-")
        >>> handle = manager.create()
        >>> handle.unpack_dir.is_dir()
        True
        >>> manager.destroy(handle.root)
        True
    """

    def __init__(
        self,
        root_dir: Union[str, Path],
        name_prefix: str = "apk-",
        artifact_suffix: str = ".apk",
    ) -> None:
        self.root_dir = Path(root_dir).resolve()
        self.name_prefix = name_prefix
        self.artifact_suffix = artifact_suffix
        self._logger = logger.bind(component="workspace_manager")

    def _new_name(self) -> str:
        return f"{self.name_prefix}{time.monotonic_ns()}-{secrets.token_hex(4)}"

    def create(self) -> WorkspaceHandle:
        """Create a fresh workspace with its unpack directory.

        Raises:
            WorkspaceError: If the filesystem rejects the creation.
        """
        root = self.root_dir / self._new_name()
        try:
            self.root_dir.mkdir(parents=True, exist_ok=True)
            root.mkdir(exist_ok=False)
            handle = WorkspaceHandle.for_root(root, suffix=self.artifact_suffix)
            handle.unpack_dir.mkdir()
        except OSError as e:
            raise WorkspaceError(
                message=f"Could not create workspace {root}: {e}",
                path=str(root),
            ) from e

        self._logger.debug("workspace_created", path=str(root))
        return handle

    def owns(self, path: Union[str, Path]) -> bool:
        """True when ``path`` is a workspace directory created by this manager."""
        path = Path(path).resolve()
        return path.parent == self.root_dir and path.name.startswith(self.name_prefix)

    def destroy(self, path: Union[str, Path]) -> bool:
        """Recursively remove a workspace.

        Removing a workspace that no longer exists is a no-op.

        Returns:
            True if something was removed, False if the path was absent.

        Raises:
            WorkspaceBusyError: If removal failed with EBUSY or ENOTEMPTY.
            WorkspaceCleanupError: If the path is not a workspace, or removal
                failed for any other reason.
        """
        path = Path(path)
        if not self.owns(path):
            raise WorkspaceCleanupError(
                message=f"Refusing to remove {path}: not a workspace under {self.root_dir}",
                path=str(path),
                error_code="WORKSPACE_PATH_REJECTED",
            )
        if not path.exists():
            return False

        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            if e.errno in _BUSY_ERRNOS:
                raise WorkspaceBusyError(
                    message=f"Workspace {path} is busy: {e}",
                    path=str(path),
                    details={"errno": e.errno},
                ) from e
            raise WorkspaceCleanupError(
                message=f"Could not remove workspace {path}: {e}",
                path=str(path),
                details={"errno": e.errno},
            ) from e

        self._logger.debug("workspace_destroyed", path=str(path))
        return True
