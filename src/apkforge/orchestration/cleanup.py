"""
apkforge.orchestration.cleanup - Deferred Workspace Removal
=============================================================

Removes workspaces in the background after a job is terminal, so the
caller's response never waits on filesystem cleanup.

Retry Policy:
    t = delay            destroy()
                           ├── ok / already gone  → done
                           ├── busy (EBUSY, ENOTEMPTY)
                           │     t += retry_delay → destroy() once more
                           │                          └── failure → logged
                           └── other failure      → logged

Nothing here ever raises into the pipeline; ``workspace_cleanup_failed`` is
the only trace a failed cleanup leaves.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Union

import structlog

from apkforge.core.exceptions import WorkspaceBusyError, WorkspaceCleanupError
from apkforge.infrastructure.workspace import WorkspaceManager

logger = structlog.get_logger()


class CleanupScheduler:
    """Background queue of workspace removals.

    Attributes:
        workspace_manager: Performs the actual removal.
        retry_delay: Seconds before the single retry of a busy workspace.

    Example:
        >>> scheduler = CleanupScheduler(manager, retry_delay=5.0)
        >>> scheduler.schedule(handle.root, delay=2.0)
        >>> await scheduler.drain()
    """

    def __init__(self, workspace_manager: WorkspaceManager, retry_delay: float = 5.0) -> None:
        self.workspace_manager = workspace_manager
        self.retry_delay = retry_delay
        self._tasks: set[asyncio.Task[None]] = set()
        self._logger = logger.bind(component="cleanup_scheduler")

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def schedule(self, path: Union[str, Path], delay: float) -> asyncio.Task[None]:
        """Remove ``path`` after ``delay`` seconds, without blocking the caller."""
        task = asyncio.create_task(
            self._run(Path(path), delay), name=f"cleanup:{Path(path).name}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._logger.debug("workspace_cleanup_scheduled", path=str(path), delay=delay)
        return task

    async def _run(self, path: Path, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await asyncio.to_thread(self.workspace_manager.destroy, path)
            return
        except WorkspaceBusyError as e:
            self._logger.info(
                "workspace_cleanup_retrying",
                path=str(path),
                retry_delay=self.retry_delay,
                error=e.message,
            )
        except WorkspaceCleanupError as e:
            self._logger.warning("workspace_cleanup_failed", path=str(path), error=e.message)
            return

        await asyncio.sleep(self.retry_delay)
        try:
            await asyncio.to_thread(self.workspace_manager.destroy, path)
        except WorkspaceCleanupError as e:
            self._logger.warning(
                "workspace_cleanup_failed", path=str(path), error=e.message, retried=True
            )

    async def drain(self) -> None:
        """Wait for every scheduled cleanup to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, cancel: bool = False) -> None:
        """Finish (or cancel) pending cleanups.

        Args:
            cancel: Cancel pending cleanups instead of waiting for them.
                Cancelled workspaces stay on disk.
        """
        if cancel:
            for task in list(self._tasks):
                task.cancel()
        await self.drain()
        self._logger.info("cleanup_scheduler_stopped", cancelled=cancel)
