"""
apkforge.orchestration.sweeper - Periodic Expiry Sweep
========================================================

Background task that removes expired artifacts every
``storage.sweep_interval_seconds``. A failing sweep is logged and the loop
carries on with the next interval.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from apkforge.core.models import SweepReport
from apkforge.infrastructure.artifact_store import ArtifactStore

logger = structlog.get_logger()


class ExpirySweeper:
    """Runs ArtifactStore.sweep_expired() on a fixed interval.

    Example:
        >>> sweeper = ExpirySweeper(store, interval_seconds=600)
        >>> sweeper.start()
        >>> ...
        >>> await sweeper.stop()
    """

    def __init__(self, store: ArtifactStore, interval_seconds: float = 600.0) -> None:
        self.store = store
        self.interval_seconds = interval_seconds
        self.last_report: Optional[SweepReport] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._logger = logger.bind(component="expiry_sweeper")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> SweepReport:
        report = await self.store.sweep_expired()
        self.last_report = report
        return report

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception:
                self._logger.exception("expiry_sweep_failed")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="apkforge-expiry-sweeper")
        self._logger.info("expiry_sweeper_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._logger.info("expiry_sweeper_stopped")
