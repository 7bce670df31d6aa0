"""
apkforge.facade - ApkForge Top-Level Facade
=============================================

The single entry point that wires every layer together and owns their
lifecycle.

Architecture Context:
    ┌─────────────────────────────────────────────────────┐
    │                 ApkForge (Facade)                    │
    │                                                      │
    │  ┌────────────────────────────────────────────────┐  │
    │  │  Orchestration Layer                           │  │
    │  │  PipelineOrchestrator, CleanupScheduler,       │  │
    │  │  ExpirySweeper                                 │  │
    │  └───────────────────────┬────────────────────────┘  │
    │                          │                           │
    │  ┌───────────────────────▼────────────────────────┐  │
    │  │  Infrastructure Layer                          │  │
    │  │  ToolInvoker, WorkspaceManager, ConfigPatcher, │  │
    │  │  ArtifactStore, MetadataRegistry               │  │
    │  └───────────────────────┬────────────────────────┘  │
    │                          │                           │
    │  ┌───────────────────────▼────────────────────────┐  │
    │  │  Integration Layer                             │  │
    │  │  Toolchain, MetadataBackend, ObjectStorage     │  │
    │  └────────────────────────────────────────────────┘  │
    └─────────────────────────────────────────────────────┘

Usage:
    >>> from apkforge import ApkForge
    >>>
    >>> async with ApkForge(config) as forge:
    ...     job = await forge.submit({"apiUrl": "https://example.com"}, owner_id="alice")
    ...     if job.succeeded:
    ...         download = await forge.retrieve(job.record.artifact_id)
    ...     else:
    ...         print(job.error.kind, job.error.message)
"""

from __future__ import annotations

import asyncio
import re
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Union

import structlog

from apkforge.core.config import ForgeConfig
from apkforge.core.exceptions import InvalidPayloadError
from apkforge.core.logging import configure_logging
from apkforge.core.models import ArtifactDownload, ArtifactRecord, Job, SweepReport
from apkforge.infrastructure.artifact_store import ArtifactStore
from apkforge.infrastructure.config_patcher import ConfigPatcher
from apkforge.infrastructure.metadata_registry import MetadataRegistry
from apkforge.infrastructure.tool_invoker import ToolInvoker
from apkforge.infrastructure.workspace import WorkspaceManager
from apkforge.integrations.metadata.base import MetadataBackend
from apkforge.integrations.metadata.factory import create_metadata_backend
from apkforge.integrations.object_storage.base import ObjectStorage
from apkforge.integrations.object_storage.factory import create_object_storage
from apkforge.integrations.toolchain import Toolchain
from apkforge.orchestration.cleanup import CleanupScheduler
from apkforge.orchestration.pipeline import PipelineOrchestrator, validate_payload
from apkforge.orchestration.sweeper import ExpirySweeper


# =============================================================================
# Logger
# =============================================================================
logger = structlog.get_logger()

# Owner ids become part of stored file names.
_UNSAFE_OWNER_CHARS = re.compile(r"[/\\\x00-\x1f]")


class ApkForge:
    """Top-level facade for apkforge.

    Lifecycle:
        1. ``ApkForge(config)``      Wire components from configuration
        2. ``await initialize()``    Configure logging, connect the metadata
                                     backend, start the expiry sweeper
        3. ``await submit(...)``     Run jobs (any number concurrently)
        4. ``await shutdown()``      Stop the sweeper, drain cleanups,
                                     disconnect

    Attributes:
        _config: apkforge configuration.
        _registry: Artifact record registry.
        _store: Two-tier artifact storage.
        _orchestrator: The per-job state machine.
        _cleanup: Deferred workspace removal.
        _sweeper: Periodic expiry sweep.
        _initialized: Whether initialize() has been called.

    Example:
        >>> forge = ApkForge(ForgeConfig(source_artifact_path="uploads/release.apk"))
        >>> await forge.initialize()
        >>> job = await forge.submit({"apiUrl": "https://example.com"})
        >>> await forge.shutdown()
    """

    def __init__(
        self,
        config: Optional[ForgeConfig] = None,
        *,
        metadata_backend: Optional[MetadataBackend] = None,
        object_storage: Optional[ObjectStorage] = None,
        invoker: Optional[ToolInvoker] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Wire every component.

        Args:
            config: Configuration. Defaults to ForgeConfig() (environment).
            metadata_backend: Custom backend. Defaults to the one selected by
                ``config.metadata``.
            object_storage: Custom remote mirror. Defaults to the one selected
                by ``config.object_storage`` (None when disabled).
            invoker: Custom tool invoker.
            clock: UTC clock used for record creation and expiry.
        """
        # --- Configuration ---
        self._config = config or ForgeConfig()
        cfg = self._config

        # --- Integration Layer ---
        self._toolchain = Toolchain(cfg.toolchain)
        self._metadata_backend = metadata_backend or create_metadata_backend(cfg.metadata)
        self._object_storage = object_storage or create_object_storage(
            cfg.object_storage, url_ttl_seconds=cfg.storage.ttl_seconds
        )

        # --- Infrastructure Layer ---
        self._invoker = invoker or ToolInvoker(
            default_timeout=cfg.toolchain.stage_timeout_seconds,
            default_max_output_bytes=cfg.toolchain.max_output_bytes,
        )
        self._workspaces = WorkspaceManager(
            cfg.workspace.root_dir,
            name_prefix=cfg.workspace.name_prefix,
            artifact_suffix=cfg.storage.artifact_suffix,
        )
        self._patcher = ConfigPatcher(cfg.workspace.config_relative_path)
        self._registry = MetadataRegistry(
            self._metadata_backend,
            ttl_seconds=cfg.storage.ttl_seconds,
            clock=clock,
        )
        self._store = ArtifactStore(self._registry, cfg.storage, self._object_storage)

        # --- Orchestration Layer ---
        self._cleanup = CleanupScheduler(
            self._workspaces, retry_delay=cfg.workspace.retry_cleanup_delay_seconds
        )
        self._orchestrator = PipelineOrchestrator(
            toolchain=self._toolchain,
            invoker=self._invoker,
            workspaces=self._workspaces,
            patcher=self._patcher,
            store=self._store,
            cleanup=self._cleanup,
            workspace_config=cfg.workspace,
        )
        self._sweeper = ExpirySweeper(
            self._store, interval_seconds=cfg.storage.sweep_interval_seconds
        )

        # --- Tracking ---
        self._initialized = False
        self._logger = logger.bind(component="apkforge")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> ForgeConfig:
        return self._config

    @property
    def store(self) -> ArtifactStore:
        return self._store

    @property
    def registry(self) -> MetadataRegistry:
        return self._registry

    @property
    def orchestrator(self) -> PipelineOrchestrator:
        return self._orchestrator

    @property
    def cleanup(self) -> CleanupScheduler:
        return self._cleanup

    @property
    def sweeper(self) -> ExpirySweeper:
        return self._sweeper

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def initialize(self) -> None:
        """Configure logging, connect the metadata backend and start the sweeper.

        Idempotent: Safe to call multiple times.
        """
        if self._initialized:
            self._logger.debug("apkforge_already_initialized")
            return

        configure_logging(self._config.log_level, self._config.log_format)
        self._logger.info("apkforge_initializing", environment=self._config.environment)

        await self._metadata_backend.connect()
        self._sweeper.start()

        self._initialized = True
        self._logger.info("apkforge_initialized")

    async def shutdown(self, cancel_cleanups: bool = False) -> None:
        """Stop the sweeper, finish pending cleanups and disconnect.

        Idempotent: Safe to call multiple times.
        """
        if not self._initialized:
            self._logger.debug("apkforge_not_initialized_skipping_shutdown")
            return

        self._logger.info("apkforge_shutting_down")
        await self._sweeper.stop()
        await self._cleanup.shutdown(cancel=cancel_cleanups)
        if self._object_storage is not None:
            await self._object_storage.close()
        await self._metadata_backend.disconnect()

        self._initialized = False
        self._logger.info("apkforge_shutdown_complete")

    async def __aenter__(self) -> ApkForge:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                "ApkForge is not initialized. "
                "Call 'await forge.initialize()' or use 'async with ApkForge() as forge:'."
            )

    # =========================================================================
    # Jobs
    # =========================================================================

    def resolve_owner(self, owner_id: Optional[str], payload: dict[str, Any]) -> str:
        """Explicit owner, else the payload's ``userId``, else the default owner.

        Raises:
            InvalidPayloadError: If the resolved owner id is unusable in a
                file name.
        """
        candidate = owner_id or payload.get("userId") or self._config.default_owner_id
        owner = str(candidate).strip()
        if not owner or _UNSAFE_OWNER_CHARS.search(owner):
            raise InvalidPayloadError(
                message=f"Owner id {owner!r} is not allowed",
                error_code="INVALID_OWNER_ID",
            )
        return owner

    async def submit(
        self,
        config_payload: dict[str, Any],
        owner_id: Optional[str] = None,
        source_artifact: Optional[Union[str, Path]] = None,
    ) -> Job:
        """Customize the source artifact with ``config_payload``.

        Args:
            config_payload: Document that replaces the embedded config file.
            owner_id: Owner of the produced artifact.
            source_artifact: Artifact to customize. Defaults to
                ``config.source_artifact_path``.

        Returns:
            The job in READY (``job.record`` set) or FAILED (``job.error`` set).

        Raises:
            RuntimeError: If ApkForge has not been initialized.
            InvalidPayloadError: If the payload is empty or not an object.
        """
        self._ensure_initialized()
        validate_payload(config_payload)

        job = Job(
            owner_id=self.resolve_owner(owner_id, config_payload),
            config_payload=config_payload,
            source_artifact=Path(source_artifact or self._config.source_artifact_path),
        )
        return await self._orchestrator.run(job)

    # =========================================================================
    # Artifacts
    # =========================================================================

    async def list_artifacts(self, owner_id: Optional[str] = None) -> list[ArtifactRecord]:
        """Non-expired artifacts of ``owner_id`` (default owner when None)."""
        self._ensure_initialized()
        return await self._store.list_by_owner(owner_id or self._config.default_owner_id)

    async def retrieve(self, artifact_id: str) -> ArtifactDownload:
        """Resolve an artifact id for download.

        Raises:
            RecordNotFoundError: Unknown id, or no stored bytes.
            RecordExpiredError: Known id past its expiry.
        """
        self._ensure_initialized()
        return await self._store.retrieve(artifact_id)

    async def delete(self, artifact_id: str) -> ArtifactRecord:
        """Delete an artifact's record and bytes.

        Raises:
            RecordNotFoundError: Unknown id.
        """
        self._ensure_initialized()
        return await self._store.delete(artifact_id)

    async def sweep_expired(self) -> SweepReport:
        """Run one expiry sweep now."""
        self._ensure_initialized()
        return await self._sweeper.run_once()

    # =========================================================================
    # Diagnostics
    # =========================================================================

    async def diagnostics(self) -> dict[str, Any]:
        """Report the state of the toolchain, storage and background tasks."""
        self._ensure_initialized()
        cfg = self._config

        source = Path(cfg.source_artifact_path)
        source_exists = await asyncio.to_thread(source.is_file)
        source_size = (await asyncio.to_thread(source.stat)).st_size if source_exists else None

        with tempfile.TemporaryDirectory(prefix=cfg.workspace.name_prefix) as probe_dir:
            toolchain = await self._toolchain.describe(self._invoker, Path(probe_dir))

        return {
            "environment": cfg.environment,
            "source_artifact": {
                "path": str(source.resolve()),
                "exists": source_exists,
                "size_bytes": source_size,
            },
            "toolchain": toolchain,
            "storage": {
                "artifact_dir": str(self._store.artifact_dir.resolve()),
                "workspace_root": str(self._workspaces.root_dir),
                "metadata_backend": cfg.metadata.backend.value,
                "metadata_healthy": await self._registry.healthy(),
                "record_count": await self._registry.count(),
                "object_storage": cfg.object_storage.backend.value
                if self._object_storage is not None
                else "none",
            },
            "background": {
                "pending_cleanups": self._cleanup.pending_count,
                "sweeper_running": self._sweeper.running,
                "last_sweep_removed": (
                    self._sweeper.last_report.removed_count
                    if self._sweeper.last_report
                    else None
                ),
            },
        }
