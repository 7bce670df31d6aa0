"""
apkforge.infrastructure.artifact_store - Durable Artifact Storage
===================================================================

Stores finished artifacts and hands them back for download.

Architecture Context:
    Two storage tiers sit behind one record:

    ┌──────────────┐ persist ┌───────────────┐ 1. copy    ┌──────────────────┐
    │ Orchestrator │ ──────→ │ ArtifactStore │ ─────────→ │ {artifact_dir}/  │  durable
    └──────────────┘         │               │ 2. upload  ┌──────────────────┐
                             │               │ ─────────→ │ ObjectStorage    │  optional
                             │               │ 3. put     ┌──────────────────┐
                             │               │ ─────────→ │ MetadataRegistry │
                             └───────────────┘            └──────────────────┘

Storage Rules:
    - The local copy is written first. Any failed remote upload is logged
      (``remote_upload_failed``) and the download reference falls back to
      the local retrieval path.
    - persist() fails only when neither tier holds the bytes.
    - A record is registered only after its bytes are stored. If
      registration fails, the stored bytes are removed again.

File Naming:
    {owner_id}_{artifact_id}{suffix}    e.g. guest_3f2c...9a.apk

Usage:
    >>> store = ArtifactStore(registry, StorageConfig(), object_storage=None)
    >>> record = await store.persist(workspace.signed_artifact, owner_id="guest")
    >>> download = await store.retrieve(record.artifact_id)
    >>> download.local_path
    PosixPath('user_apks/guest_3f2c...9a.apk')
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Optional

import structlog

from apkforge.core.config import StorageConfig
from apkforge.core.exceptions import (
    ApkForgeError,
    RecordNotFoundError,
    StorageError,
)
from apkforge.core.models import ArtifactDownload, ArtifactRecord, SweepReport, _now
from apkforge.infrastructure.metadata_registry import MetadataRegistry
from apkforge.integrations.object_storage.base import ObjectStorage, RemoteObject


# =============================================================================
# Logger
# =============================================================================
logger = structlog.get_logger()


def _copy_file(source: Path, dest: Path) -> int:
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, dest)
    return dest.stat().st_size


class ArtifactStore:
    """Two-tier artifact storage with a metadata registry.

    Attributes:
        registry: Record registry (expiry, lookup, locking).
        config: Storage configuration.
        object_storage: Optional remote mirror. None disables it.
        artifact_dir: Directory holding the durable local copies.
    """

    def __init__(
        self,
        registry: MetadataRegistry,
        config: StorageConfig,
        object_storage: Optional[ObjectStorage] = None,
    ) -> None:
        self.registry = registry
        self.config = config
        self.object_storage = object_storage
        self.artifact_dir = Path(config.artifact_dir)
        self._logger = logger.bind(component="artifact_store")

    def local_path(self, record: ArtifactRecord) -> Path:
        return self.artifact_dir / record.file_name

    def local_reference(self, artifact_id: str) -> str:
        return self.config.local_download_template.format(artifact_id=artifact_id)

    # =========================================================================
    # Persist
    # =========================================================================

    async def persist(self, local_path: Path, owner_id: str) -> ArtifactRecord:
        """Store a finished artifact and register its record.

        Args:
            local_path: The signed artifact inside a workspace.
            owner_id: Owner of the new artifact.

        Returns:
            The registered ArtifactRecord.

        Raises:
            StorageError: If neither tier could store the bytes, or the
                record could not be registered.
        """
        record = ArtifactRecord.create(
            owner_id=owner_id,
            suffix=self.config.artifact_suffix,
            ttl_seconds=self.registry.ttl_seconds,
            created_at=self.registry.now(),
        )
        dest = self.local_path(record)
        source = Path(local_path)

        size: Optional[int] = None
        local_error: Optional[OSError] = None
        try:
            size = await asyncio.to_thread(_copy_file, source, dest)
        except OSError as e:
            local_error = e
            self._logger.warning(
                "local_copy_failed",
                artifact_id=record.artifact_id,
                path=str(dest),
                error=str(e),
            )

        remote: Optional[RemoteObject] = None
        remote_error: Optional[Exception] = None
        if self.object_storage is not None:
            try:
                remote = await self.object_storage.upload(
                    dest if local_error is None else source,
                    record.file_name,
                    self.config.content_type,
                )
            except Exception as e:
                remote_error = e
                self._logger.warning(
                    "remote_upload_failed",
                    artifact_id=record.artifact_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        if local_error is not None and remote is None:
            raise StorageError(
                message=f"Artifact could not be stored locally or remotely: {local_error}",
                details={
                    "path": str(dest),
                    "remote_error": str(remote_error) if remote_error else None,
                },
            ) from local_error

        if size is None:
            size = await asyncio.to_thread(lambda: source.stat().st_size)

        record = record.model_copy(update={
            "download_url": remote.url if remote else self.local_reference(record.artifact_id),
            "remote_object_id": remote.object_id if remote else None,
            "size_bytes": size,
        })

        try:
            await self.registry.put(record)
        except ApkForgeError as e:
            await self.reclaim(record)
            raise StorageError(
                message=f"Artifact record could not be registered: {e.message}",
                error_code="RECORD_REGISTRATION_FAILURE",
                details={"artifact_id": record.artifact_id},
            ) from e

        self._logger.info(
            "artifact_stored",
            artifact_id=record.artifact_id,
            owner_id=owner_id,
            remote=record.is_remote,
            size_bytes=size,
        )
        return record

    # =========================================================================
    # Retrieve / List
    # =========================================================================

    async def retrieve(self, artifact_id: str) -> ArtifactDownload:
        """Resolve an artifact id to a redirect URL or a local file.

        Raises:
            RecordNotFoundError: If the id is unknown or its bytes are gone.
            RecordExpiredError: If the record has expired.
        """
        record = await self.registry.find(artifact_id)
        local = self.local_path(record)
        local_path = local if await asyncio.to_thread(local.is_file) else None
        redirect_url = record.download_url if record.is_remote else None

        if local_path is None and redirect_url is None:
            raise RecordNotFoundError(
                message=f"Artifact {artifact_id} has no stored bytes",
                artifact_id=artifact_id,
                error_code="ARTIFACT_BYTES_MISSING",
            )
        return ArtifactDownload(record=record, local_path=local_path, redirect_url=redirect_url)

    async def list_by_owner(self, owner_id: str) -> list[ArtifactRecord]:
        return await self.registry.list_by_owner(owner_id)

    # =========================================================================
    # Delete / Reclaim / Sweep
    # =========================================================================

    async def delete(self, artifact_id: str) -> ArtifactRecord:
        """Remove an artifact's record and bytes, expired or not.

        Raises:
            RecordNotFoundError: If the id is unknown.
        """
        record = await self.registry.find(artifact_id, include_expired=True)
        if not await self.registry.remove(record.owner_id, record.artifact_id):
            # A concurrent sweep or delete removed it after the lookup.
            raise RecordNotFoundError(
                message=f"Artifact {artifact_id} not found",
                artifact_id=artifact_id,
            )
        await self.reclaim(record)
        self._logger.info("artifact_deleted", artifact_id=artifact_id, owner_id=record.owner_id)
        return record

    async def reclaim(self, record: ArtifactRecord) -> bool:
        """Remove an artifact's bytes from both tiers.

        Failures are logged, not raised.

        Returns:
            True if every tier was cleaned up.
        """
        clean = True
        if record.remote_object_id and self.object_storage is not None:
            try:
                await self.object_storage.delete(record.remote_object_id)
            except Exception as e:
                clean = False
                self._logger.warning(
                    "remote_delete_failed",
                    artifact_id=record.artifact_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        path = self.local_path(record)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            clean = False
            self._logger.warning(
                "local_delete_failed",
                artifact_id=record.artifact_id,
                path=str(path),
                error=str(e),
            )
        return clean

    async def sweep_expired(self) -> SweepReport:
        """Remove every expired record together with its bytes."""
        report = SweepReport(started_at=_now())
        for record in await self.registry.expired():
            try:
                removed = await self.registry.remove(record.owner_id, record.artifact_id)
            except ApkForgeError as e:
                report.failed.append(record.artifact_id)
                self._logger.warning(
                    "expired_record_removal_failed",
                    artifact_id=record.artifact_id,
                    error=e.message,
                )
                continue
            if removed:
                await self.reclaim(record)
                report.removed.append(record.artifact_id)

        report.finished_at = _now()
        if report.removed or report.failed:
            self._logger.info(
                "expiry_sweep_completed",
                removed=report.removed_count,
                failed=len(report.failed),
            )
        return report
