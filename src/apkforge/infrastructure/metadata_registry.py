"""
apkforge.infrastructure.metadata_registry - Artifact Record Registry
======================================================================

Typed, expiry-aware view over a MetadataBackend.

Architecture Context:
    ┌───────────────┐  put / get / find   ┌──────────────────┐  JSON  ┌─────────┐
    │ ArtifactStore │ ──────────────────→ │ MetadataRegistry │ ─────→ │ Backend │
    └───────────────┘ ←────────────────── │  (per-id locks)  │ ←───── │         │
                        ArtifactRecord    └──────────────────┘        └─────────┘

Concurrency:
    Mutations of one artifact id are serialized by an asyncio.Lock held per
    id. Scans (list_by_owner, find, expired) take no lock; a record removed
    during a scan is either seen whole or not at all.

Expiry:
    ``expires_at`` is fixed when the record is created. Reads compare it to
    the registry clock; nothing ever extends it.
"""

from __future__ import annotations

import asyncio
import weakref
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from apkforge.core.exceptions import (
    MetadataBackendError,
    RecordExpiredError,
    RecordNotFoundError,
)
from apkforge.core.models import ArtifactRecord
from apkforge.integrations.metadata.base import MetadataBackend

logger = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MetadataRegistry:
    """Stores and looks up ArtifactRecords.

    Attributes:
        backend: Where records are persisted.
        ttl_seconds: Lifetime given to records created through the store.
        clock: Returns the current UTC time. Injectable for tests.

    Example:
        >>> registry = MetadataRegistry(InMemoryMetadataBackend(), ttl_seconds=3600)
        >>> await registry.put(record)
        >>> await registry.find(record.artifact_id)
    """

    def __init__(
        self,
        backend: MetadataBackend,
        ttl_seconds: int = 3600,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self.clock = clock or _utc_now
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._logger = logger.bind(component="metadata_registry")

    def now(self) -> datetime:
        return self.clock()

    def _lock_for(self, artifact_id: str) -> asyncio.Lock:
        lock = self._locks.get(artifact_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[artifact_id] = lock
        return lock

    def _decode(self, data: str) -> Optional[ArtifactRecord]:
        try:
            return ArtifactRecord.from_json(data)
        except (ValidationError, ValueError) as e:
            self._logger.warning("metadata_record_corrupt", error=str(e))
            return None

    # =========================================================================
    # Mutations
    # =========================================================================

    async def put(self, record: ArtifactRecord) -> None:
        """Register (or overwrite) a record."""
        async with self._lock_for(record.artifact_id):
            await self.backend.set(record.owner_id, record.artifact_id, record.to_json())
        self._logger.info(
            "artifact_registered",
            artifact_id=record.artifact_id,
            owner_id=record.owner_id,
            expires_at=record.expires_at.isoformat(),
        )

    async def remove(self, owner_id: str, artifact_id: str) -> bool:
        """Remove a record. Returns False if it was already gone."""
        async with self._lock_for(artifact_id):
            removed = await self.backend.delete(owner_id, artifact_id)
        if removed:
            self._logger.info("artifact_unregistered", artifact_id=artifact_id, owner_id=owner_id)
        return removed

    # =========================================================================
    # Lookups
    # =========================================================================

    def _check_expiry(self, record: ArtifactRecord) -> ArtifactRecord:
        if record.is_expired(self.now()):
            raise RecordExpiredError(
                message=f"Artifact {record.artifact_id} expired at {record.expires_at.isoformat()}",
                artifact_id=record.artifact_id,
                details={"expires_at": record.expires_at.isoformat()},
            )
        return record

    async def get(self, owner_id: str, artifact_id: str) -> ArtifactRecord:
        """Look up a record when the owner is known.

        Raises:
            RecordNotFoundError: If there is no such record.
            RecordExpiredError: If the record's expiry has passed.
        """
        data = await self.backend.get(owner_id, artifact_id)
        record = self._decode(data) if data is not None else None
        if record is None:
            raise RecordNotFoundError(
                message=f"Artifact {artifact_id} not found for owner {owner_id}",
                artifact_id=artifact_id,
            )
        return self._check_expiry(record)

    async def find(self, artifact_id: str, include_expired: bool = False) -> ArtifactRecord:
        """Look up a record by id alone, scanning every owner.

        Raises:
            RecordNotFoundError: If no owner holds the id.
            RecordExpiredError: If the record expired (unless ``include_expired``).
        """
        for record in await self.all_records():
            if record.artifact_id == artifact_id:
                return record if include_expired else self._check_expiry(record)
        raise RecordNotFoundError(
            message=f"Artifact {artifact_id} not found",
            artifact_id=artifact_id,
        )

    async def list_by_owner(self, owner_id: str) -> list[ArtifactRecord]:
        """Non-expired records of ``owner_id``, oldest first."""
        now = self.now()
        records = [
            r
            for r in (self._decode(d) for d in await self.backend.list_owner(owner_id))
            if r is not None and not r.is_expired(now)
        ]
        return sorted(records, key=lambda r: r.created_at)

    async def all_records(self) -> list[ArtifactRecord]:
        """Every decodable record of every owner, expired ones included."""
        records = [self._decode(d) for d in await self.backend.list_all()]
        return [r for r in records if r is not None]

    async def expired(self, now: Optional[datetime] = None) -> list[ArtifactRecord]:
        """Records whose expiry is at or before ``now``."""
        now = now or self.now()
        return [r for r in await self.all_records() if r.is_expired(now)]

    async def count(self) -> int:
        return len(await self.all_records())

    async def healthy(self) -> bool:
        try:
            return await self.backend.ping()
        except MetadataBackendError:
            return False
