"""
apkforge.integrations.metadata.memory - In-Memory Metadata Backend
====================================================================

Dict-of-dicts backend for development and tests. Data is lost when the
process exits and is not shared between processes.
"""

from __future__ import annotations

from typing import Optional

import structlog

from apkforge.integrations.metadata.base import MetadataBackend

logger = structlog.get_logger()


class InMemoryMetadataBackend(MetadataBackend):
    """In-memory metadata backend.

    Attributes:
        _records: owner_id → {artifact_id → record JSON}
    """

    def __init__(self) -> None:
        self._records: dict[str, dict[str, str]] = {}
        self._connected = False
        self._logger = logger.bind(component="in_memory_metadata_backend")

    async def connect(self) -> None:
        self._connected = True
        self._logger.info("metadata_backend_connected", backend="memory")

    async def disconnect(self) -> None:
        self._records.clear()
        self._connected = False
        self._logger.info("metadata_backend_disconnected", backend="memory")

    async def ping(self) -> bool:
        return self._connected

    async def set(self, owner_id: str, artifact_id: str, data: str) -> None:
        self._records.setdefault(owner_id, {})[artifact_id] = data

    async def get(self, owner_id: str, artifact_id: str) -> Optional[str]:
        return self._records.get(owner_id, {}).get(artifact_id)

    async def list_owner(self, owner_id: str) -> list[str]:
        return list(self._records.get(owner_id, {}).values())

    async def list_all(self) -> list[str]:
        # Snapshot first: callers may mutate while iterating the result.
        return [data for records in list(self._records.values()) for data in list(records.values())]

    async def delete(self, owner_id: str, artifact_id: str) -> bool:
        records = self._records.get(owner_id)
        if records is None or artifact_id not in records:
            return False
        del records[artifact_id]
        if not records:
            del self._records[owner_id]
        return True

    @property
    def record_count(self) -> int:
        return sum(len(records) for records in self._records.values())
