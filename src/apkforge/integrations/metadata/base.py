"""
apkforge.integrations.metadata.base - Metadata Backend Interface
==================================================================

Abstract key-value contract the MetadataRegistry persists artifact records
through. Backends store opaque JSON strings; validation, expiry and locking
live in the registry.

Key Schema:
    (owner_id, artifact_id) → ArtifactRecord JSON

    Records are grouped by owner so that listing one owner's artifacts is a
    single read; finding a record without its owner scans every owner.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


# =============================================================================
# Abstract Base Class: MetadataBackend
# =============================================================================
class MetadataBackend(ABC):
    """Abstract base class for artifact metadata storage.

    Implementations:
        - InMemoryMetadataBackend: dict-based, for development and tests
        - RedisMetadataBackend:    one Redis hash per owner

    Example:
        >>> backend = InMemoryMetadataBackend()
        >>> await backend.connect()
        >>> await backend.set("guest", "a1b2", record.to_json())
        >>> await backend.get("guest", "a1b2")
    """

    # -------------------------------------------------------------------------
    # Connection Lifecycle
    # -------------------------------------------------------------------------

    @abstractmethod
    async def connect(self) -> None:
        """Establish the connection to the backend.

        Raises:
            MetadataBackendError: If the backend is unreachable.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the backend answers."""

    # -------------------------------------------------------------------------
    # Record Operations
    # -------------------------------------------------------------------------

    @abstractmethod
    async def set(self, owner_id: str, artifact_id: str, data: str) -> None:
        """Store (or overwrite) one record."""

    @abstractmethod
    async def get(self, owner_id: str, artifact_id: str) -> Optional[str]:
        """Return one record, or None when absent."""

    @abstractmethod
    async def list_owner(self, owner_id: str) -> list[str]:
        """Return every record stored for ``owner_id``."""

    @abstractmethod
    async def list_all(self) -> list[str]:
        """Return every record of every owner."""

    @abstractmethod
    async def delete(self, owner_id: str, artifact_id: str) -> bool:
        """Remove one record.

        Returns:
            True if the record existed, False otherwise.
        """
