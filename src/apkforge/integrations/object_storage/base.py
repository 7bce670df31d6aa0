"""
apkforge.integrations.object_storage.base - Remote Mirror Interface
=====================================================================

Contract of the optional remote object store that mirrors finished
artifacts. The mirror is opportunistic: the ArtifactStore always keeps a
local copy and only uses the mirror for download URLs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel


class RemoteObject(BaseModel):
    """An uploaded object.

    Attributes:
        object_id: Identifier used to delete the object later.
        url: Publicly reachable (or presigned) download URL.
    """

    object_id: str
    url: str


class ObjectStorage(ABC):
    """Abstract remote object store.

    Implementations raise RemoteStorageError on failure; the ArtifactStore
    catches it and falls back to the local copy.
    """

    @abstractmethod
    async def upload(self, path: Path, name: str, content_type: str) -> RemoteObject:
        """Upload the file at ``path`` under ``name``.

        Raises:
            RemoteStorageError: If the upload failed.
        """

    @abstractmethod
    async def delete(self, object_id: str) -> bool:
        """Delete an uploaded object.

        Returns:
            True if the object existed.

        Raises:
            RemoteStorageError: If the delete failed.
        """

    async def close(self) -> None:
        """Release client resources. Default: nothing to release."""
