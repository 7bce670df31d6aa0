"""
apkforge.integrations.object_storage.memory - In-Memory Remote Mirror
=======================================================================

Keeps uploaded bytes in a dict. ``fail_uploads`` / ``fail_deletes`` make
the mirror reject requests, which is how tests exercise the local fallback.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from apkforge.core.exceptions import RemoteStorageError
from apkforge.integrations.object_storage.base import ObjectStorage, RemoteObject

logger = structlog.get_logger()


class InMemoryObjectStorage(ObjectStorage):
    """In-memory object store for development and tests.

    Attributes:
        base_url: Prefix of the URLs handed out for uploaded objects.
        fail_uploads: When True, every upload raises RemoteStorageError.
        fail_deletes: When True, every delete raises RemoteStorageError.
        objects: name → uploaded bytes.

    Example:
        >>> mirror = InMemoryObjectStorage(fail_uploads=True)
        >>> await mirror.upload(path, "guest_a1.apk", "application/octet-stream")
        Traceback (most recent call last):
        RemoteStorageError: ...
    """

    def __init__(
        self,
        base_url: str = "https://objects.example.invalid",
        fail_uploads: bool = False,
        fail_deletes: bool = False,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.fail_uploads = fail_uploads
        self.fail_deletes = fail_deletes
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self._logger = logger.bind(component="in_memory_object_storage")

    async def upload(self, path: Path, name: str, content_type: str) -> RemoteObject:
        if self.fail_uploads:
            raise RemoteStorageError(
                message="In-memory object storage is configured to reject uploads",
                details={"name": name},
            )
        self.objects[name] = await asyncio.to_thread(Path(path).read_bytes)
        self.content_types[name] = content_type
        self._logger.debug("object_uploaded", name=name, size=len(self.objects[name]))
        return RemoteObject(object_id=name, url=f"{self.base_url}/{name}")

    async def delete(self, object_id: str) -> bool:
        if self.fail_deletes:
            raise RemoteStorageError(
                message="In-memory object storage is configured to reject deletes",
                details={"object_id": object_id},
            )
        self.content_types.pop(object_id, None)
        return self.objects.pop(object_id, None) is not None
