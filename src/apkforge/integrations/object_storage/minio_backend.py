"""
apkforge.integrations.object_storage.minio_backend - S3 Mirror via MinIO
==========================================================================

Mirrors artifacts to any S3-compatible endpoint with the ``minio`` client.
The client is synchronous, so every call is pushed to a worker thread with
``asyncio.to_thread``.

Transport failures (urllib3 errors such as MaxRetryError when the endpoint
is unreachable) are wrapped as RemoteStorageError like S3 errors.

Download URLs:
    public_base_url set   → {public_base_url}/{object_name}
    public_base_url unset → presigned GET, valid for the artifact TTL
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Optional

import structlog
from minio import Minio
from minio.error import MinioException, S3Error
from urllib3.exceptions import HTTPError

from apkforge.core.config import ObjectStorageConfig
from apkforge.core.exceptions import RemoteStorageError
from apkforge.integrations.object_storage.base import ObjectStorage, RemoteObject

logger = structlog.get_logger()


class MinioObjectStorage(ObjectStorage):
    """Remote mirror backed by a MinIO / S3 bucket.

    Attributes:
        config: Endpoint, credentials and bucket.
        url_ttl_seconds: Validity of presigned download URLs.
    """

    def __init__(self, config: ObjectStorageConfig, url_ttl_seconds: int = 3600) -> None:
        self.config = config
        self.url_ttl_seconds = url_ttl_seconds
        self._client: Optional[Minio] = None
        self._bucket_ready = False
        self._logger = logger.bind(component="minio_object_storage", bucket=config.bucket)

    @property
    def client(self) -> Minio:
        """Lazy initialization of the MinIO client."""
        if self._client is None:
            self._client = Minio(
                endpoint=self.config.endpoint,
                access_key=self.config.access_key,
                secret_key=self.config.secret_key,
                secure=self.config.secure,
            )
        return self._client

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        if not self.client.bucket_exists(self.config.bucket):
            self.client.make_bucket(self.config.bucket)
        self._bucket_ready = True

    def _upload_sync(self, path: Path, name: str, content_type: str) -> str:
        self._ensure_bucket()
        self.client.fput_object(
            bucket_name=self.config.bucket,
            object_name=name,
            file_path=str(path),
            content_type=content_type,
        )
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{name}"
        return self.client.presigned_get_object(
            bucket_name=self.config.bucket,
            object_name=name,
            expires=timedelta(seconds=self.url_ttl_seconds),
        )

    async def upload(self, path: Path, name: str, content_type: str) -> RemoteObject:
        try:
            url = await asyncio.to_thread(self._upload_sync, Path(path), name, content_type)
        except (MinioException, HTTPError, OSError, ValueError) as e:
            raise RemoteStorageError(
                message=f"Upload of {name} to bucket {self.config.bucket} failed: {e}",
                details={"name": name, "endpoint": self.config.endpoint},
            ) from e

        self._logger.info("object_uploaded", name=name)
        return RemoteObject(object_id=name, url=url)

    def _delete_sync(self, object_id: str) -> bool:
        try:
            self.client.stat_object(self.config.bucket, object_id)
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchObject"):
                return False
            raise
        self.client.remove_object(self.config.bucket, object_id)
        return True

    async def delete(self, object_id: str) -> bool:
        try:
            return await asyncio.to_thread(self._delete_sync, object_id)
        except (MinioException, HTTPError, OSError) as e:
            raise RemoteStorageError(
                message=f"Delete of {object_id} from bucket {self.config.bucket} failed: {e}",
                details={"object_id": object_id},
            ) from e
