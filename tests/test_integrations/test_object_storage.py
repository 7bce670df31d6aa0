"""
Tests for apkforge.integrations.object_storage
================================================

What's Being Tested:
    - InMemoryObjectStorage: upload/delete and failure switches
    - MinioObjectStorage: calls made on the MinIO client (mocked), URL
      selection, error wrapping
    - create_object_storage(): backend selection and credential checks
"""

from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import MaxRetryError, NewConnectionError

from apkforge.core.config import ObjectStorageConfig
from apkforge.core.exceptions import ConfigurationError, RemoteStorageError
from apkforge.integrations.object_storage import create_object_storage
from apkforge.integrations.object_storage.memory import InMemoryObjectStorage
from apkforge.integrations.object_storage.minio_backend import MinioObjectStorage


# =============================================================================
# Helpers
# =============================================================================
def _artifact(tmp_path: Path) -> Path:
    path = tmp_path / "guest_a1.apk"
    path.write_bytes(b"PK\x03\x04")
    return path


def _minio(public_base_url: str | None = None) -> tuple[MinioObjectStorage, MagicMock]:
    config = ObjectStorageConfig(
        backend="minio",
        access_key="key",
        secret_key="secret",
        bucket="apks",
        public_base_url=public_base_url,
    )
    storage = MinioObjectStorage(config, url_ttl_seconds=600)
    client = MagicMock()
    client.bucket_exists.return_value = True
    client.presigned_get_object.return_value = "https://minio.local/apks/guest_a1.apk?sig=1"
    storage._client = client
    return storage, client


def _s3_error(code: str) -> S3Error:
    return S3Error(
        code=code,
        message="message",
        resource="/apks/guest_a1.apk",
        request_id="req-1",
        host_id="host-1",
        response=MagicMock(),
    )


def _unreachable() -> MaxRetryError:
    return MaxRetryError(
        pool=None,
        url="/apks/guest_a1.apk",
        reason=NewConnectionError(None, "Failed to establish a new connection"),
    )


# =============================================================================
# Tests: In-Memory
# =============================================================================
class TestInMemoryObjectStorage:
    async def test_upload(self, tmp_path: Path) -> None:
        storage = InMemoryObjectStorage(base_url="https://cdn.test/")
        remote = await storage.upload(_artifact(tmp_path), "guest_a1.apk", "application/zip")
        assert remote.object_id == "guest_a1.apk"
        assert remote.url == "https://cdn.test/guest_a1.apk"
        assert storage.objects["guest_a1.apk"] == b"PK\x03\x04"

    async def test_delete(self, tmp_path: Path) -> None:
        storage = InMemoryObjectStorage()
        await storage.upload(_artifact(tmp_path), "guest_a1.apk", "application/zip")
        assert await storage.delete("guest_a1.apk") is True
        assert await storage.delete("guest_a1.apk") is False

    async def test_failure_switches(self, tmp_path: Path) -> None:
        storage = InMemoryObjectStorage(fail_uploads=True, fail_deletes=True)
        with pytest.raises(RemoteStorageError):
            await storage.upload(_artifact(tmp_path), "x", "application/zip")
        with pytest.raises(RemoteStorageError):
            await storage.delete("x")


# =============================================================================
# Tests: MinIO
# =============================================================================
class TestMinioObjectStorage:
    async def test_upload_returns_presigned_url(self, tmp_path: Path) -> None:
        storage, client = _minio()
        path = _artifact(tmp_path)

        remote = await storage.upload(
            path, "guest_a1.apk", "application/vnd.android.package-archive"
        )

        assert remote.object_id == "guest_a1.apk"
        assert remote.url.startswith("https://minio.local/")
        client.fput_object.assert_called_once_with(
            bucket_name="apks",
            object_name="guest_a1.apk",
            file_path=str(path),
            content_type="application/vnd.android.package-archive",
        )
        assert client.presigned_get_object.call_args.kwargs["expires"] == timedelta(seconds=600)

    async def test_upload_with_public_base_url(self, tmp_path: Path) -> None:
        storage, client = _minio(public_base_url="https://downloads.example.com/apks/")
        remote = await storage.upload(_artifact(tmp_path), "guest_a1.apk", "application/zip")
        assert remote.url == "https://downloads.example.com/apks/guest_a1.apk"
        client.presigned_get_object.assert_not_called()

    async def test_bucket_created_once(self, tmp_path: Path) -> None:
        storage, client = _minio()
        client.bucket_exists.return_value = False
        await storage.upload(_artifact(tmp_path), "a.apk", "application/zip")
        await storage.upload(_artifact(tmp_path), "b.apk", "application/zip")
        client.make_bucket.assert_called_once_with("apks")

    async def test_upload_failure_is_wrapped(self, tmp_path: Path) -> None:
        storage, client = _minio()
        client.fput_object.side_effect = OSError("connection reset")
        with pytest.raises(RemoteStorageError):
            await storage.upload(_artifact(tmp_path), "a.apk", "application/zip")

    async def test_unreachable_endpoint_on_upload_is_wrapped(self, tmp_path: Path) -> None:
        storage, client = _minio()
        client.fput_object.side_effect = _unreachable()
        with pytest.raises(RemoteStorageError) as exc_info:
            await storage.upload(_artifact(tmp_path), "a.apk", "application/zip")
        assert isinstance(exc_info.value.__cause__, MaxRetryError)

    async def test_unreachable_endpoint_on_bucket_check_is_wrapped(self, tmp_path: Path) -> None:
        storage, client = _minio()
        client.bucket_exists.side_effect = _unreachable()
        with pytest.raises(RemoteStorageError):
            await storage.upload(_artifact(tmp_path), "a.apk", "application/zip")
        client.fput_object.assert_not_called()

    async def test_unreachable_endpoint_on_delete_is_wrapped(self) -> None:
        storage, client = _minio()
        client.stat_object.side_effect = _unreachable()
        with pytest.raises(RemoteStorageError):
            await storage.delete("guest_a1.apk")
        client.remove_object.assert_not_called()

    async def test_delete_existing(self) -> None:
        storage, client = _minio()
        assert await storage.delete("guest_a1.apk") is True
        client.remove_object.assert_called_once_with("apks", "guest_a1.apk")

    async def test_delete_missing(self) -> None:
        storage, client = _minio()
        client.stat_object.side_effect = _s3_error("NoSuchKey")
        assert await storage.delete("guest_a1.apk") is False
        client.remove_object.assert_not_called()

    async def test_delete_failure_is_wrapped(self) -> None:
        storage, client = _minio()
        client.stat_object.side_effect = _s3_error("AccessDenied")
        with pytest.raises(RemoteStorageError):
            await storage.delete("guest_a1.apk")

    def test_client_is_created_lazily(self) -> None:
        storage = MinioObjectStorage(
            ObjectStorageConfig(backend="minio", access_key="k", secret_key="s")
        )
        assert storage._client is None
        assert isinstance(storage.client, Minio)


# =============================================================================
# Tests: Factory
# =============================================================================
class TestFactory:
    def test_none(self) -> None:
        assert create_object_storage(ObjectStorageConfig()) is None

    def test_memory(self) -> None:
        storage = create_object_storage(
            ObjectStorageConfig(backend="memory", public_base_url="https://cdn.test")
        )
        assert isinstance(storage, InMemoryObjectStorage)
        assert storage.base_url == "https://cdn.test"

    def test_minio(self) -> None:
        storage = create_object_storage(
            ObjectStorageConfig(backend="minio", access_key="k", secret_key="s"),
            url_ttl_seconds=120,
        )
        assert isinstance(storage, MinioObjectStorage)
        assert storage.url_ttl_seconds == 120

    def test_minio_requires_credentials(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            create_object_storage(ObjectStorageConfig(backend="minio"))
        assert exc_info.value.error_code == "MISSING_CREDENTIALS"
