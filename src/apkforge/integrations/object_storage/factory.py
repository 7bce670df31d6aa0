"""
apkforge.integrations.object_storage.factory - Remote Mirror Factory
======================================================================

Maps ``ObjectStorageConfig.backend`` to a concrete ObjectStorage, or None
when the mirror is disabled.
"""

from __future__ import annotations

from typing import Optional

from apkforge.core.config import ObjectStorageConfig
from apkforge.core.enums import ObjectStorageType
from apkforge.core.exceptions import ConfigurationError
from apkforge.integrations.object_storage.base import ObjectStorage


def create_object_storage(
    config: ObjectStorageConfig, url_ttl_seconds: int = 3600
) -> Optional[ObjectStorage]:
    """Create the remote mirror selected by configuration.

        - "none"   → None (local storage only)
        - "memory" → InMemoryObjectStorage
        - "minio"  → MinioObjectStorage

    Raises:
        ConfigurationError: If the backend is unknown, or minio is selected
            without credentials.
    """
    if config.backend == ObjectStorageType.NONE:
        return None

    if config.backend == ObjectStorageType.MEMORY:
        from apkforge.integrations.object_storage.memory import InMemoryObjectStorage
        if config.public_base_url:
            return InMemoryObjectStorage(base_url=config.public_base_url)
        return InMemoryObjectStorage()

    if config.backend == ObjectStorageType.MINIO:
        if not config.access_key or not config.secret_key:
            raise ConfigurationError(
                message="MinIO object storage requires access_key and secret_key",
                error_code="MISSING_CREDENTIALS",
                details={"endpoint": config.endpoint},
            )
        from apkforge.integrations.object_storage.minio_backend import MinioObjectStorage
        return MinioObjectStorage(config, url_ttl_seconds=url_ttl_seconds)

    raise ConfigurationError(
        message=f"Unknown object storage backend: '{config.backend}'",
        error_code="UNKNOWN_BACKEND",
        details={"available": [t.value for t in ObjectStorageType]},
    )
