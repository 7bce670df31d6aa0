"""
apkforge.integrations.metadata.factory - Metadata Backend Factory
===================================================================

Maps ``MetadataConfig.backend`` to a concrete MetadataBackend.

Usage:
    >>> backend = create_metadata_backend(MetadataConfig(backend="memory"))
    >>> type(backend)  # InMemoryMetadataBackend
"""

from __future__ import annotations

from apkforge.core.config import MetadataConfig
from apkforge.core.enums import MetadataBackendType
from apkforge.core.exceptions import ConfigurationError
from apkforge.integrations.metadata.base import MetadataBackend


def create_metadata_backend(config: MetadataConfig) -> MetadataBackend:
    """Create a metadata backend based on configuration.

        - "memory" → InMemoryMetadataBackend
        - "redis"  → RedisMetadataBackend (connects on ``connect()``)

    Raises:
        ConfigurationError: If the backend name is not recognized.
    """
    if config.backend == MetadataBackendType.MEMORY:
        from apkforge.integrations.metadata.memory import InMemoryMetadataBackend
        return InMemoryMetadataBackend()

    if config.backend == MetadataBackendType.REDIS:
        from apkforge.integrations.metadata.redis_backend import RedisMetadataBackend
        return RedisMetadataBackend(config.redis)

    raise ConfigurationError(
        message=f"Unknown metadata backend: '{config.backend}'",
        error_code="UNKNOWN_BACKEND",
        details={"available": [t.value for t in MetadataBackendType]},
    )
