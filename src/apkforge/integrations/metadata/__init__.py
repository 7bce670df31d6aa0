"""
apkforge.integrations.metadata - Artifact Metadata Backends
=============================================================

Key-value persistence for ArtifactRecords, selected by ``metadata.backend``:

    - MetadataBackend:          Abstract contract
    - InMemoryMetadataBackend:  dev / test
    - RedisMetadataBackend:     redis.asyncio, imported lazily by the factory

Usage:
    >>> from apkforge.integrations.metadata import create_metadata_backend
    >>> backend = create_metadata_backend(config.metadata)
"""

from apkforge.integrations.metadata.base import MetadataBackend
from apkforge.integrations.metadata.memory import InMemoryMetadataBackend
from apkforge.integrations.metadata.factory import create_metadata_backend

__all__ = [
    "MetadataBackend",
    "InMemoryMetadataBackend",
    "create_metadata_backend",
]
