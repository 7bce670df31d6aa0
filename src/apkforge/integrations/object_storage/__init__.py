"""
apkforge.integrations.object_storage - Remote Artifact Mirror
===============================================================

Optional S3-compatible mirror for finished artifacts:

    - ObjectStorage:          Abstract contract
    - RemoteObject:           object id + download URL
    - InMemoryObjectStorage:  dev / test, with failure switches
    - MinioObjectStorage:     minio client, imported lazily by the factory
"""

from apkforge.integrations.object_storage.base import ObjectStorage, RemoteObject
from apkforge.integrations.object_storage.memory import InMemoryObjectStorage
from apkforge.integrations.object_storage.factory import create_object_storage

__all__ = [
    "ObjectStorage",
    "RemoteObject",
    "InMemoryObjectStorage",
    "create_object_storage",
]
