"""
apkforge.integrations.metadata.redis_backend - Redis Metadata Backend
=======================================================================

Durable metadata backend on ``redis.asyncio``.

Key Schema:
    {key_prefix}owners               SET   of owner ids holding records
    {key_prefix}artifacts:{owner}    HASH  artifact_id → record JSON

Listing one owner is one HGETALL. Listing everything reads the owner set and
fetches each hash in one pipeline.
"""

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from apkforge.core.config import RedisConfig
from apkforge.core.exceptions import MetadataBackendError
from apkforge.integrations.metadata.base import MetadataBackend

logger = structlog.get_logger()


class RedisMetadataBackend(MetadataBackend):
    """Metadata backend storing one Redis hash per owner.

    Attributes:
        config: Redis connection settings.

    Example:
        >>> backend = RedisMetadataBackend(RedisConfig(url="redis://localhost:6379/0"))
        >>> await backend.connect()
    """

    def __init__(self, config: RedisConfig, client: Optional[Any] = None) -> None:
        self.config = config
        self._client = client
        self._logger = logger.bind(component="redis_metadata_backend")

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    @property
    def owners_key(self) -> str:
        return f"{self.config.key_prefix}owners"

    def owner_key(self, owner_id: str) -> str:
        return f"{self.config.key_prefix}artifacts:{owner_id}"

    @property
    def client(self) -> Any:
        if self._client is None:
            raise MetadataBackendError(
                message="Redis metadata backend is not connected",
                error_code="METADATA_NOT_CONNECTED",
            )
        return self._client

    # -------------------------------------------------------------------------
    # Connection Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        if self._client is None:
            self._client = redis.from_url(
                self.config.url,
                decode_responses=True,
                max_connections=self.config.max_connections,
                socket_timeout=self.config.socket_timeout,
            )
        try:
            await self._client.ping()
        except RedisError as e:
            raise MetadataBackendError(
                message=f"Could not connect to Redis: {e}",
                error_code="METADATA_CONNECT_FAILURE",
                details={"url": self.config.url},
            ) from e
        self._logger.info("metadata_backend_connected", backend="redis")

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._logger.info("metadata_backend_disconnected", backend="redis")

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    # -------------------------------------------------------------------------
    # Record Operations
    # -------------------------------------------------------------------------

    async def set(self, owner_id: str, artifact_id: str, data: str) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(self.owner_key(owner_id), artifact_id, data)
                pipe.sadd(self.owners_key, owner_id)
                await pipe.execute()
        except RedisError as e:
            raise self._wrap("set", e) from e

    async def get(self, owner_id: str, artifact_id: str) -> Optional[str]:
        try:
            return await self.client.hget(self.owner_key(owner_id), artifact_id)
        except RedisError as e:
            raise self._wrap("get", e) from e

    async def list_owner(self, owner_id: str) -> list[str]:
        try:
            records = await self.client.hgetall(self.owner_key(owner_id))
        except RedisError as e:
            raise self._wrap("list_owner", e) from e
        return list(records.values())

    async def list_all(self) -> list[str]:
        try:
            owners = await self.client.smembers(self.owners_key)
            if not owners:
                return []
            async with self.client.pipeline(transaction=False) as pipe:
                for owner_id in owners:
                    pipe.hgetall(self.owner_key(owner_id))
                results = await pipe.execute()
        except RedisError as e:
            raise self._wrap("list_all", e) from e
        return [data for records in results for data in records.values()]

    async def delete(self, owner_id: str, artifact_id: str) -> bool:
        key = self.owner_key(owner_id)
        try:
            removed = await self.client.hdel(key, artifact_id)
            if removed and not await self.client.hlen(key):
                await self.client.srem(self.owners_key, owner_id)
        except RedisError as e:
            raise self._wrap("delete", e) from e
        return bool(removed)

    def _wrap(self, operation: str, error: RedisError) -> MetadataBackendError:
        self._logger.warning("metadata_backend_error", operation=operation, error=str(error))
        return MetadataBackendError(
            message=f"Redis {operation} failed: {error}",
            details={"operation": operation},
        )
