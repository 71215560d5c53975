"""
RedisKeyStore — values kept as plain Redis strings.

The client is injected (``redis.asyncio.Redis`` or anything exposing
``get``/``set``) and left open on ``close()``, unless the store was built
with ``from_url``.
"""
import logging
from typing import Any

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from ..exceptions import KeyStoreError, NotFoundError
from .base import KeyStore

logger = logging.getLogger("unsealer.kv")


class RedisKeyStore(KeyStore):
    """KeyStore on top of an async Redis client."""

    def __init__(
        self,
        redis: Any,
        namespace: str = "vault-unsealer",
        owns_client: bool = False,
    ):
        self._redis = redis
        self._namespace = namespace
        self._owns_client = owns_client

    @classmethod
    def from_url(cls, url: str, namespace: str = "vault-unsealer") -> "RedisKeyStore":
        """Create a store with its own client; ``close()`` disconnects it."""
        return cls(aioredis.from_url(url), namespace=namespace, owns_client=True)

    async def close(self) -> None:
        if self._owns_client:
            await self._redis.aclose()

    def _redis_key(self, key: str) -> str:
        """Build the namespaced Redis key."""
        return f"{self._namespace}:{key}" if self._namespace else key

    async def get(self, key: str) -> bytes:
        try:
            value = await self._redis.get(self._redis_key(key))
        except RedisError as err:
            raise KeyStoreError(f"redis GET '{key}' failed: {err}") from err
        if value is None:
            raise NotFoundError(key)
        if isinstance(value, str):
            return value.encode("utf-8")
        return value

    async def set(self, key: str, value: bytes) -> None:
        try:
            await self._redis.set(self._redis_key(key), value)
        except RedisError as err:
            raise KeyStoreError(f"redis SET '{key}' failed: {err}") from err
        logger.debug("Redis keystore wrote key=%s", key)
