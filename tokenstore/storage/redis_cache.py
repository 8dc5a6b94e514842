from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Set, Union

import redis.asyncio as aioredis
from redis import Redis, RedisError

from tokenstore.logging import get_logger
from tokenstore.storage.errors import (
    CacheDeleteError,
    CacheError,
    CacheReadError,
    CacheWriteError,
)
from tokenstore.storage.keys import CacheKey

logger = get_logger(__name__)

KeyLike = Union[CacheKey, str]


class RedisCache:
    """Thin Redis wrapper exposing the primitives the session store needs.

    Every Redis failure is logged with the operation and key, then re-raised as
    the matching ``CacheReadError``/``CacheWriteError``/``CacheDeleteError``.
    Nothing is retried here; the client's own timeouts bound each call.
    """

    DEFAULT_OPERATION_TIMEOUT = 5.0  # seconds

    def __init__(
        self,
        redis_url: str,
        *,
        socket_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        client: Any = None,
    ):
        self.redis_url = redis_url
        if client is None:
            client = aioredis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )
        self.client = client
        self._closed = False

    def verify_connection(self) -> None:
        """Assert Redis connectivity before serving sessions."""
        # Short-lived synchronous client so the async pool is not bound to a
        # temporary event loop during startup checks.
        sync_client = Redis.from_url(self.redis_url, decode_responses=True)
        try:
            sync_client.ping()
        except RedisError as exc:
            logger.error("cache_unreachable", error=str(exc))
            raise CacheReadError(
                f"redis ping failed: {exc}", operation="ping"
            ) from exc
        finally:
            sync_client.close()

    async def _call(
        self,
        error_cls: type[CacheError],
        event: str,
        operation: str,
        key: Optional[KeyLike],
        coro_factory,
    ):
        try:
            return await coro_factory()
        except RedisError as exc:
            key_name = str(key) if key is not None else None
            logger.error(event, operation=operation, key=key_name, error=str(exc))
            raise error_cls(
                f"redis {operation} failed: {exc}", operation=operation, key=key_name
            ) from exc

    # Reads

    async def exists(self, key: KeyLike) -> bool:
        count = await self._call(
            CacheReadError, "cache_read_failed", "exists", key,
            lambda: self.client.exists(str(key)),
        )
        return bool(count)

    async def read_hash(self, key: KeyLike) -> Dict[str, str]:
        result = await self._call(
            CacheReadError, "cache_read_failed", "hgetall", key,
            lambda: self.client.hgetall(str(key)),
        )
        return dict(result or {})

    async def hash_fields(self, key: KeyLike) -> List[str]:
        result = await self._call(
            CacheReadError, "cache_read_failed", "hkeys", key,
            lambda: self.client.hkeys(str(key)),
        )
        return list(result or [])

    async def members(self, key: KeyLike) -> Set[str]:
        result = await self._call(
            CacheReadError, "cache_read_failed", "smembers", key,
            lambda: self.client.smembers(str(key)),
        )
        return set(result or ())

    async def cardinality(self, key: KeyLike) -> int:
        result = await self._call(
            CacheReadError, "cache_read_failed", "scard", key,
            lambda: self.client.scard(str(key)),
        )
        return int(result or 0)

    async def get(self, key: KeyLike) -> Optional[str]:
        return await self._call(
            CacheReadError, "cache_read_failed", "get", key,
            lambda: self.client.get(str(key)),
        )

    async def ttl(self, key: KeyLike) -> int:
        """Remaining TTL in seconds; -1 without expiry, -2 when missing."""
        result = await self._call(
            CacheReadError, "cache_read_failed", "ttl", key,
            lambda: self.client.ttl(str(key)),
        )
        return int(result)

    # Writes

    async def write_hash(self, key: KeyLike, mapping: Mapping[str, str]) -> int:
        return await self._call(
            CacheWriteError, "cache_write_failed", "hset", key,
            lambda: self.client.hset(str(key), mapping=dict(mapping)),
        )

    async def add_member(self, key: KeyLike, member: str) -> int:
        return await self._call(
            CacheWriteError, "cache_write_failed", "sadd", key,
            lambda: self.client.sadd(str(key), member),
        )

    async def remove_member(self, key: KeyLike, member: str) -> int:
        return await self._call(
            CacheWriteError, "cache_write_failed", "srem", key,
            lambda: self.client.srem(str(key), member),
        )

    async def set(self, key: KeyLike, value: str, ex: Optional[int] = None) -> bool:
        return await self._call(
            CacheWriteError, "cache_write_failed", "set", key,
            lambda: self.client.set(str(key), value, ex=ex),
        )

    async def expire(self, key: KeyLike, seconds: int) -> bool:
        result = await self._call(
            CacheWriteError, "cache_write_failed", "expire", key,
            lambda: self.client.expire(str(key), seconds),
        )
        return bool(result)

    async def delete(self, *keys: KeyLike) -> int:
        names = [str(k) for k in keys]
        first = names[0] if names else None
        return await self._call(
            CacheDeleteError, "cache_delete_failed", "delete", first,
            lambda: self.client.delete(*names),
        )

    async def execute(self, *args: Any) -> Any:
        """Run a raw command for operations without a typed wrapper."""
        command = str(args[0]).lower() if args else ""
        key = args[1] if len(args) > 1 else None
        return await self._call(
            CacheError, "cache_command_failed", command, key,
            lambda: self.client.execute_command(*args),
        )

    async def close(self) -> None:
        """Close the Redis connection pool. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self.client.aclose()
        pool = getattr(self.client, "connection_pool", None)
        if pool is not None:
            await pool.disconnect()


__all__ = ["RedisCache"]
