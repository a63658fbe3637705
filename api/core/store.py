"""Key-value store client, lifecycle and FastAPI dependency.

All challenge state lives in a store offering hashes, sets, sorted sets and
atomic hash increments. Every method maps to a single-key atomic primitive;
there are no cross-key transactions.

Backends:
- memory:// - in-process dicts (tests, local dev, single worker only)
- redis://  - redis.asyncio client (shared across workers/replicas)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from functools import wraps
from typing import Annotated, ParamSpec, Protocol, TypeVar

from fastapi import Depends, Request
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from core.config import get_settings
from core.logger import get_logger

logger = get_logger(__name__)

# Threshold for logging slow store operations (milliseconds)
SLOW_OPERATION_THRESHOLD_MS = 250

P = ParamSpec("P")
R = TypeVar("R")


class StoreError(Exception):
    """Raised when the underlying store did not apply an operation."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        super().__init__(f"Store operation {operation} failed: {cause}")


class KeyValueStore(Protocol):
    async def hgetall(self, key: str) -> dict[str, str]: ...

    async def hget(self, key: str, field: str) -> str | None: ...

    async def hset(self, key: str, mapping: Mapping[str, str]) -> None: ...

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int: ...

    async def delete(self, *keys: str) -> None: ...

    async def sadd(self, key: str, member: str) -> bool:
        """Add member; True only when it was not already present."""
        ...

    async def scard(self, key: str) -> int: ...

    async def zadd(self, key: str, member: str, score: float) -> None: ...

    async def zrem(self, key: str, member: str) -> None: ...

    async def zrange_desc(
        self, key: str, start: int, stop: int
    ) -> list[tuple[str, float]]:
        """Members by score descending, inclusive stop like ZREVRANGE."""
        ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class MemoryStore:
    """In-process store with Redis semantics for the commands we use.

    Methods never await internally, so each one is atomic on the event loop.
    """

    def __init__(self, key_prefix: str = ""):
        self.key_prefix = key_prefix
        self._hashes: dict[str, dict[str, str]] = {}
        self._sets: dict[str, set[str]] = {}
        self._zsets: dict[str, dict[str, float]] = {}

    def _k(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self._hashes.get(self._k(key), {}))

    async def hget(self, key: str, field: str) -> str | None:
        return self._hashes.get(self._k(key), {}).get(field)

    async def hset(self, key: str, mapping: Mapping[str, str]) -> None:
        self._hashes.setdefault(self._k(key), {}).update(
            {field: str(value) for field, value in mapping.items()}
        )

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        bucket = self._hashes.setdefault(self._k(key), {})
        value = int(bucket.get(field, "0")) + amount
        bucket[field] = str(value)
        return value

    async def delete(self, *keys: str) -> None:
        for key in keys:
            full = self._k(key)
            self._hashes.pop(full, None)
            self._sets.pop(full, None)
            self._zsets.pop(full, None)

    async def sadd(self, key: str, member: str) -> bool:
        members = self._sets.setdefault(self._k(key), set())
        if member in members:
            return False
        members.add(member)
        return True

    async def scard(self, key: str) -> int:
        return len(self._sets.get(self._k(key), ()))

    async def zadd(self, key: str, member: str, score: float) -> None:
        self._zsets.setdefault(self._k(key), {})[member] = float(score)

    async def zrem(self, key: str, member: str) -> None:
        self._zsets.get(self._k(key), {}).pop(member, None)

    async def zrange_desc(
        self, key: str, start: int, stop: int
    ) -> list[tuple[str, float]]:
        entries = self._zsets.get(self._k(key), {})
        # ZREVRANGE orders equal scores by member, reverse lexicographic
        ranked = sorted(
            entries.items(), key=lambda item: (item[1], item[0]), reverse=True
        )
        end = None if stop == -1 else stop + 1
        return ranked[start:end]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    def keys(self) -> set[str]:
        """All keys currently held (without prefix). For tests and debugging."""
        prefix_len = len(self.key_prefix)
        every = set(self._hashes) | set(self._sets) | set(self._zsets)
        return {key[prefix_len:] for key in every if key.startswith(self.key_prefix)}


def _store_operation(
    operation_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator to log slow store operations and wrap client errors.

    Logs at DEBUG level for operations exceeding SLOW_OPERATION_THRESHOLD_MS.
    Redis errors are logged and re-raised as StoreError.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except RedisError as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.error(
                    "store.operation.failed",
                    operation=operation_name,
                    duration_ms=round(duration_ms, 2),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise StoreError(operation_name, e) from e

            duration_ms = (time.perf_counter() - start_time) * 1000
            if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
                logger.debug(
                    "store.operation.slow",
                    operation=operation_name,
                    duration_ms=round(duration_ms, 2),
                )
            return result

        return wrapper

    return decorator


class RedisStore:
    """Store backed by redis.asyncio; one command per method."""

    def __init__(self, client: aioredis.Redis, key_prefix: str = ""):
        self.client = client
        self.key_prefix = key_prefix

    def _k(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    @_store_operation("hgetall")
    async def hgetall(self, key: str) -> dict[str, str]:
        return await self.client.hgetall(self._k(key))

    @_store_operation("hget")
    async def hget(self, key: str, field: str) -> str | None:
        return await self.client.hget(self._k(key), field)

    @_store_operation("hset")
    async def hset(self, key: str, mapping: Mapping[str, str]) -> None:
        await self.client.hset(self._k(key), mapping=dict(mapping))

    @_store_operation("hincrby")
    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        return int(await self.client.hincrby(self._k(key), field, amount))

    @_store_operation("delete")
    async def delete(self, *keys: str) -> None:
        if keys:
            await self.client.delete(*(self._k(key) for key in keys))

    @_store_operation("sadd")
    async def sadd(self, key: str, member: str) -> bool:
        return await self.client.sadd(self._k(key), member) == 1

    @_store_operation("scard")
    async def scard(self, key: str) -> int:
        return int(await self.client.scard(self._k(key)))

    @_store_operation("zadd")
    async def zadd(self, key: str, member: str, score: float) -> None:
        await self.client.zadd(self._k(key), {member: score})

    @_store_operation("zrem")
    async def zrem(self, key: str, member: str) -> None:
        await self.client.zrem(self._k(key), member)

    @_store_operation("zrange_desc")
    async def zrange_desc(
        self, key: str, start: int, stop: int
    ) -> list[tuple[str, float]]:
        rows = await self.client.zrange(
            self._k(key), start, stop, desc=True, withscores=True
        )
        return [(member, float(score)) for member, score in rows]

    @_store_operation("ping")
    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()


def create_store() -> KeyValueStore:
    settings = get_settings()

    if settings.use_memory_store:
        logger.info("store.backend.selected", backend="memory")
        return MemoryStore(key_prefix=settings.key_prefix)

    client = aioredis.Redis.from_url(settings.storage_uri, decode_responses=True)
    logger.info("store.backend.selected", backend="redis")
    return RedisStore(client, key_prefix=settings.key_prefix)


async def init_store(store: KeyValueStore) -> None:
    """Verify the store is reachable."""
    logger.info("store.connectivity.verifying")
    async with asyncio.timeout(30):
        await store.ping()
    logger.info("store.connectivity.verified")


async def dispose_store(store: KeyValueStore) -> None:
    await store.close()
    logger.info("store.closed")


async def check_store_connection(store: KeyValueStore) -> bool:
    """Returns False instead of raising; used by health checks."""
    try:
        async with asyncio.timeout(5):
            return await store.ping()
    except (StoreError, TimeoutError):
        return False


def get_store(request: Request) -> KeyValueStore:
    return request.app.state.store


Store = Annotated[KeyValueStore, Depends(get_store)]
