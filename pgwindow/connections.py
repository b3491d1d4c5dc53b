"""Connection variants, shared pool registry and reconnect policy."""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Callable

import asyncpg

from .config import ConnectionConfig

LOG = logging.getLogger(__name__)

PoolFactory = Callable[..., Any]

# Errors meaning the connection itself is gone rather than the statement being bad.
CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.ConnectionDoesNotExistError,
    asyncpg.exceptions.InterfaceError,
    asyncpg.exceptions.PostgresConnectionError,
    OSError,
)


@dataclass(frozen=True, slots=True)
class PooledConnection:
    """Variant for a handle that owns access to a shared asyncpg pool."""

    config: ConnectionConfig
    registry: "PoolRegistry"

    @property
    def database(self) -> str | None:
        return self.config.database

    async def pool(self) -> asyncpg.Pool:
        return await self.registry.get(self.config)


@dataclass(frozen=True, slots=True)
class DedicatedConnection:
    """Variant for a handle viewing a single checked-out connection it does not own."""

    connection: asyncpg.Connection
    database: str | None


Connection = PooledConnection | DedicatedConnection


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Backoff schedule for liveness probe retries.

    ``max_attempts=None`` retries until the probe succeeds.
    """

    initial_delay: float = 0.5
    max_delay: float = 30.0
    multiplier: float = 2.0
    max_attempts: int | None = None

    def delays(self) -> Iterator[float]:
        """Yield the wait before each retry."""

        delay = self.initial_delay
        while True:
            yield min(delay, self.max_delay)
            delay = min(delay * self.multiplier, self.max_delay)

    def exhausted(self, attempts: int) -> bool:
        return self.max_attempts is not None and attempts >= self.max_attempts


class PoolRegistry:
    """Hands out one asyncpg pool per connection target and event loop."""

    def __init__(self, factory: PoolFactory | None = None) -> None:
        self._factory = factory
        self._pools: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[tuple[object, ...], asyncpg.Pool]] = (
            weakref.WeakKeyDictionary()
        )
        self._locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock] = weakref.WeakKeyDictionary()

    async def get(self, config: ConnectionConfig) -> asyncpg.Pool:
        """Return the pool for ``config`` in the running loop, creating it on first use."""

        loop = asyncio.get_running_loop()
        pools = self._pools.setdefault(loop, {})
        key = config.key()
        pool = pools.get(key)
        if pool is not None:
            return pool
        lock = self._locks.setdefault(loop, asyncio.Lock())
        async with lock:
            pool = pools.get(key)
            if pool is None:
                pool = await self._create(config)
                pools[key] = pool
        return pool

    async def discard(self, config: ConnectionConfig) -> None:
        """Close and forget the running loop's pool for ``config``, if any."""

        pool = self._loop_pools().pop(config.key(), None)
        if pool is not None:
            await pool.close()

    def evict(self, config: ConnectionConfig) -> None:
        """Drop a pool that failed its liveness probe so the next lookup rebuilds it."""

        pool = self._loop_pools().pop(config.key(), None)
        if pool is None:
            return
        try:
            pool.terminate()
        except Exception:  # pragma: no cover - best effort cleanup
            LOG.debug("PG: %s failed to terminate evicted pool", config.name, exc_info=True)

    async def close_all(self) -> None:
        pools = tuple(self._loop_pools().values())
        self._loop_pools().clear()
        for pool in pools:
            await pool.close()

    def __contains__(self, config: object) -> bool:
        if not isinstance(config, ConnectionConfig):
            return False
        key = config.key()
        return any(key in pools for pools in self._pools.values())

    def _loop_pools(self) -> dict[tuple[object, ...], asyncpg.Pool]:
        return self._pools.get(asyncio.get_running_loop(), {})

    async def _create(self, config: ConnectionConfig) -> asyncpg.Pool:
        factory = self._factory or asyncpg.create_pool
        kwargs = config.pool_kwargs()
        user_init = kwargs.pop("init", None)

        async def _init(conn: asyncpg.Connection) -> None:
            conn.add_termination_listener(_termination_listener(config.name))
            if user_init is not None:
                await user_init(conn)

        return await factory(init=_init, **kwargs)


def _termination_listener(name: str) -> Callable[[asyncpg.Connection], None]:
    def _listener(_conn: asyncpg.Connection) -> None:
        LOG.warning("PG: %s pooled connection terminated", name, extra={"database": name})

    return _listener


DEFAULT_REGISTRY = PoolRegistry()


__all__ = [
    "CONNECTION_ERRORS",
    "Connection",
    "DEFAULT_REGISTRY",
    "DedicatedConnection",
    "PoolRegistry",
    "PooledConnection",
    "ReconnectPolicy",
]
