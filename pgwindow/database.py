"""Database handle: verified connections, lazy reconnects and throttled queries."""

from __future__ import annotations

import asyncio
import logging
import traceback
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, Mapping, Sequence, TypeVar

import asyncpg

from .config import ConnectionConfig, coerce_config
from .connections import (
    CONNECTION_ERRORS,
    DEFAULT_REGISTRY,
    Connection,
    DedicatedConnection,
    PooledConnection,
    PoolRegistry,
    ReconnectPolicy,
)
from .errors import ConnectionProbeFailed, EmptyFormatArgs, EmptyQuery, QueryExecutionFailed
from .formatting import format_sql
from .throttle import Clock, Sleeper, wait_for_window

LOG = logging.getLogger(__name__)

PROBE_SQL = "SELECT now()"

T = TypeVar("T")


class Database:
    """Access layer over either a shared pool or one dedicated connection.

    Pool-backed handles verify liveness before the first query and reconnect
    lazily after connection-level failures. Handles handed out by
    :meth:`with_client` view a checked-out connection owned by their creator
    and are always considered live.
    """

    def __init__(
        self,
        config: ConnectionConfig | Mapping[str, Any] | None,
        *,
        logger: logging.Logger | None = None,
        clock: Clock | None = None,
        registry: PoolRegistry | None = None,
        reconnect: ReconnectPolicy | None = None,
        sleep: Sleeper = asyncio.sleep,
        connection: Connection | None = None,
    ) -> None:
        self._config = coerce_config(config)
        self.name = self._config.name
        self._log = logger or LOG
        self._clock = clock
        self._reconnect = reconnect or ReconnectPolicy()
        self._sleep = sleep
        self._connection: Connection = connection or PooledConnection(self._config, registry or DEFAULT_REGISTRY)
        self._status = False
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    @property
    def is_pool(self) -> bool:
        return isinstance(self._connection, PooledConnection)

    @property
    def status(self) -> bool:
        """Whether the handle holds a verified live connection."""

        if isinstance(self._connection, DedicatedConnection):
            return True
        return self._status

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    def get_db_name(self) -> str | None:
        """Configured database name."""

        return self._connection.database

    async def connect(self) -> None:
        """Verify the pool is reachable, retrying until the probe succeeds.

        Concurrent callers on an unverified handle share a single probe loop.
        """

        connection = self._connection
        if isinstance(connection, DedicatedConnection):
            return
        if self._status:
            self._log.info("PG: %s second connection attempt, already connected", self.name, extra=self._extra())
            return
        async with self._connect_lock():
            if self._status:
                return
            await self._probe_until_live(connection)

    async def _probe_until_live(self, connection: PooledConnection) -> None:
        delays = self._reconnect.delays()
        attempts = 0
        while True:
            try:
                pool = await connection.pool()
                server_time = await pool.fetchval(PROBE_SQL)
            except Exception as exc:
                self._status = False
                connection.registry.evict(connection.config)
                attempts += 1
                self._log.error("PG: %s connection failed: %s", self.name, exc, extra=self._extra(attempt=attempts))
                if self._reconnect.exhausted(attempts):
                    raise ConnectionProbeFailed(self.name, attempts) from exc
                self._log.info("PG: %s try to reconnect", self.name, extra=self._extra(attempt=attempts))
                await self._sleep(next(delays))
                continue
            self._status = True
            self._log.info("PG: %s connected, server time %s", self.name, server_time, extra=self._extra())
            return

    def _connect_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def close(self) -> None:
        """Close the shared pool behind a pool-backed handle."""

        connection = self._connection
        if isinstance(connection, DedicatedConnection):
            return
        self._status = False
        await connection.registry.discard(connection.config)

    async def query(self, sql: str | None, boundary: int | None = None) -> list[asyncpg.Record]:
        """Execute ``sql`` once the throttle window is open and the connection verified."""

        if not sql:
            raise EmptyQuery("sql can not be empty")
        return await self._execute(sql, boundary, traceback.format_stack()[:-1])

    async def format_query(
        self,
        template: str | None,
        params: Sequence[Any] | None,
        boundary: int | None = None,
    ) -> list[asyncpg.Record]:
        """Render ``template`` with ``params`` (pg-format placeholders) and execute it."""

        if not template or not params:
            raise EmptyFormatArgs("query and param can not be empty")
        sql = format_sql(template, params)
        return await self._execute(sql, boundary, traceback.format_stack()[:-1])

    @asynccontextmanager
    async def client(self) -> AsyncIterator[Database]:
        """Check out a dedicated connection for the duration of the block."""

        connection = self._connection
        if isinstance(connection, DedicatedConnection):
            yield self._wrap(connection.connection)
            return
        if not self._status:
            await self.connect()
        pool = await connection.pool()
        conn = await pool.acquire()
        try:
            yield self._wrap(conn)
        finally:
            await pool.release(conn)

    async def with_client(self, fn: Callable[[Database], Awaitable[T]]) -> T:
        """Run ``fn`` with a handle bound to a dedicated connection, always releasing it."""

        async with self.client() as handle:
            return await fn(handle)

    async def _execute(self, sql: str, boundary: int | None, call_stack: Sequence[str]) -> list[asyncpg.Record]:
        await wait_for_window(boundary, clock=self._clock, sleep=self._sleep)
        if not self.status:
            await self.connect()
        self._log.debug("PG: %s executing %s", self.name, sql, extra=self._extra(sql=sql))
        try:
            return await self._fetch(sql)
        except Exception as exc:
            if self.is_pool and isinstance(exc, CONNECTION_ERRORS):
                self._status = False
            error = QueryExecutionFailed(self.name, sql, exc, call_stack)
            self._log.error(
                "%s\nCalled from:\n%s",
                error,
                error.format_call_stack(),
                exc_info=exc,
                extra=self._extra(sql=sql),
            )
            raise error from exc

    async def _fetch(self, sql: str) -> list[asyncpg.Record]:
        connection = self._connection
        if isinstance(connection, DedicatedConnection):
            return await connection.connection.fetch(sql)
        pool = await connection.pool()
        return await pool.fetch(sql)

    def _wrap(self, conn: asyncpg.Connection) -> Database:
        return Database(
            self._config,
            logger=self._log,
            clock=self._clock,
            reconnect=self._reconnect,
            sleep=self._sleep,
            connection=DedicatedConnection(conn, self._connection.database),
        )

    def _extra(self, **values: object) -> dict[str, object]:
        return {"database": self.name, **values}


__all__ = ["Database", "PROBE_SQL"]
