"""Tests for the pool registry and reconnect policy."""

from __future__ import annotations

import itertools
import logging
from typing import Any

import pytest

from pgwindow.config import ConnectionConfig
from pgwindow.connections import PoolRegistry, ReconnectPolicy


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _FakeConnection:
    def __init__(self) -> None:
        self.listeners: list[Any] = []

    def add_termination_listener(self, listener: Any) -> None:
        self.listeners.append(listener)


class _FakePool:
    def __init__(self, kwargs: dict[str, Any]) -> None:
        self.kwargs = kwargs
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def test_reconnect_policy_backs_off_to_cap() -> None:
    policy = ReconnectPolicy(initial_delay=1.0, max_delay=5.0, multiplier=2.0)

    assert list(itertools.islice(policy.delays(), 5)) == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_reconnect_policy_is_unbounded_by_default() -> None:
    policy = ReconnectPolicy()

    assert policy.exhausted(10_000) is False
    assert ReconnectPolicy(max_attempts=3).exhausted(3) is True


@pytest.mark.anyio
async def test_registry_shares_pool_per_target() -> None:
    created: list[_FakePool] = []

    async def _factory(**kwargs: Any) -> _FakePool:
        pool = _FakePool(kwargs)
        created.append(pool)
        return pool

    registry = PoolRegistry(_factory)
    reader = ConnectionConfig(name="reader", host="db", database="orders")
    writer = ConnectionConfig(name="writer", host="db", database="orders")

    first = await registry.get(reader)
    second = await registry.get(writer)

    assert first is second
    assert len(created) == 1
    assert created[0].kwargs["database"] == "orders"
    assert reader in registry


@pytest.mark.anyio
async def test_registry_does_not_cache_failed_pools() -> None:
    calls = 0

    async def _factory(**kwargs: Any) -> _FakePool:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise OSError("connection refused")
        return _FakePool(kwargs)

    registry = PoolRegistry(_factory)
    config = ConnectionConfig(name="main", host="db")

    with pytest.raises(OSError):
        await registry.get(config)
    assert config not in registry

    pool = await registry.get(config)
    assert isinstance(pool, _FakePool)
    assert calls == 2


@pytest.mark.anyio
async def test_registry_discard_closes_pool() -> None:
    async def _factory(**kwargs: Any) -> _FakePool:
        return _FakePool(kwargs)

    registry = PoolRegistry(_factory)
    config = ConnectionConfig(name="main", host="db")
    pool = await registry.get(config)

    await registry.discard(config)

    assert pool.closed is True
    assert config not in registry


@pytest.mark.anyio
async def test_pooled_connections_log_termination(caplog: pytest.LogCaptureFixture) -> None:
    inits: list[Any] = []
    user_inits: list[Any] = []

    async def _factory(**kwargs: Any) -> _FakePool:
        inits.append(kwargs["init"])
        return _FakePool(kwargs)

    async def _user_init(conn: Any) -> None:
        user_inits.append(conn)

    registry = PoolRegistry(_factory)
    await registry.get(ConnectionConfig(name="main", host="db", pool_options={"init": _user_init}))
    conn = _FakeConnection()

    await inits[0](conn)
    with caplog.at_level(logging.WARNING, logger="pgwindow.connections"):
        conn.listeners[0](conn)

    assert user_inits == [conn]
    assert "PG: main pooled connection terminated" in caplog.text


@pytest.mark.anyio
async def test_registry_uses_asyncpg_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[dict[str, Any]] = []

    async def _create_pool(**kwargs: Any) -> _FakePool:
        seen.append(kwargs)
        return _FakePool(kwargs)

    monkeypatch.setattr("pgwindow.connections.asyncpg.create_pool", _create_pool)
    registry = PoolRegistry()

    await registry.get(ConnectionConfig(name="main", host="db", user="app"))

    assert seen[0]["user"] == "app"
    assert callable(seen[0]["init"])


@pytest.mark.anyio
async def test_registry_separates_pools_by_password() -> None:
    created: list[_FakePool] = []

    async def _factory(**kwargs: Any) -> _FakePool:
        created.append(_FakePool(kwargs))
        return created[-1]

    registry = PoolRegistry(_factory)
    right = ConnectionConfig(name="main", host="db", user="app", database="orders", password="right")
    wrong = ConnectionConfig(name="main", host="db", user="app", database="orders", password="WRONG")

    first = await registry.get(right)
    second = await registry.get(wrong)

    assert first is not second
    assert [pool.kwargs["password"] for pool in created] == ["right", "WRONG"]
