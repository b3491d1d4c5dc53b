"""Per-minute time-window throttle applied before query execution."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from .errors import InvalidBoundary

MAX_BOUNDARY = 30

Sleeper = Callable[[float], Awaitable[object]]


@runtime_checkable
class Clock(Protocol):
    """Source of wall-clock time."""

    def now(self) -> datetime:
        """Return the current time."""


class SystemClock:
    """Clock backed by the system's UTC time."""

    def now(self) -> datetime:
        return datetime.now(tz=timezone.utc)


def compute_delay(boundary: int | None, clock: Clock | None = None) -> int:
    """Milliseconds to wait so execution resumes inside ``[boundary, 60 - boundary)``.

    A falsy boundary disables throttling.
    """

    if not boundary:
        return 0
    if boundary >= MAX_BOUNDARY or boundary < 1:
        raise InvalidBoundary(f"Throttle boundary must satisfy 1 <= boundary < {MAX_BOUNDARY}, got {boundary}.")
    now = (clock or SystemClock()).now()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    second = now.second
    if boundary <= second < 60 - boundary:
        return 0
    if second < boundary:
        return (boundary - second) * 1000
    return (2 * boundary + 60 - second) * 1000


async def wait_for_window(
    boundary: int | None,
    *,
    clock: Clock | None = None,
    sleep: Sleeper = asyncio.sleep,
) -> None:
    """Suspend the caller until the current minute's safe window is open."""

    delay_ms = compute_delay(boundary, clock)
    if delay_ms:
        await sleep(delay_ms / 1000)


__all__ = ["Clock", "MAX_BOUNDARY", "SystemClock", "compute_delay", "wait_for_window"]
