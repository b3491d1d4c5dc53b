"""Tests for the per-minute throttle."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pgwindow.errors import InvalidBoundary
from pgwindow.throttle import SystemClock, compute_delay, wait_for_window


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _FixedClock:
    def __init__(self, second: int, microsecond: int = 0) -> None:
        self.value = datetime(2024, 1, 1, 12, 30, second, microsecond, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.value


@pytest.mark.parametrize(
    ("boundary", "second", "expected_ms"),
    [
        (5, 10, 0),
        (5, 5, 0),
        (5, 54, 0),
        (5, 2, 3000),
        (5, 0, 5000),
        (5, 55, 15000),
        (5, 57, 13000),
        (1, 59, 3000),
        (29, 29, 0),
        (29, 30, 0),
        (29, 31, 87000),
        (29, 28, 1000),
    ],
)
def test_compute_delay_matches_window_arithmetic(boundary: int, second: int, expected_ms: int) -> None:
    assert compute_delay(boundary, _FixedClock(second)) == expected_ms


def test_compute_delay_ignores_fractional_seconds() -> None:
    assert compute_delay(5, _FixedClock(2, 999_999)) == 3000


def test_compute_delay_reads_clock_in_utc() -> None:
    offset = timezone(timedelta(hours=5, minutes=30))
    clock = _FixedClock(2)
    clock.value = clock.value.astimezone(offset)

    assert compute_delay(5, clock) == 3000


@pytest.mark.parametrize("boundary", [None, 0])
def test_falsy_boundary_disables_throttle(boundary: int | None) -> None:
    assert compute_delay(boundary, _FixedClock(59)) == 0


@pytest.mark.parametrize("boundary", [30, 35, -1])
def test_out_of_range_boundary_is_rejected(boundary: int) -> None:
    with pytest.raises(InvalidBoundary):
        compute_delay(boundary, _FixedClock(10))


def test_system_clock_is_utc() -> None:
    assert SystemClock().now().utcoffset() == timedelta(0)


@pytest.mark.anyio
async def test_wait_for_window_sleeps_for_computed_delay() -> None:
    slept: list[float] = []

    async def _sleep(seconds: float) -> None:
        slept.append(seconds)

    await wait_for_window(5, clock=_FixedClock(57), sleep=_sleep)

    assert slept == [13.0]


@pytest.mark.anyio
async def test_wait_for_window_skips_sleep_inside_window() -> None:
    slept: list[float] = []

    async def _sleep(seconds: float) -> None:
        slept.append(seconds)

    await wait_for_window(5, clock=_FixedClock(10), sleep=_sleep)
    await wait_for_window(None, clock=_FixedClock(0), sleep=_sleep)

    assert slept == []
