"""Resilient, time-window aware access layer for PostgreSQL."""

from __future__ import annotations

from .config import CONFIG_FILE, ConnectionConfig, load_configs
from .connections import DedicatedConnection, PooledConnection, PoolRegistry, ReconnectPolicy
from .database import Database
from .errors import (
    ConnectionProbeFailed,
    EmptyFormatArgs,
    EmptyQuery,
    InvalidBoundary,
    InvalidConfig,
    PgWindowError,
    QueryExecutionFailed,
)
from .formatting import FormatError, format_sql
from .throttle import Clock, SystemClock, compute_delay, wait_for_window

__version__ = "0.1.0"

__all__ = [
    "CONFIG_FILE",
    "Clock",
    "ConnectionConfig",
    "ConnectionProbeFailed",
    "Database",
    "DedicatedConnection",
    "EmptyFormatArgs",
    "EmptyQuery",
    "FormatError",
    "InvalidBoundary",
    "InvalidConfig",
    "PgWindowError",
    "PoolRegistry",
    "PooledConnection",
    "QueryExecutionFailed",
    "ReconnectPolicy",
    "SystemClock",
    "__version__",
    "compute_delay",
    "format_sql",
    "load_configs",
    "wait_for_window",
]
