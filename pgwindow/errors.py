"""Error taxonomy shared by the database handle, throttle and formatter."""

from __future__ import annotations

from typing import Sequence


class PgWindowError(RuntimeError):
    """Base class for errors raised by pgwindow."""


class InvalidConfig(PgWindowError):
    """Raised when a database handle is built without a usable configuration."""


class InvalidBoundary(PgWindowError, ValueError):
    """Raised when a throttle boundary falls outside ``1 <= boundary < 30``."""


class EmptyQuery(PgWindowError, ValueError):
    """Raised when ``query`` is called without SQL."""


class EmptyFormatArgs(PgWindowError, ValueError):
    """Raised when ``format_query`` is missing its template or parameters."""


class ConnectionProbeFailed(PgWindowError):
    """Raised when a bounded reconnect policy gives up on the liveness probe."""

    def __init__(self, name: str, attempts: int) -> None:
        super().__init__(f"PG: {name} still unreachable after {attempts} attempt(s)")
        self.name = name
        self.attempts = attempts


class QueryExecutionFailed(PgWindowError):
    """Raised when the driver rejects a statement.

    The original driver error is chained as ``__cause__``; ``call_stack`` holds
    the formatted stack of the code that issued the query.
    """

    def __init__(self, name: str, sql: str, error: BaseException, call_stack: Sequence[str] = ()) -> None:
        super().__init__(f"PG: {name} query failed: {error}\nSQL: {sql}")
        self.name = name
        self.sql = sql
        self.error = error
        self.call_stack = tuple(call_stack)

    def format_call_stack(self) -> str:
        """Return the captured caller stack as a single string."""

        return "".join(self.call_stack)


__all__ = [
    "ConnectionProbeFailed",
    "EmptyFormatArgs",
    "EmptyQuery",
    "InvalidBoundary",
    "InvalidConfig",
    "PgWindowError",
    "QueryExecutionFailed",
]
