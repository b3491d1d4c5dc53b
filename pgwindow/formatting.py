"""pg-format style SQL rendering with safe identifier and literal quoting."""

from __future__ import annotations

import json
import re
from datetime import date, datetime, time
from typing import Any, Sequence

_PLACEHOLDER = re.compile(r"%(%|(\d+\$)?[ILs])")
_SIMPLE_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_$]*$")

# PostgreSQL reserved key words; these always need quoting as identifiers.
RESERVED_WORDS = frozenset(
    """
    all analyse analyze and any array as asc asymmetric authorization binary both case cast
    check collate collation column concurrently constraint create cross current_catalog
    current_date current_role current_schema current_time current_timestamp current_user
    default deferrable desc distinct do else end except false fetch for foreign freeze from
    full grant group having ilike in initially inner intersect into is isnull join lateral
    leading left like limit localtime localtimestamp natural not notnull null offset on only
    or order outer overlaps placing primary references returning right select session_user
    similar some symmetric system_user table tablesample then to trailing true union unique
    user using variadic verbose when where window with
    """.split()
)


class FormatError(ValueError):
    """Raised when a template cannot be rendered with the given parameters."""


def quote_identifier(value: Any) -> str:
    """Quote ``value`` as an SQL identifier when PostgreSQL would need it."""

    if value is None:
        raise FormatError("SQL identifier cannot be None.")
    if isinstance(value, (list, tuple)):
        return ",".join(quote_identifier(item) for item in value)
    if isinstance(value, dict):
        raise FormatError("SQL identifier cannot be a mapping.")
    if isinstance(value, bool):
        text = "t" if value else "f"
    else:
        text = str(value)
    if _SIMPLE_IDENTIFIER.match(text) and text not in RESERVED_WORDS:
        return text
    return '"' + text.replace('"', '""') + '"'


def quote_literal(value: Any) -> str:
    """Render ``value`` as an SQL literal."""

    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "'t'" if value else "'f'"
    if isinstance(value, (list, tuple)):
        return ",".join(
            f"({quote_literal(item)})" if isinstance(item, (list, tuple)) else quote_literal(item)
            for item in value
        )
    if isinstance(value, dict):
        return _quote_text(json.dumps(value, default=str))
    if isinstance(value, (datetime, date, time)):
        return _quote_text(value.isoformat(sep=" ") if isinstance(value, datetime) else value.isoformat())
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "E'\\\\x" + bytes(value).hex() + "'"
    return _quote_text(str(value))


def quote_string(value: Any) -> str:
    """Render ``value`` verbatim, as pg-format's ``%s`` does."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "t" if value else "f"
    if isinstance(value, (list, tuple)):
        return ",".join(
            f"({quote_string(item)})" if isinstance(item, (list, tuple)) else quote_string(item)
            for item in value
        )
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


def format_sql(template: str, params: Sequence[Any]) -> str:
    """Interpolate ``params`` into ``template``.

    Supports ``%I`` (identifier), ``%L`` (literal), ``%s`` (plain string),
    ``%%`` and the positional ``%<n>$I`` forms.
    """

    if isinstance(params, (str, bytes, bytearray)):
        raise FormatError("Parameters must be a sequence of values, not a single string.")
    values = list(params)
    cursor = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal cursor
        token = match.group(1)
        if token == "%":
            return "%"
        kind = token[-1]
        if match.group(2):
            position = int(match.group(2)[:-1])
            if position < 1:
                raise FormatError(f"Positional placeholder must be 1-based: %{token}")
            index = position - 1
        else:
            index = cursor
        if index >= len(values):
            raise FormatError(f"Too few parameters for template (needed #{index + 1}, got {len(values)}).")
        cursor = index + 1
        value = values[index]
        if kind == "I":
            return quote_identifier(value)
        if kind == "L":
            return quote_literal(value)
        return quote_string(value)

    return _PLACEHOLDER.sub(_replace, template)


def _quote_text(text: str) -> str:
    escaped = text.replace("'", "''")
    if "\\" in escaped:
        return "E'" + escaped.replace("\\", "\\\\") + "'"
    return "'" + escaped + "'"


__all__ = [
    "FormatError",
    "RESERVED_WORDS",
    "format_sql",
    "quote_identifier",
    "quote_literal",
    "quote_string",
]
