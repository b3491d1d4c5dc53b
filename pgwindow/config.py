"""Connection configuration models and loading helpers."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any, Mapping

import tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidConfig

CONFIG_FILE = Path.home() / ".config" / "pgwindow" / "databases.toml"


class ConnectionConfig(BaseModel):
    """Immutable description of one PostgreSQL target and its pool."""

    model_config = ConfigDict(frozen=True)

    name: str
    dsn: str | None = None
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = Field(default=None, repr=False)
    database: str | None = None
    min_size: int = 1
    max_size: int = 10
    command_timeout: float | None = None
    pool_options: dict[str, Any] = Field(default_factory=dict)

    def pool_kwargs(self) -> dict[str, object]:
        """Keyword arguments for ``asyncpg.create_pool``."""

        kwargs: dict[str, object] = {}
        if self.dsn:
            kwargs["dsn"] = self.dsn
        else:
            kwargs["host"] = self.host or "localhost"
            if self.port is not None:
                kwargs["port"] = self.port
            if self.user:
                kwargs["user"] = self.user
            if self.database:
                kwargs["database"] = self.database
        if self.password:
            kwargs["password"] = self.password
        kwargs["min_size"] = self.min_size
        kwargs["max_size"] = self.max_size
        if self.command_timeout is not None:
            kwargs["command_timeout"] = self.command_timeout
        kwargs.update(self.pool_options)
        return kwargs

    def key(self) -> tuple[object, ...]:
        """Identity of the pool target; configs with equal keys share a pool."""

        return (
            self.dsn,
            self.host,
            self.port,
            self.user,
            _digest(self.password),
            self.database,
            self.min_size,
            self.max_size,
            self.command_timeout,
            tuple(sorted((str(k), repr(v)) for k, v in self.pool_options.items())),
        )


def coerce_config(config: ConnectionConfig | Mapping[str, Any] | None) -> ConnectionConfig:
    """Return a validated config, raising ``InvalidConfig`` for unusable input."""

    if config is None:
        raise InvalidConfig("Empty configuration passed to the database handle.")
    if isinstance(config, ConnectionConfig):
        return config
    if not isinstance(config, Mapping) or not config:
        raise InvalidConfig("Empty configuration passed to the database handle.")
    try:
        return ConnectionConfig(**config)
    except ValidationError as exc:
        raise InvalidConfig(f"Invalid database configuration: {exc}") from exc


def load_configs(path: Path | None = None) -> dict[str, ConnectionConfig]:
    """Load ``[[databases]]`` entries keyed by name; empty if the file is unusable."""

    try:
        raw = _read_config_file(path or CONFIG_FILE)
    except FileNotFoundError:
        return {}
    except (tomllib.TOMLDecodeError, OSError):
        return {}

    entries = raw.get("databases")
    if not isinstance(entries, list):
        return {}
    configs: dict[str, ConnectionConfig] = {}
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            continue
        try:
            config = ConnectionConfig(**entry)
        except ValidationError:
            continue
        configs[config.name] = config
    return configs


def _digest(secret: str | None) -> str | None:
    if secret is None:
        return None
    return hashlib.sha256(secret.encode()).hexdigest()


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    return raw if isinstance(raw, dict) else {}


__all__ = ["CONFIG_FILE", "ConnectionConfig", "coerce_config", "load_configs"]
