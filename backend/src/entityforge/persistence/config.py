"""Database configuration and engine factory."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import sqlalchemy as sa
from sqlalchemy.pool import StaticPool

from entityforge.core.errors import ConfigurationError

_CONNECTION_PREFIX = "ENTITYFORGE_DB_URL_"

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:/// and postgresql:// URL schemes. `connections` maps
    the names schema documents use in `connection:` to their own URLs.
    """

    url: str
    connections: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order for the default connection:
        1. DATABASE_URL env var (standard)
        2. ENTITYFORGE_DB_PATH env var (converted to sqlite:/// URL)
        3. Default: sqlite:///{base_path}/data/entityforge.db

        Named connections come from ENTITYFORGE_DB_URL_<NAME> variables.
        """
        connections = {
            key[len(_CONNECTION_PREFIX):].lower(): value
            for key, value in os.environ.items()
            if key.startswith(_CONNECTION_PREFIX) and value
        }

        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url, connections=connections)

        db_path = os.environ.get("ENTITYFORGE_DB_PATH")
        if db_path:
            return cls(url=f"sqlite:///{db_path}", connections=connections)

        if base_path:
            return cls(url=f"sqlite:///{base_path / 'data' / 'entityforge.db'}", connections=connections)

        return cls(url="sqlite:///entityforge.db", connections=connections)

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_postgresql(self) -> bool:
        return self.url.startswith("postgresql")

    @property
    def sqlalchemy_url(self) -> str:
        return sqlalchemy_url(self.url)


def sqlalchemy_url(url: str) -> str:
    """URL suitable for SQLAlchemy engine creation.

    Ensures postgresql:// URLs use the psycopg (v3) driver since the
    postgresql extra installs psycopg[binary], not psycopg2.
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def create_engine(url: str) -> sa.Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    url = sqlalchemy_url(url)
    if url in _MEMORY_URLS:
        return sa.create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return sa.create_engine(url, connect_args={"check_same_thread": False})
    return sa.create_engine(url)


class ConnectionManager:
    """Engines for the default connection and any named connections."""

    def __init__(self, default: sa.Engine, named: dict[str, sa.Engine] | None = None):
        self.default = default
        self.named = dict(named or {})

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> ConnectionManager:
        return cls(
            create_engine(config.url),
            {name: create_engine(url) for name, url in config.connections.items()},
        )

    def engine_for(self, connection: str | None) -> sa.Engine:
        if connection is None:
            return self.default
        try:
            return self.named[connection]
        except KeyError:
            raise ConfigurationError(f"Unknown database connection '{connection}'") from None

    def dispose(self) -> None:
        self.default.dispose()
        for engine in self.named.values():
            engine.dispose()
