"""Async engine and session factory for the package index database.

The build trigger is a short-lived process: the CLI opens one ``Database``
per invocation, every store operation takes its own session, and the engine
is disposed on exit.

SQLite runs through ``aiosqlite`` with a single pooled connection so that
concurrent package tasks queue for the database instead of fighting over the
file lock. Postgres runs through ``psycopg`` with a regular pool.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ..settings import Settings

__all__ = [
    "DatabaseConfig",
    "Database",
    "build_async_url",
    "assert_tables_exist",
]

_SQLITE_ASYNC_DRIVER = "sqlite+aiosqlite"
_POSTGRES_ASYNC_DRIVER = "postgresql+psycopg"
_POSTGRES_ALIASES = {"postgresql", "postgres", "postgresql+psycopg2", "postgresql+psycopg"}


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """Connection options resolved from ``Settings``.

    ``url`` may name the plain backend (``sqlite:///...``,
    ``postgresql://...``); the async driver is filled in by
    ``build_async_url``.
    """

    url: str
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    sqlite_journal_mode: str = "WAL"
    sqlite_synchronous: str = "NORMAL"
    sqlite_busy_timeout_ms: int = 30_000

    @classmethod
    def from_settings(cls, settings: Settings) -> DatabaseConfig:
        return cls(
            url=settings.database_url or "sqlite:///./data/db/build-matrix.sqlite",
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            sqlite_journal_mode=settings.database_sqlite_journal_mode.upper(),
            sqlite_synchronous=settings.database_sqlite_synchronous.upper(),
            sqlite_busy_timeout_ms=settings.database_sqlite_busy_timeout_ms,
        )


def _backend(url: URL) -> str:
    name = url.get_backend_name()
    if name not in ("sqlite", "postgresql"):
        raise ValueError(f"unsupported database backend {name!r}; use SQLite or Postgres")
    return name


def build_async_url(cfg: DatabaseConfig) -> str:
    url = make_url(cfg.url)
    if _backend(url) == "sqlite":
        url = url.set(drivername=_SQLITE_ASYNC_DRIVER)
    elif url.drivername in _POSTGRES_ALIASES or url.drivername == "postgresql+psycopg_async":
        url = url.set(drivername=_POSTGRES_ASYNC_DRIVER)
    else:
        raise ValueError(
            f"unsupported Postgres driver {url.drivername!r}; use postgresql:// "
            "or postgresql+psycopg://"
        )
    return url.render_as_string(hide_password=False)


def _sqlite_file(url: URL) -> Path | None:
    """Return the database file, or ``None`` for in-memory databases."""

    database = (url.database or "").strip()
    if not database or database == ":memory:":
        return None
    if database.startswith("file:"):
        return None if url.query.get("mode") == "memory" else Path(database[5:])
    return Path(database)


def _engine_options(url: URL, cfg: DatabaseConfig) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": cfg.echo, "pool_pre_ping": True}
    if _backend(url) == "postgresql":
        options.update(
            pool_size=cfg.pool_size,
            max_overflow=cfg.max_overflow,
            pool_timeout=cfg.pool_timeout,
            pool_recycle=cfg.pool_recycle,
        )
        return options

    options["connect_args"] = {
        "check_same_thread": False,
        "timeout": cfg.sqlite_busy_timeout_ms / 1000.0,
    }
    if _sqlite_file(url) is None:
        options["poolclass"] = StaticPool
    else:
        options.update(pool_size=1, max_overflow=0, pool_timeout=max(1, cfg.pool_timeout))
    return options


def _install_sqlite_pragmas(engine: AsyncEngine, cfg: DatabaseConfig) -> None:
    pragmas = (
        "PRAGMA foreign_keys=ON",
        f"PRAGMA busy_timeout={int(cfg.sqlite_busy_timeout_ms)}",
        f"PRAGMA journal_mode={cfg.sqlite_journal_mode}",
        f"PRAGMA synchronous={cfg.sqlite_synchronous}",
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn, _record) -> None:
        cursor = dbapi_conn.cursor()
        try:
            for pragma in pragmas:
                cursor.execute(pragma)
        finally:
            cursor.close()


class Database:
    """Engine and sessionmaker for one invocation.

    ``init`` once at startup, ``await dispose()`` before exit.
    """

    def __init__(self) -> None:
        self._cfg: DatabaseConfig | None = None
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database.init() has not been called")
        return self._engine

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("Database.init() has not been called")
        return self._sessionmaker

    def init(self, cfg: DatabaseConfig) -> None:
        if self._engine is not None and self._cfg == cfg:
            return

        url = make_url(build_async_url(cfg))
        backend = _backend(url)
        if backend == "sqlite":
            path = _sqlite_file(url)
            if path is not None:
                path.expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)

        engine = create_async_engine(url, **_engine_options(url, cfg))
        if backend == "sqlite":
            _install_sqlite_pragmas(engine, cfg)

        self._cfg = cfg
        self._engine = engine
        self._sessionmaker = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
        )

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._cfg = None
        self._engine = None
        self._sessionmaker = None


async def assert_tables_exist(engine: AsyncEngine, required_tables: Iterable[str]) -> None:
    """Fail fast when the index schema has not been created yet."""

    def _missing(sync_conn) -> list[str]:
        inspector = inspect(sync_conn)
        return [name for name in required_tables if not inspector.has_table(name)]

    async with engine.connect() as conn:
        missing = await conn.run_sync(_missing)
    if missing:
        raise RuntimeError(
            f"missing tables: {', '.join(missing)}; run `build-matrix init-db` first"
        )
