"""
Storage backend for the stock ledger.

A narrow async surface over a relational store:

- ``get(query, params)``  -> first row as a dict, or None
- ``all(query, params)``  -> list of dicts
- ``run(query, params)``  -> RunResult(affected_id, rowcount)
- ``upsert_ignore(table, values, index_elements)`` -> insert unless the key exists
- ``transaction()``       -> unit of work with the same surface, committed atomically

``query`` is a SQLAlchemy Core statement or a SQL string with ``:name``
placeholders. Values always travel as bound parameters.

Two implementations share the surface and are picked once, at construction,
by ``create_backend(url)``: SQLite (embedded file, aiosqlite) and PostgreSQL
(networked server, asyncpg).
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence, Union

from sqlalchemy import event, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from partstore.core.errors import ConflictError, StorageError

from .database import Base

logger = logging.getLogger(__name__)

Params = Optional[Mapping[str, Any]]
# One row, or several inserted as a multi-VALUES statement
Rows = Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]


@dataclass(frozen=True)
class RunResult:
    affected_id: Optional[int]
    rowcount: int


def _statement(query):
    if isinstance(query, str):
        return text(query)
    return query


def _translate(exc: SQLAlchemyError) -> Exception:
    if isinstance(exc, IntegrityError):
        return ConflictError(f"Constraint violated: {exc.orig}")
    return StorageError(f"Storage failure: {exc.__class__.__name__}: {exc}")


async def _fetch(conn: AsyncConnection, query, params: Params, mode: str):
    try:
        result = await conn.execute(_statement(query), dict(params or {}))
    except SQLAlchemyError as exc:
        raise _translate(exc) from exc

    if mode == "one":
        row = result.mappings().first()
        return dict(row) if row is not None else None
    if mode == "all":
        return [dict(r) for r in result.mappings().all()]

    if mode == "exec":
        return RunResult(affected_id=None, rowcount=int(result.rowcount or 0))

    affected_id = None
    if result.is_insert and not result.returns_rows:
        pk = result.inserted_primary_key
        if pk is not None and len(pk) == 1:
            affected_id = pk[0]
    return RunResult(affected_id=affected_id, rowcount=int(result.rowcount or 0))


class UnitOfWork:
    """Statements bound to one connection inside one database transaction."""

    def __init__(self, conn: AsyncConnection, backend: "StorageBackend"):
        self._conn = conn
        self._backend = backend

    async def get(self, query, params: Params = None) -> Optional[Dict[str, Any]]:
        return await _fetch(self._conn, query, params, "one")

    async def all(self, query, params: Params = None) -> List[Dict[str, Any]]:
        return await _fetch(self._conn, query, params, "all")

    async def run(self, query, params: Params = None) -> RunResult:
        return await _fetch(self._conn, query, params, "run")

    async def upsert_ignore(
        self, table, values: Rows, index_elements: Optional[Sequence[str]]
    ) -> RunResult:
        # No index_elements: ignore a conflict on any unique key.
        stmt = self._backend.insert(table).values(values).on_conflict_do_nothing(
            index_elements=list(index_elements) if index_elements else None
        )
        return await _fetch(self._conn, stmt, None, "exec")


class StorageBackend:
    dialect_name = ""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    def insert(self, table):
        raise NotImplementedError

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        yield

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[UnitOfWork]:
        async with self._guard():
            try:
                async with self.engine.begin() as conn:
                    yield UnitOfWork(conn, self)
            except SQLAlchemyError as exc:
                raise _translate(exc) from exc

    async def get(self, query, params: Params = None) -> Optional[Dict[str, Any]]:
        async with self.transaction() as uow:
            return await uow.get(query, params)

    async def all(self, query, params: Params = None) -> List[Dict[str, Any]]:
        async with self.transaction() as uow:
            return await uow.all(query, params)

    async def run(self, query, params: Params = None) -> RunResult:
        async with self.transaction() as uow:
            return await uow.run(query, params)

    async def upsert_ignore(
        self, table, values: Rows, index_elements: Optional[Sequence[str]]
    ) -> RunResult:
        async with self.transaction() as uow:
            return await uow.upsert_ignore(table, values, index_elements)

    async def create_schema(self) -> None:
        async with self._guard():
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

    async def drop_schema(self) -> None:
        async with self._guard():
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


class SQLiteBackend(StorageBackend):
    """
    Embedded file-backed store.

    SQLite has a single writer, and an in-memory database lives on one shared
    connection, so every unit of work is serialized through one lock.
    """

    dialect_name = "sqlite"

    def __init__(self, url: str, *, echo: bool = False):
        sa_url = make_url(url)
        kwargs: Dict[str, Any] = {"echo": echo}
        if sa_url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        engine = create_async_engine(sa_url, **kwargs)

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        super().__init__(engine)
        self._lock = asyncio.Lock()

    def insert(self, table):
        return sqlite.insert(table)

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        async with self._lock:
            yield


class PostgresBackend(StorageBackend):
    """Networked server store; concurrency is left to the database."""

    dialect_name = "postgresql"

    def __init__(self, url: str, *, echo: bool = False, pool_size: int = 10):
        engine = create_async_engine(make_url(url), echo=echo, pool_size=pool_size, pool_pre_ping=True)
        super().__init__(engine)

    def insert(self, table):
        return postgresql.insert(table)


def normalize_database_url(url: str) -> str:
    sa_url = make_url(url)
    backend = sa_url.get_backend_name()
    if backend == "sqlite" and sa_url.drivername != "sqlite+aiosqlite":
        sa_url = sa_url.set(drivername="sqlite+aiosqlite")
    elif backend in ("postgresql", "postgres") and sa_url.drivername != "postgresql+asyncpg":
        sa_url = sa_url.set(drivername="postgresql+asyncpg")
    return sa_url.render_as_string(hide_password=False)


def create_backend(url: str, *, echo: bool = False, pool_size: int = 10) -> StorageBackend:
    url = normalize_database_url(url)
    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        logger.info("Using embedded SQLite backend")
        return SQLiteBackend(url, echo=echo)
    if backend == "postgresql":
        logger.info("Using PostgreSQL backend (pool_size=%s)", pool_size)
        return PostgresBackend(url, echo=echo, pool_size=pool_size)
    raise ValueError(f"Unsupported database backend: {backend}")
