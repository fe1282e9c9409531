"""Database configuration and the data access layer.

Every query goes through :class:`Database`, which owns the connection pool
and the query cache. Statements are SQL templates with named parameters
(wrapped in ``sqlalchemy.text``) or SQLAlchemy Core executables; user input
is always bound, never interpolated.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Union

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy.sql.elements import ClauseElement, TextClause

from common.cache import QueryCache
from common.config import Settings
from common.errors import QueryError
from common.pool import ConnectionPool

logger = logging.getLogger(__name__)

Base = declarative_base()

Statement = Union[str, ClauseElement]

CHECKPOINT_MODES = ("PASSIVE", "FULL", "RESTART", "TRUNCATE")

# Log only the start of failing statements
SQL_LOG_PREFIX = 100


class ExecuteResult(NamedTuple):
    """Outcome of a mutating statement."""

    inserted_id: Optional[int]
    rows_affected: int


class Operation(NamedTuple):
    """One statement of a transaction."""

    sql: Statement
    params: Optional[Dict[str, Any]] = None


def _to_statement(sql: Statement) -> ClauseElement:
    return text(sql) if isinstance(sql, str) else sql


def _sqlite_pragmas(busy_timeout_ms: int):
    def on_connect(dbapi_connection, connection_record):
        # Driver stays in autocommit; transactions are opened explicitly
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode = WAL")
            cursor.execute("PRAGMA synchronous = NORMAL")
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
            cursor.execute("PRAGMA temp_store = MEMORY")
            cursor.execute("PRAGMA cache_size = -64000")
        finally:
            cursor.close()

    return on_connect


def _execute_work(statement, params):
    def work(conn):
        result = conn.execute(statement, params or {})
        return ExecuteResult(inserted_id=result.lastrowid, rows_affected=result.rowcount)

    return work


def _fetch_one_work(statement, params):
    def work(conn):
        row = conn.execute(statement, params or {}).mappings().first()
        return dict(row) if row is not None else None

    return work


def _fetch_all_work(statement, params):
    def work(conn):
        return [dict(row) for row in conn.execute(statement, params or {}).mappings().all()]

    return work


def _autocommitted(work):
    def run(conn):
        result = work(conn)
        conn.commit()
        return result

    return run


def _begin_immediate(conn):
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def _commit(conn):
    conn.commit()


def _rollback_quietly(conn):
    try:
        conn.rollback()
    except SQLAlchemyError as e:
        logger.warning(f"Rollback failed: {e}")


def _file_size(path: str) -> int:
    return os.path.getsize(path) if os.path.exists(path) else 0


def _interrupt(conn):
    dbapi_connection = getattr(conn.connection, "dbapi_connection", None)
    interrupt = getattr(dbapi_connection, "interrupt", None)
    if interrupt is not None:
        interrupt()


async def _in_thread(func, conn):
    """
    Run ``func(conn)`` in a worker thread.

    A cancelled caller interrupts the running statement and still waits for
    the worker to return, so the connection is never handed back to the pool
    while a thread is using it.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, conn))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        if not future.done():
            _interrupt(conn)
        while not future.done():
            try:
                await asyncio.wait({future})
            except asyncio.CancelledError:
                continue
        if not future.cancelled():
            # Mark the worker error as retrieved; the cancellation wins
            future.exception()
        raise


class Transaction:
    """Statements bound to the connection of an open BEGIN IMMEDIATE block."""

    def __init__(self, db: "Database", conn):
        self._db = db
        self._conn = conn

    async def execute(self, sql: Statement, params: Optional[Dict[str, Any]] = None) -> ExecuteResult:
        statement = _to_statement(sql)
        return await self._db._run(self._conn, _execute_work(statement, params), statement, params)

    async def fetch_one(self, sql: Statement, params: Optional[Dict[str, Any]] = None) -> Optional[dict]:
        statement = _to_statement(sql)
        return await self._db._run(self._conn, _fetch_one_work(statement, params), statement, params)

    async def fetch_all(self, sql: Statement, params: Optional[Dict[str, Any]] = None) -> List[dict]:
        statement = _to_statement(sql)
        return await self._db._run(self._conn, _fetch_all_work(statement, params), statement, params)


class Database:
    """Pooled access to the embedded SQLite database."""

    def __init__(
        self,
        path: str,
        pool_size: int = 25,
        busy_timeout_ms: int = 120000,
        cache_ttl_seconds: float = 900,
        cache_max_entries: int = 20000,
    ):
        self.path = path
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{path}",
            poolclass=NullPool,
            connect_args={"check_same_thread": False, "timeout": busy_timeout_ms / 1000},
        )
        event.listen(self.engine, "connect", _sqlite_pragmas(busy_timeout_ms))

        self.cache = QueryCache(ttl_seconds=cache_ttl_seconds, max_entries=cache_max_entries)
        self.pool = ConnectionPool(self.engine.connect, pool_size)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_path,
            pool_size=settings.pool_size,
            busy_timeout_ms=settings.busy_timeout_ms,
            cache_ttl_seconds=settings.cache_ttl_seconds,
            cache_max_entries=settings.cache_max_entries,
        )

    async def _run(self, conn, work, statement, params):
        try:
            return await _in_thread(work, conn)
        except SQLAlchemyError as e:
            sql = str(statement)
            cause = getattr(e, "orig", None) or e
            logger.error(f"SQL error: {sql[:SQL_LOG_PREFIX]!r} params={params!r} error={cause}")
            await _in_thread(_rollback_quietly, conn)
            raise QueryError(str(cause), sql[:SQL_LOG_PREFIX], params) from e

    async def _run_pooled(self, work, statement, params):
        conn = await self.pool.acquire()
        try:
            return await self._run(conn, _autocommitted(work), statement, params)
        except asyncio.CancelledError:
            await _in_thread(_rollback_quietly, conn)
            raise
        finally:
            self.pool.release(conn)

    def _cache_key(self, statement: ClauseElement, params: Optional[Dict[str, Any]]) -> str:
        if params is None and not isinstance(statement, TextClause):
            params = statement.compile().params
        return QueryCache.make_key(str(statement), params)

    async def execute(self, sql: Statement, params: Optional[Dict[str, Any]] = None) -> ExecuteResult:
        """Run a mutating statement on a pooled connection."""
        statement = _to_statement(sql)
        return await self._run_pooled(_execute_work(statement, params), statement, params)

    async def fetch_one(
        self, sql: Statement, params: Optional[Dict[str, Any]] = None, cacheable: bool = False
    ) -> Optional[dict]:
        """Return the first row as a dict, or None."""
        statement = _to_statement(sql)
        key = self._cache_key(statement, params) if cacheable else None
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        row = await self._run_pooled(_fetch_one_work(statement, params), statement, params)

        if key is not None and row:
            self.cache.set(key, row)
        return row

    async def fetch_all(
        self, sql: Statement, params: Optional[Dict[str, Any]] = None, cacheable: bool = False
    ) -> List[dict]:
        """Return every row as a list of dicts."""
        statement = _to_statement(sql)
        key = self._cache_key(statement, params) if cacheable else None
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        rows = await self._run_pooled(_fetch_all_work(statement, params), statement, params)

        if key is not None:
            self.cache.set(key, rows)
        return rows

    @asynccontextmanager
    async def transaction(self):
        """
        Hold one connection inside a BEGIN IMMEDIATE transaction.

        Commits when the block exits normally; any exception, cancellation
        included, rolls the whole transaction back before propagating. The
        connection goes back to the pool only after commit or rollback.
        """
        conn = await self.pool.acquire()
        try:
            await self._run(conn, _begin_immediate, "BEGIN IMMEDIATE", None)
            yield Transaction(self, conn)
            await self._run(conn, _commit, "COMMIT", None)
        except BaseException:
            await _in_thread(_rollback_quietly, conn)
            raise
        finally:
            self.pool.release(conn)

    async def run_transaction(self, operations: Iterable[Operation]) -> List[ExecuteResult]:
        """Execute operations in order, atomically. Stops at the first failure."""
        results = []
        async with self.transaction() as tx:
            for operation in operations:
                sql, params = operation
                results.append(await tx.execute(sql, params))
        return results

    def invalidate(self, pattern: Optional[str] = None) -> int:
        return self.cache.invalidate(pattern)

    async def checkpoint(self, mode: str = "FULL") -> Optional[dict]:
        """Force a WAL checkpoint."""
        mode = mode.upper()
        if mode not in CHECKPOINT_MODES:
            raise ValueError(f"Invalid checkpoint mode: {mode}")
        return await self.fetch_one(f"PRAGMA wal_checkpoint({mode})")

    async def stats(self) -> dict:
        """Row counts, file sizes, cache and pool figures."""
        counts = await self.fetch_one(
            """
            SELECT
                (SELECT COUNT(*) FROM aihs) AS total_aihs,
                (SELECT COUNT(*) FROM movimentacoes) AS total_movimentacoes,
                (SELECT COUNT(*) FROM glosas WHERE ativa = 1) AS total_glosas_ativas,
                (SELECT COUNT(*) FROM usuarios) AS total_usuarios,
                (SELECT COUNT(*) FROM logs_acesso) AS total_logs
            """,
            cacheable=True,
        )
        size = await self.fetch_one(
            "SELECT page_count * page_size AS size FROM pragma_page_count(), pragma_page_size()"
        )
        wal_path = f"{self.path}-wal"
        wal_size = await asyncio.to_thread(_file_size, wal_path)

        return {
            **(counts or {}),
            "db_size_mb": round((size or {}).get("size", 0) / (1024 * 1024), 2),
            "wal_size_mb": round(wal_size / (1024 * 1024), 2),
            "cache_entries": self.cache.size,
            "pool_connections": self.pool.open_count,
            "available_connections": self.pool.available_count,
            "waiting_requests": self.pool.waiting_count,
        }

    def close_all(self) -> None:
        """Close pooled connections and dispose of the engine."""
        self.pool.close_all()
        self.engine.dispose()


def get_db(request: Request) -> Database:
    """Dependency for FastAPI route handlers."""
    return request.app.state.db
