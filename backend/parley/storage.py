"""DuckDB-backed document database.

All persistence in Parley goes through one ``Database``: a single DuckDB
connection (file-backed, or ``:memory:`` for tests) guarded by a lock.
Every unit of work runs as one transaction in a worker thread, so the event
loop keeps serving other connections while a call is in flight and the
order in which units of work commit is the order callers observe.

Usage:
    db = Database("parley.duckdb")
    db.initialize([CREATE_TABLE_SQL])
    rows = await db.run(lambda conn: conn.execute("SELECT 1").fetchall())
"""
import asyncio
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import duckdb

from parley.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class Database:
    """Serialized access to an embedded DuckDB database.

    Attributes:
        db_path: Path to the DuckDB file, or ":memory:".
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connection: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(db_path)
        logger.info("[Store] Opened database %s", db_path)

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            raise StoreUnavailable("Database is closed")
        return self._connection

    def initialize(self, statements: Iterable[str]) -> None:
        """Run schema statements. Safe to call repeatedly (idempotent DDL)."""
        with self._lock:
            conn = self._get_connection()
            for statement in statements:
                conn.execute(statement)

    def run_sync(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run ``fn(conn, *args)`` in a transaction and return its result.

        Raises:
            StoreUnavailable: If the database is closed or DuckDB fails.
            ParleyError: Whatever *fn* raises; the transaction is rolled back.
        """
        with self._lock:
            conn = self._get_connection()
            try:
                conn.begin()
                result = fn(conn, *args)
                conn.commit()
                return result
            except duckdb.Error as exc:
                self._rollback(conn)
                logger.error("[Store] Database call failed: %s", exc)
                raise StoreUnavailable(f"Database call failed: {exc}") from exc
            except Exception:
                self._rollback(conn)
                raise

    async def run(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Async wrapper around :meth:`run_sync`; suspends until committed."""
        return await asyncio.to_thread(self.run_sync, fn, *args)

    @staticmethod
    def _rollback(conn: duckdb.DuckDBPyConnection) -> None:
        try:
            conn.rollback()
        except duckdb.Error as exc:
            # No transaction was open (begin itself failed).
            logger.debug("[Store] Rollback skipped: %s", exc)

    @property
    def closed(self) -> bool:
        return self._connection is None

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                logger.info("[Store] Closed database %s", self.db_path)
