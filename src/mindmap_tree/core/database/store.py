"""SQLite implementation of the store primitives."""

import sqlite3
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from loguru import logger

from mindmap_tree.core.database.schema import connect, migrate_schema
from mindmap_tree.errors import StoreRowCountError
from mindmap_tree.protocols import Statement


class SqliteStore:
    """Store backed by one SQLite connection.

    Calls are serialized with a lock so the connection can be used from
    worker threads (``persist`` runs its transaction off the event loop).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._lock = threading.Lock()

    @classmethod
    def open(cls, path: str | Path) -> "SqliteStore":
        """Open (creating if needed) a database file and migrate its schema."""
        conn = connect(str(path))
        migrate_schema(conn)
        logger.debug("Opened store {}", path)
        return cls(conn)

    @classmethod
    def in_memory(cls) -> "SqliteStore":
        return cls.open(":memory:")

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        with self._lock:
            try:
                self.conn.execute(sql, params)
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[tuple[Any, ...]]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    def run_atomic(self, statements: Sequence[Statement]) -> list[tuple[Any, ...]]:
        """Run every statement in one transaction; any error rolls all of them back.

        Returns the rows fetched by statements marked ``fetch``.
        """
        fetched: list[tuple[Any, ...]] = []
        with self._lock:
            try:
                if not self.conn.in_transaction:
                    self.conn.execute("BEGIN")
                for statement in statements:
                    if statement.many:
                        cursor = self.conn.executemany(statement.sql, statement.params)
                    else:
                        cursor = self.conn.execute(statement.sql, statement.params)
                    expected = statement.expected_rowcount
                    if expected is not None and cursor.rowcount != expected:
                        raise StoreRowCountError(statement.sql, expected, cursor.rowcount)
                    if statement.fetch:
                        fetched.extend(cursor.fetchall())
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise
        return fetched
