"""
SQLite client for local development and the test suite.

Same surface as PostgresClient: %s placeholders, rows as dicts, one
connection per call. Every statement runs in autocommit mode, so a single
conditional UPDATE ... RETURNING is atomic across threads and processes
sharing the database file (SQLite serializes writers on the file lock).

Requires SQLite >= 3.35 for RETURNING.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Tuple
from uuid import UUID

from clients.base import DatabaseError

logger = logging.getLogger(__name__)


class SqliteClient:
    """
    File-backed SQLite client.

    Usage:
        db = SqliteClient(tmp_path / "invoices.db")
        db.execute_script(Path("schema/sqlite.sql").read_text())
    """

    def __init__(self, database_path: str | Path, busy_timeout_seconds: float = 30.0):
        self._database_path = str(database_path)
        self._busy_timeout = busy_timeout_seconds

        if self._database_path == ":memory:":
            raise ValueError("SqliteClient needs a file path; :memory: is not shared between connections")

        with self.get_connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
        logger.info(f"SQLite database ready: {self._database_path}")

    @contextmanager
    def get_connection(self):
        """Open an autocommit connection for one call."""
        conn = None
        try:
            conn = sqlite3.connect(
                self._database_path,
                timeout=self._busy_timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e
        finally:
            if conn is not None:
                conn.close()

    @staticmethod
    def _convert_query(query: str) -> str:
        return query.replace("%s", "?")

    def _convert_params(self, params: Tuple | None) -> Tuple:
        """Adapt Python values to SQLite storage classes."""
        if params is None:
            return ()

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            # Fixed width so timestamp columns sort and compare as text
            if isinstance(value, datetime):
                return value.isoformat(timespec="microseconds")
            if isinstance(value, date):
                return value.isoformat()
            return value

        return tuple(convert(v) for v in params)

    def execute(self, query: str, params: Tuple | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        with self.get_connection() as conn:
            cur = conn.execute(self._convert_query(query), self._convert_params(params))
            if cur.description:
                return [dict(row) for row in cur.fetchall()]
            return []

    def execute_single(self, query: str, params: Tuple | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_returning(self, query: str, params: Tuple | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE with RETURNING, return results."""
        return self.execute(query, params)

    def execute_script(self, script: str) -> None:
        """Run a multi-statement DDL script (schema setup)."""
        with self.get_connection() as conn:
            conn.executescript(script)

    def close(self) -> None:
        """Connections are per call; nothing to release."""
