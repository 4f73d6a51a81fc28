"""
SQLite-backed database for local runs and tests.

Mirrors the ODBC backend's behavior closely enough to drive the whole
engine without a MySQL server. Timestamps are stored as
'YYYY-MM-DD HH:MM:SS' text, which orders lexically.
"""

import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from ..core.database import Database, quote_identifier
from ..core.models import ObjectKind, format_timestamp


logger = logging.getLogger(__name__)


def _adapt(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


class SqliteDatabase(Database):
    """
    SQLite implementation of the Database capability.

    Each thread gets its own connection to the database file.
    """

    def __init__(self, db_path: Path, name: Optional[str] = None, timeout: float = 30.0):
        """
        Initialize the SQLite database.

        Args:
            db_path: Path to the SQLite database file
            name: Logical database name (defaults to the file stem)
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path)
        self._name = name or self.db_path.stem
        self.timeout = timeout

        self._thread_local = threading.local()
        self._connections = []
        self._connections_lock = threading.Lock()
        self._connect()

    @property
    def name(self) -> str:
        return self._name

    def _connect(self) -> None:
        """Establish database connection."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._get_conn()
        logger.debug(f"Connected to SQLite database: {self.db_path}")

    def _get_conn(self) -> sqlite3.Connection:
        conn = getattr(self._thread_local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, check_same_thread=False)
            self._thread_local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Tuple]:
        cursor = self._get_conn().execute(sql, tuple(_adapt(p) for p in params))
        try:
            return [tuple(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def execute(self, sql: str, params: Sequence[Any] = (), commit: bool = True) -> int:
        conn = self._get_conn()
        try:
            cursor = conn.execute(sql, tuple(_adapt(p) for p in params))
            rowcount = cursor.rowcount
            cursor.close()
            if commit:
                conn.commit()
            return rowcount
        except sqlite3.Error:
            conn.rollback()
            raise

    def executescript(self, script: str) -> None:
        """Run a multi-statement script in one transaction."""
        conn = self._get_conn()
        try:
            conn.executescript(f"BEGIN;\n{script}\nCOMMIT;")
        except sqlite3.Error:
            if conn.in_transaction:
                conn.rollback()
            raise

    def commit(self) -> None:
        self._get_conn().commit()

    def rollback(self) -> None:
        self._get_conn().rollback()

    def get_object_kind(self, table: str) -> ObjectKind:
        kind = self.scalar(
            "SELECT type FROM sqlite_master WHERE name = ? AND type IN ('table', 'view')",
            (table,),
        )
        if kind is None:
            return ObjectKind.MISSING
        return ObjectKind.VIEW if kind == "view" else ObjectKind.TABLE

    def column_exists(self, table: str, column: str) -> bool:
        rows = self.query(f"PRAGMA table_info({quote_identifier(table)})")
        return any(row[1] == column for row in rows)

    def get_columns(self, table: str) -> List[str]:
        """Column names of a table in declaration order."""
        rows = self.query(f"PRAGMA table_info({quote_identifier(table)})")
        return [row[1] for row in rows]

    def close(self) -> None:
        with self._connections_lock:
            for conn in self._connections:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.debug(f"Error closing connection: {e}")
            self._connections.clear()
        self._thread_local = threading.local()
        logger.debug(f"Closed SQLite database: {self.db_path}")
