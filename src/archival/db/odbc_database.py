"""
ODBC-backed source/destination database (MySQL dialect).

This is the default backend. Schema introspection goes through
information_schema; every value travels as a bound parameter.
"""

import logging
import threading
from typing import Any, List, Optional, Sequence, Tuple

try:
    import pyodbc
except ImportError:
    pyodbc = None

from ..core.database import Database, is_valid_identifier
from ..core.models import ObjectKind


logger = logging.getLogger(__name__)


# Window bounds are naive UTC, as mysqldump --tz-utc reads them
SESSION_TIME_ZONE = "+00:00"


class OdbcDatabase(Database):
    """
    pyodbc implementation of the Database capability.

    Connections are thread-local so a bounded worker pool can issue
    queries concurrently without sharing a cursor.
    """

    def __init__(
        self,
        database: str,
        connection_string: Optional[str] = None,
        host: str = "localhost",
        port: int = 3306,
        username: Optional[str] = None,
        password: Optional[str] = None,
        driver: str = "MySQL ODBC 8.0 Unicode Driver",
        charset: str = "utf8mb4",
    ):
        """
        Initialize the ODBC database.

        Args:
            database: Database (schema) name
            connection_string: Full ODBC connection string (if provided, other params ignored)
            host: Server host
            port: Server port
            username: Database username
            password: Database password
            driver: ODBC driver name
            charset: Connection character set
        """
        if pyodbc is None:
            raise ImportError(
                "pyodbc is required for OdbcDatabase. "
                "Install with: pip install pyodbc"
            )

        if not is_valid_identifier(database):
            raise ValueError(f"Invalid database name: {database}")

        self._name = database
        self.host = host
        self.port = port

        if connection_string:
            self.connection_string = connection_string
        else:
            parts = [
                f"Driver={{{driver}}}",
                f"Server={host}",
                f"Port={port}",
                f"Database={database}",
                f"Charset={charset}",
            ]
            if username:
                parts.append(f"UID={username}")
            if password:
                parts.append(f"PWD={password}")
            self.connection_string = ";".join(parts) + ";"

        self._thread_local = threading.local()
        self._connections = []
        self._connections_lock = threading.Lock()
        self._connect()

    @property
    def name(self) -> str:
        return self._name

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self._get_conn()
            logger.debug(f"Connected to {self.host}:{self.port}/{self._name}")
        except pyodbc.Error as e:
            logger.error(f"Failed to connect to {self.host}:{self.port}/{self._name}: {e}")
            raise

    def _get_conn(self):
        """Get (or create) a thread-local connection for safe concurrent use."""
        conn = getattr(self._thread_local, "conn", None)
        if conn is None:
            conn = pyodbc.connect(self.connection_string, autocommit=False)
            try:
                cursor = conn.cursor()
                try:
                    cursor.execute(f"SET time_zone = '{SESSION_TIME_ZONE}'")
                finally:
                    cursor.close()
            except pyodbc.Error:
                conn.close()
                raise
            self._thread_local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Tuple]:
        cursor = self._get_conn().cursor()
        try:
            cursor.execute(sql, tuple(params))
            return [tuple(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def execute(self, sql: str, params: Sequence[Any] = (), commit: bool = True) -> int:
        conn = self._get_conn()
        cursor = conn.cursor()
        try:
            cursor.execute(sql, tuple(params))
            rowcount = cursor.rowcount
            if commit:
                conn.commit()
            return rowcount
        except pyodbc.Error:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def commit(self) -> None:
        self._get_conn().commit()

    def rollback(self) -> None:
        self._get_conn().rollback()

    def get_object_kind(self, table: str) -> ObjectKind:
        table_type = self.scalar(
            """
            SELECT TABLE_TYPE FROM information_schema.tables
            WHERE table_schema = ? AND table_name = ?
            """,
            (self._name, table),
        )
        if table_type is None:
            return ObjectKind.MISSING
        if str(table_type).upper() == "VIEW":
            return ObjectKind.VIEW
        return ObjectKind.TABLE

    def column_exists(self, table: str, column: str) -> bool:
        count = self.scalar(
            """
            SELECT COUNT(*) FROM information_schema.columns
            WHERE table_schema = ? AND table_name = ? AND column_name = ?
            """,
            (self._name, table, column),
        )
        return bool(count)

    def close(self) -> None:
        """Close all thread-local connections."""
        with self._connections_lock:
            for conn in self._connections:
                try:
                    conn.close()
                except pyodbc.Error as e:
                    logger.debug(f"Error closing connection: {e}")
            self._connections.clear()
        self._thread_local = threading.local()
        logger.debug(f"Closed connections to {self._name}")
