"""
Database and dump tool backends.

The default backend is MySQL (OdbcDatabase + MysqlClientDumpTool).
SQLite (SqliteDatabase + SqliteDumpTool) is intended for local runs and
testing without a MySQL server.

To select backend, set the DB_BACKEND environment variable:
    - DB_BACKEND=mysql (default)
    - DB_BACKEND=sqlite
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from ..core.database import Database
from ..core.dump_tool import DumpTool


logger = logging.getLogger(__name__)


# Lazy imports to avoid import errors when dependencies are missing
def _get_odbc_database():
    from .odbc_database import OdbcDatabase
    return OdbcDatabase


def _get_sqlite_database():
    from .sqlite_database import SqliteDatabase
    return SqliteDatabase


def create_backend(
    backend: str,
    settings: Dict[str, Any],
    odbc_driver: Optional[str] = None,
) -> Tuple[Database, DumpTool]:
    """
    Factory function creating a database and its matching dump tool.

    Args:
        backend: 'mysql' or 'sqlite'
        settings: Connection section (host, port, user, password, database,
            sqlite_path)
        odbc_driver: ODBC driver name for the mysql backend

    Returns:
        (Database, DumpTool) pair bound to the same database

    Raises:
        ValueError: If backend is not recognized
        ImportError: If required dependencies are missing
    """
    backend = (backend or "mysql").lower()

    if backend == "sqlite":
        SqliteDatabase = _get_sqlite_database()
        from .sqlite_dump import SqliteDumpTool

        sqlite_path = settings.get("sqlite_path")
        if not sqlite_path:
            raise ValueError("sqlite_path is required for the sqlite backend")
        database = SqliteDatabase(Path(sqlite_path), name=settings.get("database"))
        return database, SqliteDumpTool(database)

    elif backend == "mysql":
        OdbcDatabase = _get_odbc_database()
        from .mysql_client import MysqlClientDumpTool

        kwargs = {
            "host": settings.get("host") or "localhost",
            "port": int(settings.get("port") or 3306),
            "username": settings.get("user"),
            "password": settings.get("password"),
        }
        database = OdbcDatabase(
            database=settings.get("database"),
            driver=odbc_driver or "MySQL ODBC 8.0 Unicode Driver",
            **kwargs,
        )
        return database, MysqlClientDumpTool(database=settings.get("database"), **kwargs)

    else:
        raise ValueError(
            f"Unknown backend: {backend}. "
            "Supported backends: 'mysql' (default), 'sqlite'"
        )


__all__ = ["create_backend"]
