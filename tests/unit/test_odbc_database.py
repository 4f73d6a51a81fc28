"""
Unit tests for the ODBC database (pyodbc mocked).
"""

import threading
from unittest.mock import MagicMock, call, patch

import pytest

from archival.core.models import ObjectKind
from archival.db import odbc_database


class FakeOdbcError(Exception):
    pass


@pytest.fixture
def pyodbc_mock():
    mock = MagicMock()
    mock.Error = FakeOdbcError
    with patch.object(odbc_database, "pyodbc", mock):
        yield mock


@pytest.fixture
def cursor(pyodbc_mock):
    cursor = MagicMock()
    pyodbc_mock.connect.return_value.cursor.return_value = cursor
    return cursor


class TestOdbcDatabase:
    """Tests for OdbcDatabase."""

    def test_connection_string(self, pyodbc_mock):
        db = odbc_database.OdbcDatabase(
            "shop", host="db.internal", port=3307, username="archiver", password="pw"
        )
        conn_str = pyodbc_mock.connect.call_args.args[0]
        assert "Driver={MySQL ODBC 8.0 Unicode Driver}" in conn_str
        assert "Server=db.internal" in conn_str
        assert "Port=3307" in conn_str
        assert "Database=shop" in conn_str
        assert "UID=archiver" in conn_str
        assert pyodbc_mock.connect.call_args.kwargs["autocommit"] is False
        assert db.name == "shop"

    def test_invalid_database_name(self, pyodbc_mock):
        with pytest.raises(ValueError):
            odbc_database.OdbcDatabase("shop; DROP DATABASE x")

    def test_missing_pyodbc(self):
        with patch.object(odbc_database, "pyodbc", None):
            with pytest.raises(ImportError):
                odbc_database.OdbcDatabase("shop")

    def test_session_time_zone_is_utc(self, pyodbc_mock, cursor):
        odbc_database.OdbcDatabase("shop")

        assert cursor.execute.call_args_list[0] == call("SET time_zone = '+00:00'")

    def test_each_thread_connection_gets_utc_session(self, pyodbc_mock, cursor):
        db = odbc_database.OdbcDatabase("shop")
        worker = threading.Thread(target=db.query, args=("SELECT 1",))
        worker.start()
        worker.join()

        assert pyodbc_mock.connect.call_count == 2
        set_calls = [c for c in cursor.execute.call_args_list if c == call("SET time_zone = '+00:00'")]
        assert len(set_calls) == 2

    def test_failed_session_setup_closes_connection(self, pyodbc_mock, cursor):
        cursor.execute.side_effect = FakeOdbcError("access denied")
        with pytest.raises(FakeOdbcError):
            odbc_database.OdbcDatabase("shop")
        pyodbc_mock.connect.return_value.close.assert_called_once()

    def test_query_binds_params(self, pyodbc_mock, cursor):
        cursor.fetchall.return_value = [("orders", "id")]
        db = odbc_database.OdbcDatabase("shop")

        rows = db.query("SELECT a FROM t WHERE b = ?", ("x",))

        cursor.execute.assert_called_with("SELECT a FROM t WHERE b = ?", ("x",))
        assert rows == [("orders", "id")]
        cursor.close.assert_called()

    def test_execute_without_commit(self, pyodbc_mock, cursor):
        cursor.rowcount = 5
        db = odbc_database.OdbcDatabase("shop")
        conn = pyodbc_mock.connect.return_value

        assert db.execute("DELETE FROM t WHERE a = ?", (1,), commit=False) == 5
        conn.commit.assert_not_called()

        db.execute("DELETE FROM t WHERE a = ?", (1,))
        conn.commit.assert_called_once()

    def test_execute_error_rolls_back(self, pyodbc_mock, cursor):
        db = odbc_database.OdbcDatabase("shop")
        cursor.execute.side_effect = FakeOdbcError("deadlock")

        with pytest.raises(FakeOdbcError):
            db.execute("DELETE FROM t")
        pyodbc_mock.connect.return_value.rollback.assert_called_once()

    @pytest.mark.parametrize("table_type, kind", [
        ("BASE TABLE", ObjectKind.TABLE),
        ("VIEW", ObjectKind.VIEW),
        (None, ObjectKind.MISSING),
    ])
    def test_get_object_kind(self, pyodbc_mock, cursor, table_type, kind):
        cursor.fetchall.return_value = [(table_type,)] if table_type else []
        db = odbc_database.OdbcDatabase("shop")

        assert db.get_object_kind("orders") == kind
        assert cursor.execute.call_args.args[1] == ("shop", "orders")

    def test_column_exists(self, pyodbc_mock, cursor):
        cursor.fetchall.return_value = [(1,)]
        db = odbc_database.OdbcDatabase("shop")
        assert db.column_exists("orders", "insert_ts")
        assert cursor.execute.call_args.args[1] == ("shop", "orders", "insert_ts")

    def test_close(self, pyodbc_mock):
        db = odbc_database.OdbcDatabase("shop")
        db.close()
        pyodbc_mock.connect.return_value.close.assert_called_once()
