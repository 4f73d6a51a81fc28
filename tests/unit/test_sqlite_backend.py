"""
Unit tests for the SQLite database, its dump tool and the backend factory.
"""

from datetime import datetime

import pytest

from archival.core.models import ObjectKind, WindowPredicate
from archival.db import create_backend
from archival.db.sqlite_database import SqliteDatabase
from archival.db.sqlite_dump import SqliteDumpTool, render_literal


class TestRenderLiteral:
    """Tests for render_literal."""

    @pytest.mark.parametrize("value, expected", [
        (None, "NULL"),
        (True, "1"),
        (42, "42"),
        (2.5, "2.5"),
        ("it's", "'it''s'"),
        (b"\x00\xff", "X'00ff'"),
    ])
    def test_literals(self, value, expected):
        assert render_literal(value) == expected


class TestSqliteDatabase:
    """Tests for SqliteDatabase."""

    def test_object_kinds(self, source_db):
        assert source_db.get_object_kind("orders") == ObjectKind.TABLE
        assert source_db.get_object_kind("order_view") == ObjectKind.VIEW
        assert source_db.get_object_kind("nope") == ObjectKind.MISSING

    def test_columns(self, source_db):
        assert source_db.get_columns("orders") == ["id", "customer", "amount", "note", "insert_ts"]
        assert source_db.column_exists("orders", "insert_ts")
        assert not source_db.column_exists("orders", "created_at")

    def test_datetime_params_compare_as_text(self, source_db):
        count = source_db.scalar(
            "SELECT COUNT(*) FROM orders WHERE insert_ts >= ?", (datetime(2023, 1, 20),)
        )
        assert count == 3

    def test_uncommitted_delete_rolls_back(self, source_db):
        assert source_db.execute("DELETE FROM orders", commit=False) == 7
        source_db.rollback()
        assert source_db.scalar("SELECT COUNT(*) FROM orders") == 7

    def test_name_defaults_to_file_stem(self, tmp_path):
        db = SqliteDatabase(tmp_path / "billing.db")
        assert db.name == "billing"
        db.close()


class TestSqliteDumpTool:
    """Tests for SqliteDumpTool."""

    def test_dump_is_deterministic(self, source_dump_tool, tmp_path, january):
        predicate = WindowPredicate("insert_ts", january)
        first, second = tmp_path / "a.sql", tmp_path / "b.sql"

        assert source_dump_tool.dump_table("orders", first, predicate) == 5
        source_dump_tool.dump_table("orders", second, predicate)

        assert first.read_bytes() == second.read_bytes()

    def test_missing_table(self, source_dump_tool, tmp_path):
        with pytest.raises(RuntimeError, match="does not exist"):
            source_dump_tool.dump_table("ghost", tmp_path / "ghost.sql")

    def test_apply_is_all_or_nothing(self, dest_db, dest_dump_tool, tmp_path):
        artifact = tmp_path / "orders.sql"
        artifact.write_text(
            "INSERT INTO `orders` (`id`, `customer`, `insert_ts`) VALUES (1, 'a', '2023-01-01 00:00:00');\n"
            "INSERT INTO `orders` (`id`, `customer`, `insert_ts`) VALUES (1, 'dup', '2023-01-01 00:00:00');\n"
        )

        with pytest.raises(Exception):
            dest_dump_tool.apply(artifact)

        assert dest_db.scalar("SELECT COUNT(*) FROM orders") == 0


class TestCreateBackend:
    """Tests for the backend factory."""

    def test_sqlite(self, tmp_path):
        database, tool = create_backend(
            "SQLite", {"sqlite_path": str(tmp_path / "x.db"), "database": "shop"}
        )
        assert isinstance(database, SqliteDatabase)
        assert isinstance(tool, SqliteDumpTool)
        assert database.name == "shop"
        database.close()

    def test_sqlite_requires_path(self):
        with pytest.raises(ValueError, match="sqlite_path"):
            create_backend("sqlite", {})

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown backend"):
            create_backend("oracle", {})
