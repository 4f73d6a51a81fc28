"""
Unit tests for the dump engine.
"""

from pathlib import Path
from unittest.mock import Mock

import pytest

from archival.core.exceptions import DumpFailed
from archival.core.models import (
    DumpMode, ObjectKind, ObjectPlan, RegistryEntry, WindowPredicate,
)
from archival.dump import DumpEngine, count_row_statements
from archival.mutation import MutationEngine


def _plan(entry, window, mode=DumpMode.WINDOW, match_count=5):
    predicate = WindowPredicate("insert_ts", window) if window else None
    return ObjectPlan(
        entry=entry,
        kind=ObjectKind.TABLE,
        mode=mode,
        window=window,
        predicate=predicate,
        match_count=match_count,
        eligible=True,
    )


def _writes(*contents):
    """Dump side effect writing each content in turn, repeating the last."""
    remaining = list(contents)

    def _dump(table, out_path, predicate):
        text = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        Path(out_path).write_text(text)

    return _dump


class TestArtifactPath:
    """Tests for deterministic artifact naming."""

    def test_window_layout(self, dump_root):
        engine = DumpEngine(Mock(), dump_root, "shop")
        assert engine.artifact_path("orders", DumpMode.WINDOW, "20230301") == (
            dump_root / "shop" / "orders" / "20230301" / "orders_20230301.sql"
        )

    def test_incremental_layout(self, dump_root):
        engine = DumpEngine(Mock(), dump_root, "shop")
        assert engine.artifact_path("orders", DumpMode.INCREMENTAL, "20230301") == (
            dump_root / "shop" / "orders" / "incremental" / "20230301"
            / "orders_incremental_20230301.sql"
        )
        assert engine.artifact_path("orders", DumpMode.FULL, "20230301").name == (
            "orders_full_20230301.sql"
        )


class TestDumpEngine:
    """Tests for DumpEngine.dump()."""

    def test_dumps_window_rows(self, source_dump_tool, dump_root, orders_entry, january):
        engine = DumpEngine(source_dump_tool, dump_root, "shop")

        artifact = engine.dump(_plan(orders_entry, january), "20230301")

        path = Path(artifact.path)
        assert path == dump_root / "shop" / "orders" / "20230301" / "orders_20230301.sql"
        assert path.exists()
        assert artifact.row_count == 5
        assert artifact.size_bytes == path.stat().st_size
        assert artifact.sha256
        text = path.read_text()
        assert "INSERT INTO `orders` (`id`, `customer`, `amount`, `note`, `insert_ts`)" in text
        assert "'it''s quoted'" in text
        assert "2023-02-01 00:00:00'" not in text.split("\n\n", 1)[1]
        assert not list(dump_root.rglob("*.partial"))

    def test_failed_dump_leaves_no_file(self, dump_root, orders_entry, january):
        tool = Mock()

        def _fail(table, out_path, predicate):
            Path(out_path).write_text("INSERT INTO `orders` VALUES (1);\n-- trunc")
            raise RuntimeError("mysqldump exited with 2")

        tool.dump_table.side_effect = _fail
        engine = DumpEngine(tool, dump_root, "shop")

        with pytest.raises(DumpFailed) as exc_info:
            engine.dump(_plan(orders_entry, january), "20230301")

        assert exc_info.value.table == "orders"
        assert not [p for p in dump_root.rglob("*") if p.is_file()]

    def test_interrupt_removes_partial_and_propagates(self, dump_root, orders_entry, january):
        tool = Mock()

        def _interrupt(table, out_path, predicate):
            Path(out_path).write_text("INSERT INTO `orders` VALUES (1);\n")
            raise KeyboardInterrupt()

        tool.dump_table.side_effect = _interrupt
        engine = DumpEngine(tool, dump_root, "shop")

        with pytest.raises(KeyboardInterrupt):
            engine.dump(_plan(orders_entry, january), "20230301")
        assert not [p for p in dump_root.rglob("*") if p.is_file()]

    def test_empty_dump_creates_no_artifact(self, dump_root, orders_entry, january):
        tool = Mock()
        tool.dump_table.side_effect = _writes("-- header only\n")
        engine = DumpEngine(tool, dump_root, "shop")

        assert engine.dump(_plan(orders_entry, january), "20230301") is None
        assert not [p for p in dump_root.rglob("*") if p.is_file()]

    def test_identical_rerun_reuses_artifact(self, dump_root, orders_entry, january):
        tool = Mock()
        tool.dump_table.side_effect = _writes("INSERT INTO `orders` (`id`) VALUES (1);\n")
        engine = DumpEngine(tool, dump_root, "shop")

        first = engine.dump(_plan(orders_entry, january, match_count=1), "20230301")
        second = engine.dump(_plan(orders_entry, january, match_count=1), "20230301")

        assert first.path == second.path
        assert first.sha256 == second.sha256
        assert len([p for p in dump_root.rglob("*") if p.is_file()]) == 1

    def test_conflicting_rerun_fails_without_overwriting(self, dump_root, orders_entry, january):
        tool = Mock()
        tool.dump_table.side_effect = _writes(
            "INSERT INTO `orders` (`id`) VALUES (1);\n",
            "INSERT INTO `orders` (`id`) VALUES (2);\n",
        )
        engine = DumpEngine(tool, dump_root, "shop")

        first = engine.dump(_plan(orders_entry, january, match_count=1), "20230301")
        with pytest.raises(DumpFailed, match="different content"):
            engine.dump(_plan(orders_entry, january, match_count=1), "20230301")

        assert Path(first.path).read_text() == "INSERT INTO `orders` (`id`) VALUES (1);\n"
        assert not list(dump_root.rglob("*.partial"))

    def test_incremental_rerun_appends_new_slice(self, dump_root, orders_entry, january):
        tool = Mock()
        tool.dump_table.side_effect = _writes(
            "INSERT INTO `orders` (`id`) VALUES (1);\n",
            "INSERT INTO `orders` (`id`) VALUES (2);\n",
        )
        engine = DumpEngine(tool, dump_root, "shop")
        plan = _plan(orders_entry, january, mode=DumpMode.INCREMENTAL, match_count=1)

        first = engine.dump(plan, "20230301")
        second = engine.dump(plan, "20230301")

        assert first.path == second.path
        assert second.row_count == 1
        path = Path(second.path)
        assert path.read_text() == (
            "INSERT INTO `orders` (`id`) VALUES (1);\n"
            "INSERT INTO `orders` (`id`) VALUES (2);\n"
        )
        assert second.size_bytes == path.stat().st_size
        assert second.sha256 != first.sha256
        assert [p for p in dump_root.rglob("*") if p.is_file()] == [path]

    def test_incremental_rerun_of_same_slice_is_not_appended_twice(
        self, dump_root, orders_entry, january
    ):
        tool = Mock()
        tool.dump_table.side_effect = _writes(
            "INSERT INTO `orders` (`id`) VALUES (1);\n",
            "INSERT INTO `orders` (`id`) VALUES (2);\n",
        )
        engine = DumpEngine(tool, dump_root, "shop")
        plan = _plan(orders_entry, january, mode=DumpMode.INCREMENTAL, match_count=1)

        engine.dump(plan, "20230301")
        second = engine.dump(plan, "20230301")
        third = engine.dump(plan, "20230301")

        assert third.sha256 == second.sha256
        assert count_row_statements(Path(third.path)) == 2
        assert not list(dump_root.rglob("*.partial"))

    def test_row_count_comes_from_dump_tool(self, dump_root, orders_entry, january):
        def _dump(table, out_path, predicate):
            Path(out_path).write_text(
                "INSERT INTO `orders` (`id`, `note`) VALUES (3, 'a\n"
                "INSERT INTO x');\n"
            )
            return 1

        tool = Mock()
        tool.dump_table.side_effect = _dump
        engine = DumpEngine(tool, dump_root, "shop")

        artifact = engine.dump(_plan(orders_entry, january, match_count=1), "20230301")

        assert artifact.row_count == 1

    def test_newline_in_value_does_not_inflate_row_count(
        self, source_db, source_dump_tool, dump_root, orders_entry, january
    ):
        source_db.execute("UPDATE orders SET note = ? WHERE id = ?", ("a\nINSERT INTO x", 3))
        plan = _plan(orders_entry, january)

        artifact = DumpEngine(source_dump_tool, dump_root, "shop").dump(plan, "20230301")

        assert artifact.row_count == 5
        engine = MutationEngine(source_db, dump_root, dry_run=False)
        assert engine.delete_archived(plan, artifact) == 5
        assert source_db.scalar("SELECT COUNT(*) FROM orders") == 2

    def test_full_mode_dumps_everything(self, source_dump_tool, dump_root):
        engine = DumpEngine(source_dump_tool, dump_root, "shop")
        plan = _plan(RegistryEntry("orders", "id"), None, mode=DumpMode.FULL, match_count=7)

        artifact = engine.dump(plan, "20230301")

        assert artifact.row_count == 7
        assert artifact.mode == DumpMode.FULL
        assert "/full/20230301/" in Path(artifact.path).as_posix()


def test_count_row_statements(tmp_path):
    path = tmp_path / "a.sql"
    path.write_text(
        "-- comment\n"
        "INSERT INTO `t` (`a`) VALUES (1);\n"
        "INSERT INTO `t` (`a`) VALUES ('INSERT INTO');\n"
        "/*!40101 SET NAMES utf8mb4 */;\n"
    )
    assert count_row_statements(path) == 2
