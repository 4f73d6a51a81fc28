"""
Unit tests for the SQL checkpoint store.
"""

import threading
from datetime import datetime, timedelta

import pytest

from archival.core.models import CheckpointScope
from archival.state import SqlCheckpointStore, create_checkpoint_store, table_object_name


class TestSqlCheckpointStore:
    """Tests for SqlCheckpointStore against SQLite."""

    @pytest.fixture
    def store(self, source_db):
        return create_checkpoint_store(source_db)

    def test_creates_table(self, source_db, store):
        assert source_db.get_object_kind("backup_checkpoint").value == "table"

    def test_get_missing_returns_none(self, store):
        assert store.get(CheckpointScope.TABLE, "shop.orders") is None

    def test_upsert_creates_then_advances(self, store):
        first = datetime(2023, 2, 1)
        assert store.upsert(CheckpointScope.TABLE, "shop.orders", first) == first
        assert store.get(CheckpointScope.TABLE, "shop.orders") == first

        later = datetime(2023, 3, 1)
        assert store.upsert(CheckpointScope.TABLE, "shop.orders", later) == later
        assert store.get(CheckpointScope.TABLE, "shop.orders") == later

    def test_upsert_never_regresses(self, store):
        store.upsert(CheckpointScope.TABLE, "shop.orders", datetime(2023, 3, 1))
        kept = store.upsert(CheckpointScope.TABLE, "shop.orders", datetime(2023, 2, 1))
        assert kept == datetime(2023, 3, 1)
        assert store.get(CheckpointScope.TABLE, "shop.orders") == datetime(2023, 3, 1)

    def test_upsert_is_idempotent(self, store):
        ts = datetime(2023, 2, 1)
        store.upsert(CheckpointScope.TABLE, "shop.orders", ts)
        store.upsert(CheckpointScope.TABLE, "shop.orders", ts)
        assert len(store.list_checkpoints()) == 1

    def test_scopes_are_independent(self, store):
        store.upsert(CheckpointScope.DATABASE, "shop", datetime(2023, 1, 1))
        store.upsert(CheckpointScope.TABLE, "shop.orders", datetime(2023, 2, 1))

        assert [cp.object_name for cp in store.list_checkpoints(CheckpointScope.TABLE)] == ["shop.orders"]
        assert [cp.scope for cp in store.list_checkpoints()] == [
            CheckpointScope.DATABASE,
            CheckpointScope.TABLE,
        ]

    def test_existing_table_is_reused(self, source_db, store):
        store.upsert(CheckpointScope.TABLE, "shop.orders", datetime(2023, 2, 1))
        reopened = SqlCheckpointStore(source_db)
        assert reopened.get(CheckpointScope.TABLE, "shop.orders") == datetime(2023, 2, 1)

    def test_concurrent_upserts_same_key_keep_maximum(self, store):
        base = datetime(2023, 1, 1)
        values = [base + timedelta(days=i) for i in range(8)]
        threads = [
            threading.Thread(target=store.upsert, args=(CheckpointScope.TABLE, "shop.orders", v))
            for v in values
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get(CheckpointScope.TABLE, "shop.orders") == values[-1]

    def test_rejects_unsafe_table_name(self, source_db):
        with pytest.raises(ValueError):
            SqlCheckpointStore(source_db, table="checkpoints; DROP TABLE orders")


def test_table_object_name():
    assert table_object_name("shop", "orders") == "shop.orders"
