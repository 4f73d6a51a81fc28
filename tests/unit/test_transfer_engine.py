"""
Unit tests for the transfer engine.
"""

import os
import time
from unittest.mock import Mock, patch

import pytest

from archival.core.exceptions import TransferFailed
from archival.transfer import TransferEngine


@pytest.fixture
def store():
    store = Mock()
    store.describe.return_value = "s3://bucket/db-dumps/"
    return store


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("archival.utils.retry.time.sleep") as sleep:
        yield sleep


class TestTransferEngine:
    """Tests for sync with retry."""

    def test_success_first_attempt(self, store, dump_root):
        store.sync.return_value = 3
        engine = TransferEngine(store, remote_prefix="db-dumps", storage_class="GLACIER")

        result = engine.transfer(dump_root)

        store.sync.assert_called_once_with(dump_root, "db-dumps", "GLACIER")
        assert result.files_uploaded == 3
        assert result.retries == 0

    def test_retries_with_fixed_backoff(self, store, dump_root, no_sleep):
        store.sync.side_effect = [ConnectionError("reset"), 2]
        engine = TransferEngine(store, max_retries=1, backoff_seconds=2)

        result = engine.transfer(dump_root)

        assert result.files_uploaded == 2
        assert result.attempts == 2
        assert result.retries == 1
        no_sleep.assert_called_once_with(2.0)

    def test_exhausted_retries_raise(self, store, dump_root, no_sleep):
        store.sync.side_effect = ConnectionError("unreachable")
        engine = TransferEngine(store, max_retries=2, backoff_seconds=5)

        with pytest.raises(TransferFailed) as exc_info:
            engine.transfer(dump_root)

        assert exc_info.value.attempts == 3
        assert store.sync.call_count == 3
        assert [c.args[0] for c in no_sleep.call_args_list] == [5.0, 5.0]

    def test_requires_at_least_one_retry(self, store):
        with pytest.raises(ValueError):
            TransferEngine(store, max_retries=0)


class TestRetentionCleanup:
    """Tests for local retention after upload."""

    def _make_file(self, root, relative, age_days, now):
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("INSERT INTO `t` (`a`) VALUES (1);\n")
        mtime = now - age_days * 86400
        os.utime(path, (mtime, mtime))
        return path

    def test_cleanup_only_when_enabled(self, store, dump_root):
        now = time.time()
        old = self._make_file(dump_root, "shop/orders/20230101/orders_20230101.sql", 40, now)
        store.sync.return_value = 1

        result = TransferEngine(store, delete_local_after_upload=False).transfer(dump_root, now=now)

        assert result.local_files_cleaned == 0
        assert old.exists()

    def test_cleanup_removes_expired_files(self, store, dump_root):
        now = time.time()
        old = self._make_file(dump_root, "shop/orders/20230101/orders_20230101.sql", 40, now)
        fresh = self._make_file(dump_root, "shop/orders/20230301/orders_20230301.sql", 1, now)
        store.sync.return_value = 2
        engine = TransferEngine(store, delete_local_after_upload=True, retention_days=30)

        result = engine.transfer(dump_root, now=now)

        assert result.local_files_cleaned == 1
        assert not old.exists()
        assert not old.parent.exists()
        assert fresh.exists()

    def test_no_cleanup_after_failed_sync(self, store, dump_root):
        now = time.time()
        old = self._make_file(dump_root, "shop/orders/20230101/orders_20230101.sql", 40, now)
        store.sync.side_effect = ConnectionError("down")
        engine = TransferEngine(store, delete_local_after_upload=True, retention_days=0)

        with pytest.raises(TransferFailed):
            engine.transfer(dump_root, now=now)
        assert old.exists()

    def test_cleanup_errors_are_not_fatal(self, store, dump_root):
        engine = TransferEngine(store, delete_local_after_upload=True)
        with patch("pathlib.Path.rglob", side_effect=OSError("permission denied")):
            assert engine.cleanup(dump_root) == 0
