"""
Checkpoint store backed by a table in the source database.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from ..core.checkpoint_store import CheckpointStore
from ..core.database import Database, quote_identifier
from ..core.models import Checkpoint, CheckpointScope, normalize_timestamp, parse_timestamp


logger = logging.getLogger(__name__)


class SqlCheckpointStore(CheckpointStore):
    """
    Checkpoints stored as rows of `(scope, object_name, last_backup_ts)`.

    Upserts for the same key are serialized by a per-key lock; different
    keys may be written concurrently.
    """

    def __init__(self, database: Database, table: str = "backup_checkpoint", auto_init: bool = True):
        """
        Initialize the checkpoint store.

        Args:
            database: Database holding the checkpoint table
            table: Checkpoint table name
            auto_init: Whether to create the table if it does not exist
        """
        self.database = database
        self.table = quote_identifier(table)
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

        if auto_init:
            self._init_schema()

    def _init_schema(self) -> None:
        """Create the checkpoint table if absent."""
        self.database.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                scope VARCHAR(16) NOT NULL,
                object_name VARCHAR(255) NOT NULL,
                last_backup_ts DATETIME NOT NULL,
                PRIMARY KEY (scope, object_name)
            )
        """)
        logger.debug(f"Initialized checkpoint table {self.table}")

    def _lock_for(self, scope: CheckpointScope, object_name: str) -> threading.Lock:
        key = (CheckpointScope(scope).value, object_name)
        with self._locks_guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    def get(self, scope: CheckpointScope, object_name: str) -> Optional[datetime]:
        value = self.database.scalar(
            f"SELECT last_backup_ts FROM {self.table} WHERE scope = ? AND object_name = ?",
            (CheckpointScope(scope).value, object_name),
        )
        if value is None:
            return None
        return parse_timestamp(value)

    def upsert(self, scope: CheckpointScope, object_name: str, timestamp: datetime) -> datetime:
        scope = CheckpointScope(scope)
        timestamp = normalize_timestamp(timestamp)

        with self._lock_for(scope, object_name):
            current = self.get(scope, object_name)
            if current is None:
                self.database.execute(
                    f"INSERT INTO {self.table} (scope, object_name, last_backup_ts) VALUES (?, ?, ?)",
                    (scope.value, object_name, timestamp),
                )
                logger.info(f"Checkpoint created for {object_name}: {timestamp}")
                return timestamp

            if timestamp <= current:
                logger.debug(
                    f"Checkpoint for {object_name} kept at {current} (offered {timestamp})"
                )
                return current

            self.database.execute(
                f"UPDATE {self.table} SET last_backup_ts = ? WHERE scope = ? AND object_name = ?",
                (timestamp, scope.value, object_name),
            )
            logger.info(f"Checkpoint advanced for {object_name}: {current} -> {timestamp}")
            return timestamp

    def list_checkpoints(self, scope: Optional[CheckpointScope] = None) -> List[Checkpoint]:
        sql = f"SELECT scope, object_name, last_backup_ts FROM {self.table}"
        params: Tuple = ()
        if scope is not None:
            sql += " WHERE scope = ?"
            params = (CheckpointScope(scope).value,)
        sql += " ORDER BY scope, object_name"

        return [
            Checkpoint(
                scope=CheckpointScope(row[0]),
                object_name=row[1],
                last_backup_ts=parse_timestamp(row[2]),
            )
            for row in self.database.query(sql, params)
        ]
