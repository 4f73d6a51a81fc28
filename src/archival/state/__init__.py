"""
Checkpoint store implementations.

Checkpoints live in a table of the source database so they survive
together with the data they describe.
"""

import logging

from ..core.checkpoint_store import CheckpointStore
from ..core.database import Database
from .sql_checkpoint_store import SqlCheckpointStore


logger = logging.getLogger(__name__)


def create_checkpoint_store(
    database: Database,
    table: str = "backup_checkpoint",
    auto_init: bool = True,
) -> CheckpointStore:
    """
    Factory function to create the checkpoint store.

    Args:
        database: Database holding the checkpoint table
        table: Checkpoint table name
        auto_init: Auto-create the checkpoint table

    Returns:
        CheckpointStore instance
    """
    return SqlCheckpointStore(database=database, table=table, auto_init=auto_init)


def table_object_name(database: str, table: str) -> str:
    """Checkpoint object name for a table-scope checkpoint."""
    return f"{database}.{table}"


__all__ = ["SqlCheckpointStore", "create_checkpoint_store", "table_object_name"]
