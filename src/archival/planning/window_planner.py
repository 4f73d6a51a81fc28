"""
Window planner: decides per registry entry whether and what to archive.
"""

import logging
from datetime import datetime
from typing import Optional

from ..core.checkpoint_store import CheckpointStore
from ..core.database import Database, is_valid_identifier, quote_identifier
from ..core.exceptions import SchemaIntrospectionFailed
from ..core.models import (
    ArchiveWindow, CheckpointScope, DumpMode, ObjectKind, ObjectPlan,
    RegistryEntry, WindowPredicate, normalize_timestamp,
)
from ..state import table_object_name


logger = logging.getLogger(__name__)


class WindowPlanner:
    """
    Computes the effective window and eligibility of each object.

    Checks run in order: object kind, timestamp column, window, row count.
    The first failing check decides the skip reason.
    """

    def __init__(
        self,
        database: Database,
        timestamp_column: str,
        window: Optional[ArchiveWindow] = None,
        incremental: bool = False,
        checkpoint_store: Optional[CheckpointStore] = None,
        epoch_start: Optional[datetime] = None,
        run_end: Optional[datetime] = None,
        full_dump_without_column: bool = False,
    ):
        """
        Initialize the planner.

        Args:
            database: Source database
            timestamp_column: Column the window is applied to
            window: Fixed window used when not incremental
            incremental: Whether windows start at each object's checkpoint
            checkpoint_store: Store seeding incremental windows
            epoch_start: Window start for objects without a checkpoint
            run_end: Exclusive end of incremental windows
            full_dump_without_column: Dump whole tables lacking the column
                instead of skipping them
        """
        if not is_valid_identifier(timestamp_column):
            raise ValueError(f"Invalid timestamp column: {timestamp_column}")
        if incremental:
            if checkpoint_store is None or epoch_start is None or run_end is None:
                raise ValueError(
                    "Incremental planning requires a checkpoint store, epoch start and run end"
                )
        elif window is None:
            raise ValueError("A fixed window is required when not incremental")

        self.database = database
        self.timestamp_column = timestamp_column
        self.window = window
        self.incremental = incremental
        self.checkpoint_store = checkpoint_store
        self.epoch_start = normalize_timestamp(epoch_start) if epoch_start else None
        self.run_end = normalize_timestamp(run_end) if run_end else None
        self.full_dump_without_column = full_dump_without_column

    @property
    def windowed_mode(self) -> DumpMode:
        return DumpMode.INCREMENTAL if self.incremental else DumpMode.WINDOW

    def plan(self, entry: RegistryEntry) -> ObjectPlan:
        """
        Plan one registry entry.

        Raises:
            SchemaIntrospectionFailed: If kind, column, checkpoint or row count cannot be resolved
        """
        table = entry.table_name

        try:
            kind = self.database.get_object_kind(table)
        except Exception as e:
            raise SchemaIntrospectionFailed(
                f"Cannot resolve object kind of '{table}': {e}", table=table
            ) from e

        if kind == ObjectKind.VIEW:
            return self._skip(entry, kind, "object is a view")
        if kind == ObjectKind.MISSING:
            return self._skip(entry, kind, "object does not exist")

        try:
            has_column = self.database.column_exists(table, self.timestamp_column)
        except Exception as e:
            raise SchemaIntrospectionFailed(
                f"Cannot inspect columns of '{table}': {e}", table=table
            ) from e

        if not has_column:
            if self.full_dump_without_column:
                logger.info(
                    f"{table}: no '{self.timestamp_column}' column, planning full dump",
                    extra={"table": table},
                )
                count = self._count(table, None)
                plan = ObjectPlan(entry=entry, kind=kind, mode=DumpMode.FULL, match_count=count)
                if count == 0:
                    plan.skip_reason = "table is empty"
                else:
                    plan.eligible = True
                return plan
            return self._skip(entry, kind, f"column '{self.timestamp_column}' not found")

        window = self._resolve_window(table)
        if window is None:
            return self._skip(entry, kind, "window is empty (checkpoint is current)")

        predicate = WindowPredicate(column=self.timestamp_column, window=window)
        count = self._count(table, predicate)
        plan = ObjectPlan(
            entry=entry,
            kind=kind,
            mode=self.windowed_mode,
            window=window,
            predicate=predicate,
            match_count=count,
        )
        if count == 0:
            plan.skip_reason = f"no rows in window {window}"
        else:
            plan.eligible = True
        return plan

    def _resolve_window(self, table: str) -> Optional[ArchiveWindow]:
        if not self.incremental:
            return self.window

        try:
            checkpoint = self.checkpoint_store.get(
                CheckpointScope.TABLE, table_object_name(self.database.name, table)
            )
        except Exception as e:
            raise SchemaIntrospectionFailed(
                f"Cannot read checkpoint of '{table}': {e}", table=table
            ) from e
        start = checkpoint or self.epoch_start
        if start >= self.run_end:
            return None
        return ArchiveWindow(start=start, end=self.run_end)

    def _count(self, table: str, predicate: Optional[WindowPredicate]) -> int:
        sql = f"SELECT COUNT(*) FROM {quote_identifier(table)}"
        params = ()
        if predicate is not None:
            sql += f" WHERE {predicate.to_sql()}"
            params = predicate.params()
        try:
            return int(self.database.scalar(sql, params) or 0)
        except Exception as e:
            raise SchemaIntrospectionFailed(
                f"Cannot count rows of '{table}': {e}", table=table
            ) from e

    def _skip(self, entry: RegistryEntry, kind: ObjectKind, reason: str) -> ObjectPlan:
        return ObjectPlan(entry=entry, kind=kind, mode=self.windowed_mode, skip_reason=reason)
