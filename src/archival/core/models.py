"""
Core data models for the archival engine.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class CheckpointScope(str, Enum):
    """Scope a checkpoint applies to."""
    DATABASE = "db"
    TABLE = "table"


class DumpMode(str, Enum):
    """
    How rows were selected for an artifact.

    - WINDOW: fixed configured window [ARCHIVE_START, ARCHIVE_END)
    - INCREMENTAL: window starting at the last checkpoint
    - FULL: whole table (fallback for tables without the timestamp column)
    """
    WINDOW = "window"
    INCREMENTAL = "incremental"
    FULL = "full"


class ObjectKind(str, Enum):
    """Kind of schema object named by a registry entry."""
    TABLE = "table"
    VIEW = "view"
    MISSING = "missing"


class ObjectState(str, Enum):
    """Per-object pipeline state."""
    PLANNED = "planned"
    DUMPED = "dumped"
    DELETED_SOURCE = "deleted_source"
    RESTORED = "restored"
    DONE = "done"
    SKIPPED = "skipped"
    DUMP_FAILED = "dump_failed"
    DELETE_FAILED = "delete_failed"
    RESTORE_FAILED = "restore_failed"


def normalize_timestamp(value: datetime) -> datetime:
    """
    Normalize a timestamp to naive UTC with whole-second precision.

    Aware datetimes are converted to UTC first. Keeping every boundary in one
    representation means bound parameters, literal predicates and stored
    checkpoints compare identically.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    """Format a timestamp the way the database expects it in literals."""
    return normalize_timestamp(value).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a configured or stored timestamp.

    Accepts datetimes, 'YYYY-MM-DD HH:MM:SS', 'YYYY-MM-DD' and ISO-8601 strings.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        return normalize_timestamp(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid timestamp: {value!r}")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return normalize_timestamp(datetime.fromisoformat(text))
    except ValueError:
        pass
    for fmt in (TIMESTAMP_FORMAT, "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValueError(f"Invalid timestamp: {value!r}")


@dataclass(frozen=True)
class RegistryEntry:
    """
    A row of the manager table naming an archivable object.

    Attributes:
        table_name: Table to archive
        key_column: Key column recorded for the table
    """
    table_name: str
    key_column: str


@dataclass(frozen=True)
class ArchiveWindow:
    """
    Half-open timestamp range: start inclusive, end exclusive.

    A row stamped exactly at `end` belongs to the next window.
    """
    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, "start", normalize_timestamp(self.start))
        object.__setattr__(self, "end", normalize_timestamp(self.end))
        if not self.start < self.end:
            raise ValueError(
                f"Archive window start must be before end: "
                f"[{format_timestamp(self.start)} .. {format_timestamp(self.end)})"
            )

    def contains(self, value: datetime) -> bool:
        """Check whether a timestamp falls inside the window."""
        value = normalize_timestamp(value)
        return self.start <= value < self.end

    def __str__(self) -> str:
        return f"[{format_timestamp(self.start)} .. {format_timestamp(self.end)})"


@dataclass(frozen=True)
class WindowPredicate:
    """
    Row filter selecting a window on a timestamp column.

    The column is validated by the caller; the predicate only ever renders
    bound parameters or strictly formatted timestamp literals.
    """
    column: str
    window: ArchiveWindow

    def to_sql(self) -> str:
        """Predicate with '?' placeholders for bound parameters."""
        return f"`{self.column}` >= ? AND `{self.column}` < ?"

    def params(self) -> Tuple[datetime, datetime]:
        """Bound parameters matching to_sql()."""
        return (self.window.start, self.window.end)

    def to_literal_sql(self) -> str:
        """
        Predicate with inlined timestamp literals.

        Used where bind parameters are unavailable (the mysqldump --where
        argument). Values come from datetime formatting only.
        """
        return (
            f"`{self.column}` >= '{format_timestamp(self.window.start)}' "
            f"AND `{self.column}` < '{format_timestamp(self.window.end)}'"
        )


@dataclass(frozen=True)
class Checkpoint:
    """Durable high-water mark for a (scope, object) pair."""
    scope: CheckpointScope
    object_name: str
    last_backup_ts: datetime


@dataclass
class ObjectPlan:
    """
    Outcome of window planning for one registry entry.

    Attributes:
        entry: The registry entry planned
        kind: Resolved object kind
        mode: Selection mode used for the dump
        window: Effective window (None for FULL mode or when ineligible)
        predicate: Row filter (None for FULL mode or when ineligible)
        match_count: Rows matching the filter at planning time
        eligible: Whether the object should be dumped this run
        skip_reason: Why the object was skipped, if it was
    """
    entry: RegistryEntry
    kind: ObjectKind
    mode: DumpMode
    window: Optional[ArchiveWindow] = None
    predicate: Optional[WindowPredicate] = None
    match_count: int = 0
    eligible: bool = False
    skip_reason: Optional[str] = None

    @property
    def table(self) -> str:
        return self.entry.table_name

    @property
    def advances_checkpoint(self) -> bool:
        """Only windowed dumps move the high-water mark."""
        return self.mode != DumpMode.FULL and self.window is not None


@dataclass
class DumpArtifact:
    """
    A file of re-insertable row statements for one object's slice.

    Attributes:
        path: Location of the artifact on disk
        object: Table the rows came from
        tag: Date tag shared by every artifact of the run
        mode: Selection mode used
        row_count: Row statements contained in the file
        size_bytes: File size
        sha256: Content checksum
    """
    path: str
    object: str
    tag: str
    mode: DumpMode
    row_count: int
    size_bytes: int = 0
    sha256: Optional[str] = None


@dataclass
class ObjectResult:
    """Typed result of processing one registry entry."""
    table: str
    state: ObjectState = ObjectState.PLANNED
    mode: Optional[DumpMode] = None
    window: Optional[str] = None
    rows_matched: int = 0
    rows_archived: int = 0
    rows_deleted: int = 0
    artifact_path: Optional[str] = None
    checkpoint: Optional[datetime] = None
    restored: bool = False
    skip_reason: Optional[str] = None
    error: Optional[str] = None
    history: List[ObjectState] = field(default_factory=lambda: [ObjectState.PLANNED])

    def advance(self, state: ObjectState) -> None:
        """Move to a new state and keep the trail."""
        self.state = state
        self.history.append(state)

    @property
    def failed(self) -> bool:
        return self.state in (
            ObjectState.DUMP_FAILED,
            ObjectState.DELETE_FAILED,
            ObjectState.RESTORE_FAILED,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "table": self.table,
            "state": self.state.value,
            "mode": self.mode.value if self.mode else None,
            "window": self.window,
            "rows_matched": self.rows_matched,
            "rows_archived": self.rows_archived,
            "rows_deleted": self.rows_deleted,
            "artifact_path": self.artifact_path,
            "checkpoint": self.checkpoint.isoformat() if self.checkpoint else None,
            "restored": self.restored,
            "skip_reason": self.skip_reason,
            "error": self.error,
            "history": [s.value for s in self.history],
        }


@dataclass
class RunSummary:
    """
    Aggregate counters for a run. Not persisted; surfaced at run end.
    """
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    registry_entries: int = 0
    invalid_registry_rows: int = 0
    objects_processed: int = 0
    objects_skipped: int = 0
    rows_archived: int = 0
    rows_deleted: int = 0
    dumps_failed: int = 0
    deletes_failed: int = 0
    restores_succeeded: int = 0
    restores_failed: int = 0
    uploads_retried: int = 0
    files_uploaded: int = 0
    local_files_cleaned: int = 0
    transfer_status: str = "not_run"
    interrupted: bool = False
    exit_code: int = 0
    fatal_error: Optional[str] = None
    results: List[ObjectResult] = field(default_factory=list)

    def record(self, result: ObjectResult) -> None:
        """Fold one object's result into the totals."""
        self.results.append(result)
        if result.state == ObjectState.SKIPPED:
            self.objects_skipped += 1
            return

        self.objects_processed += 1
        self.rows_archived += result.rows_archived
        self.rows_deleted += result.rows_deleted
        if result.state == ObjectState.DUMP_FAILED:
            self.dumps_failed += 1
        elif result.state == ObjectState.DELETE_FAILED:
            self.deletes_failed += 1
        elif result.state == ObjectState.RESTORE_FAILED:
            self.restores_failed += 1
        if result.restored:
            self.restores_succeeded += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "registry_entries": self.registry_entries,
            "invalid_registry_rows": self.invalid_registry_rows,
            "objects_processed": self.objects_processed,
            "objects_skipped": self.objects_skipped,
            "rows_archived": self.rows_archived,
            "rows_deleted": self.rows_deleted,
            "dumps_failed": self.dumps_failed,
            "deletes_failed": self.deletes_failed,
            "restores_succeeded": self.restores_succeeded,
            "restores_failed": self.restores_failed,
            "uploads_retried": self.uploads_retried,
            "files_uploaded": self.files_uploaded,
            "local_files_cleaned": self.local_files_cleaned,
            "transfer_status": self.transfer_status,
            "interrupted": self.interrupted,
            "exit_code": self.exit_code,
            "fatal_error": self.fatal_error,
            "results": [r.to_dict() for r in self.results],
        }

    def summary(self) -> str:
        """Get a human-readable summary."""
        lines = [
            f"Archive Run {self.run_id}",
            f"  Registry entries: {self.registry_entries} "
            f"(invalid rows skipped: {self.invalid_registry_rows})",
            f"  Objects processed: {self.objects_processed}",
            f"  Objects skipped: {self.objects_skipped}",
            f"  Rows archived: {self.rows_archived}",
            f"  Rows deleted from source: {self.rows_deleted}",
            f"  Dumps failed: {self.dumps_failed}",
            f"  Deletes failed: {self.deletes_failed}",
            f"  Restores: {self.restores_succeeded} ok, {self.restores_failed} failed",
            f"  Transfer: {self.transfer_status} "
            f"({self.files_uploaded} files, {self.uploads_retried} retries)",
            f"  Local files cleaned: {self.local_files_cleaned}",
            f"  Exit code: {self.exit_code}",
        ]
        if self.completed_at:
            duration = (self.completed_at - self.started_at).total_seconds()
            lines.insert(1, f"  Duration: {duration:.1f}s")
        if self.fatal_error:
            lines.append(f"  Fatal error: {self.fatal_error}")

        failures = [r for r in self.results if r.failed]
        if failures:
            lines.append("")
            lines.append("  Failures:")
            for r in failures:
                lines.append(f"    - {r.table}: {r.state.value}: {r.error}")
        return "\n".join(lines)
