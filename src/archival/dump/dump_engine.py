"""
Dump engine: extracts an object's window into a deterministic artifact.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from ..core.dump_tool import DumpTool
from ..core.exceptions import DumpFailed
from ..core.models import DumpArtifact, DumpMode, ObjectPlan
from ..utils.files import file_sha256, prune_empty_dirs, remove_quietly


logger = logging.getLogger(__name__)


ROW_STATEMENT_PREFIX = b"INSERT INTO"


def count_row_statements(path: Path) -> int:
    """Count the row statements in an artifact (one INSERT per row)."""
    count = 0
    with open(path, "rb") as f:
        for line in f:
            if line.startswith(ROW_STATEMENT_PREFIX):
                count += 1
    return count


class DumpEngine:
    """
    Writes artifacts under `{dump_root}/{database}/{table}/...`.

    Window mode uses the simple tree `{table}/{tag}/{table}_{tag}.sql`;
    incremental and full dumps use `{table}/{mode}/{tag}/{table}_{mode}_{tag}.sql`.
    Output is written to a `.partial` file and renamed into place only when
    complete, so a truncated artifact is never visible at its final path.
    Same-tag incremental runs add their slice to the day's artifact as a
    further segment.
    """

    def __init__(self, dump_tool: DumpTool, dump_root: Path, database_name: str):
        self.dump_tool = dump_tool
        self.dump_root = Path(dump_root)
        self.database_name = database_name

    def artifact_path(self, table: str, mode: DumpMode, tag: str) -> Path:
        """Deterministic artifact location for (table, mode, tag)."""
        base = self.dump_root / self.database_name / table
        if mode == DumpMode.WINDOW:
            return base / tag / f"{table}_{tag}.sql"
        return base / mode.value / tag / f"{table}_{mode.value}_{tag}.sql"

    def dump(self, plan: ObjectPlan, tag: str) -> Optional[DumpArtifact]:
        """
        Extract the planned rows of one object.

        Returns:
            The artifact, or None when the extraction held no rows (no file is kept)

        Raises:
            DumpFailed: If extraction fails; no partial file remains
        """
        table = plan.table
        path = self.artifact_path(table, plan.mode, tag)
        partial = path.with_name(path.name + ".partial")
        path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(
            f"Dumping {table} ({plan.mode.value}"
            f"{', window ' + str(plan.window) if plan.window else ''}) to {path}",
            extra={"table": table},
        )

        try:
            written = self.dump_tool.dump_table(table, partial, plan.predicate)
            row_count = written if written is not None else count_row_statements(partial)
        except BaseException as e:
            self._discard(partial)
            if isinstance(e, Exception):
                raise DumpFailed(f"Dump of '{table}' failed: {e}", table=table) from e
            raise

        if row_count == 0:
            logger.warning(
                f"Dump of {table} contained no rows, discarding it",
                extra={"table": table},
            )
            self._discard(partial)
            return None

        try:
            self._finalize(plan, partial, path)
            digest = file_sha256(path)
        except OSError as e:
            self._discard(partial)
            raise DumpFailed(f"Could not finalize artifact for '{table}': {e}", table=table) from e

        artifact = DumpArtifact(
            path=str(path),
            object=table,
            tag=tag,
            mode=plan.mode,
            row_count=row_count,
            size_bytes=path.stat().st_size,
            sha256=digest,
        )
        if plan.match_count and row_count != plan.match_count:
            logger.warning(
                f"{table}: dump holds {row_count} rows, planning counted {plan.match_count}",
                extra={"table": table},
            )
        logger.info(
            f"Dumped {row_count} rows of {table} ({artifact.size_bytes} bytes)",
            extra={"table": table},
        )
        return artifact

    def _finalize(self, plan: ObjectPlan, partial: Path, path: Path) -> None:
        """
        Move a completed slice to its artifact path.

        An identical artifact is reused. Incremental windows are disjoint, so
        a new slice for the same tag is appended as a further segment; any
        other differing content is a collision.
        """
        table = plan.table
        if not path.exists():
            os.replace(partial, path)
            return

        if file_sha256(path) == file_sha256(partial) or (
            plan.mode == DumpMode.INCREMENTAL and self._ends_with(path, partial)
        ):
            remove_quietly(partial)
            logger.info(f"Artifact {path} already holds this slice", extra={"table": table})
            return

        if plan.mode == DumpMode.INCREMENTAL:
            self._append_segment(path, partial)
            logger.info(f"Appended new slice to {path}", extra={"table": table})
            return

        remove_quietly(partial)
        raise DumpFailed(f"Artifact {path} already exists with different content", table=table)

    @staticmethod
    def _ends_with(path: Path, segment: Path) -> bool:
        size = segment.stat().st_size
        if path.stat().st_size < size:
            return False
        with open(path, "rb") as f:
            f.seek(-size, os.SEEK_END)
            tail = f.read()
        return tail == segment.read_bytes()

    @staticmethod
    def _append_segment(path: Path, segment: Path) -> None:
        # The merged copy replaces the artifact in a single rename
        merged = path.with_name(path.name + ".merge.partial")
        try:
            with open(merged, "wb") as out:
                for source in (path, segment):
                    with open(source, "rb") as f:
                        shutil.copyfileobj(f, out)
            os.replace(merged, path)
        finally:
            remove_quietly(merged)
        remove_quietly(segment)

    def _discard(self, partial: Path) -> None:
        remove_quietly(partial)
        prune_empty_dirs(partial.parent, self.dump_root)
