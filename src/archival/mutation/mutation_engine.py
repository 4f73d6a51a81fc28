"""
Mutation engine: delete archived rows from the source, restore artifacts
into the destination.

Both operations are gated and best-effort. A failed delete leaves the
artifact as the record of the rows (they may be archived again next run);
a failed restore keeps the artifact on disk for a manual retry.
"""

import logging
from pathlib import Path
from typing import Optional

from ..core.database import Database, quote_identifier
from ..core.dump_tool import DumpTool
from ..core.exceptions import DeleteFailed, RestoreFailed
from ..core.models import DumpArtifact, ObjectPlan
from ..utils.files import prune_empty_dirs, remove_quietly


logger = logging.getLogger(__name__)


class MutationEngine:
    """
    Applies the destructive and restorative steps after a dump.
    """

    def __init__(
        self,
        source: Database,
        dump_root: Path,
        dry_run: bool = True,
        restore_tool: Optional[DumpTool] = None,
    ):
        """
        Initialize the mutation engine.

        Args:
            source: Database rows are deleted from
            dump_root: Root of the artifact tree (empty dirs are pruned up to here)
            dry_run: When True, source rows are never deleted
            restore_tool: Tool applying artifacts to the destination; None disables restore
        """
        self.source = source
        self.dump_root = Path(dump_root)
        self.dry_run = dry_run
        self.restore_tool = restore_tool

    @property
    def restore_enabled(self) -> bool:
        return self.restore_tool is not None

    def delete_archived(self, plan: ObjectPlan, artifact: DumpArtifact) -> Optional[int]:
        """
        Delete the rows captured by an artifact from the source.

        The delete uses the same window predicate as the dump and runs in a
        transaction that is committed only if it removed exactly
        `artifact.row_count` rows.

        Returns:
            Rows deleted, or None in dry-run mode

        Raises:
            DeleteFailed: If the delete errors or its row count disagrees with the dump
        """
        table = plan.table

        if self.dry_run:
            logger.info(f"Dry-run: keeping source rows of {table}", extra={"table": table})
            return None

        if plan.predicate is None:
            raise DeleteFailed(f"Refusing to delete from '{table}' without a window", table=table)

        path = Path(artifact.path)
        if artifact.row_count <= 0 or not path.is_file() or path.stat().st_size == 0:
            raise DeleteFailed(
                f"Artifact {path} is missing or empty; source rows kept", table=table
            )

        sql = f"DELETE FROM {quote_identifier(table)} WHERE {plan.predicate.to_sql()}"
        try:
            deleted = self.source.execute(sql, plan.predicate.params(), commit=False)
        except Exception as e:
            self._rollback(table)
            raise DeleteFailed(f"Delete from '{table}' failed: {e}", table=table) from e

        if deleted != artifact.row_count:
            self._rollback(table)
            raise DeleteFailed(
                f"Delete from '{table}' matched {deleted} rows but the artifact holds "
                f"{artifact.row_count}; rolled back",
                table=table,
            )

        try:
            self.source.commit()
        except Exception as e:
            self._rollback(table)
            raise DeleteFailed(f"Commit of delete from '{table}' failed: {e}", table=table) from e

        logger.info(f"Deleted {deleted} archived rows from {table}", extra={"table": table})
        return deleted

    def restore(self, artifact: DumpArtifact) -> None:
        """
        Apply an artifact to the destination, then remove the local copy.

        Raises:
            RestoreFailed: If applying fails; the artifact is kept
        """
        table = artifact.object
        if self.restore_tool is None:
            raise RestoreFailed("Restore is not configured", table=table)

        path = Path(artifact.path)
        logger.info(f"Restoring {path.name} into destination", extra={"table": table})
        try:
            self.restore_tool.apply(path)
        except Exception as e:
            logger.error(
                f"Restore of {table} failed, artifact retained at {path}: {e}",
                extra={"table": table},
            )
            raise RestoreFailed(f"Restore of '{table}' failed: {e}", table=table) from e

        remove_quietly(path)
        prune_empty_dirs(path.parent, self.dump_root)
        logger.info(f"Restored {table}; removed local artifact {path}", extra={"table": table})

    def _rollback(self, table: str) -> None:
        try:
            self.source.rollback()
        except Exception as e:
            logger.error(f"Rollback for {table} failed: {e}", extra={"table": table})
