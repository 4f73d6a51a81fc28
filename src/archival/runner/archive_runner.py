"""
Archive runner: sequences registry, planning, dump, checkpoint, mutation
and transfer for one run.

Per-object failures are recorded on the object's result and never stop
the run. Only a registry failure, a transfer failure or an operator
interrupt change the exit code.
"""

import logging
import signal
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..core.checkpoint_store import CheckpointStore
from ..core.exceptions import (
    DeleteFailed, DumpFailed, RegistryUnavailable, RestoreFailed,
    SchemaIntrospectionFailed, TransferFailed,
)
from ..core.models import (
    CheckpointScope, ObjectResult, ObjectState, RegistryEntry, RunSummary,
)
from ..dump.dump_engine import DumpEngine
from ..mutation.mutation_engine import MutationEngine
from ..planning.window_planner import WindowPlanner
from ..registry.registry_reader import RegistryReader
from ..state import table_object_name
from ..transfer.transfer_engine import TransferEngine


logger = logging.getLogger(__name__)


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_REGISTRY_UNAVAILABLE = 2
EXIT_PREREQUISITE_MISSING = 3
EXIT_TRANSFER_FAILED = 4
EXIT_INTERRUPTED = 130


def make_run_id(now: Optional[datetime] = None) -> str:
    """Run identifier of the form YYYYMMDDTHHMMSSZ."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y%m%dT%H%M%SZ")


@dataclass
class RunnerConfig:
    """
    Configuration for the archive runner.

    Attributes:
        archive_tag: Date tag shared by every artifact of the run
        max_workers: Objects processed concurrently (1 = sequential)
        install_signal_handlers: Trap SIGINT/SIGTERM for graceful shutdown
    """
    archive_tag: str
    max_workers: int = 1
    install_signal_handlers: bool = True


class ArchiveRunner:
    """
    Orchestrates one archive run.

    Per object: plan -> dump -> delete (unless dry-run) -> checkpoint ->
    restore (if enabled). The transfer runs once after every object is
    finished, and is skipped when the run was interrupted.
    """

    def __init__(
        self,
        registry: RegistryReader,
        planner: WindowPlanner,
        dump_engine: DumpEngine,
        mutation_engine: MutationEngine,
        checkpoint_store: CheckpointStore,
        database_name: str,
        config: RunnerConfig,
        transfer_engine: Optional[TransferEngine] = None,
    ):
        """
        Initialize the runner.

        Args:
            registry: Source of archivable objects
            planner: Window planner
            dump_engine: Artifact writer
            mutation_engine: Delete/restore steps
            checkpoint_store: Checkpoint store advanced after each windowed dump
            database_name: Source database name (checkpoint keys)
            config: Runner configuration
            transfer_engine: Upload step; None disables uploads
        """
        self.registry = registry
        self.planner = planner
        self.dump_engine = dump_engine
        self.mutation_engine = mutation_engine
        self.checkpoint_store = checkpoint_store
        self.database_name = database_name
        self.config = config
        self.transfer_engine = transfer_engine

        self._shutdown_event = threading.Event()
        self._table_locks: Dict[str, threading.Lock] = {}
        self._table_locks_guard = threading.Lock()
        self._run_id: Optional[str] = None

    def shutdown(self) -> None:
        """Stop starting new objects; in-flight objects finish."""
        logger.info("Shutdown requested, no new objects will be started")
        self._shutdown_event.set()

    def run(self, run_id: Optional[str] = None) -> RunSummary:
        """
        Execute the run.

        Returns:
            RunSummary with totals and the exit code
        """
        started_at = datetime.now(timezone.utc)
        self._run_id = run_id or make_run_id(started_at)
        self._shutdown_event.clear()
        summary = RunSummary(run_id=self._run_id, started_at=started_at)
        log_extra = {"run_id": self._run_id}

        logger.info(
            f"Starting archive run {self._run_id} (tag {self.config.archive_tag}, "
            f"dry_run={self.mutation_engine.dry_run}, workers={self.config.max_workers})",
            extra=log_extra,
        )

        handlers_installed = False
        original_sigint = original_sigterm = None
        if self.config.install_signal_handlers and threading.current_thread() is threading.main_thread():
            original_sigint = signal.getsignal(signal.SIGINT)
            original_sigterm = signal.getsignal(signal.SIGTERM)

            def _handle_shutdown_signal(signum, frame):
                logger.info(f"Received signal {signum}, initiating shutdown...", extra=log_extra)
                self.shutdown()

            signal.signal(signal.SIGINT, _handle_shutdown_signal)
            signal.signal(signal.SIGTERM, _handle_shutdown_signal)
            handlers_installed = True

        try:
            self._run(summary)
        finally:
            if handlers_installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)

        summary.completed_at = datetime.now(timezone.utc)
        logger.info(f"Run {self._run_id} finished with exit code {summary.exit_code}", extra=log_extra)
        return summary

    def _run(self, summary: RunSummary) -> None:
        try:
            entries = self.registry.list_objects()
        except RegistryUnavailable as e:
            logger.error(f"Registry unavailable: {e}", extra={"run_id": self._run_id})
            summary.fatal_error = str(e)
            summary.exit_code = EXIT_REGISTRY_UNAVAILABLE
            return

        summary.registry_entries = len(entries)
        summary.invalid_registry_rows = len(self.registry.invalid_rows)
        if not entries:
            logger.info("Registry is empty, nothing to archive", extra={"run_id": self._run_id})

        try:
            for result in self._process_all(entries):
                summary.record(result)
        except KeyboardInterrupt:
            logger.warning("Interrupted", extra={"run_id": self._run_id})
            self._shutdown_event.set()

        if self._shutdown_event.is_set():
            summary.interrupted = True
            summary.transfer_status = "skipped"
            summary.exit_code = EXIT_INTERRUPTED
            return

        self._transfer(summary)

    def _process_all(self, entries: List[RegistryEntry]):
        if self.config.max_workers <= 1:
            for entry in entries:
                if self._shutdown_event.is_set():
                    break
                yield self.process_object(entry)
            return

        with ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="archive-worker",
        ) as executor:
            futures = [executor.submit(self._process_if_running, entry) for entry in entries]
            try:
                for future in futures:
                    result = future.result()
                    if result is not None:
                        yield result
            except BaseException:
                # Queued objects must not start while the pool drains
                self._shutdown_event.set()
                raise

    def _process_if_running(self, entry: RegistryEntry) -> Optional[ObjectResult]:
        if self._shutdown_event.is_set():
            return None
        return self.process_object(entry)

    def _lock_for(self, table: str) -> threading.Lock:
        with self._table_locks_guard:
            if table not in self._table_locks:
                self._table_locks[table] = threading.Lock()
            return self._table_locks[table]

    def process_object(self, entry: RegistryEntry) -> ObjectResult:
        """
        Run the per-object pipeline. Never raises for per-object errors.
        """
        with self._lock_for(entry.table_name):
            result = ObjectResult(table=entry.table_name)
            try:
                self._process(entry, result)
            except Exception as e:
                logger.exception(
                    f"Unexpected error processing {entry.table_name}: {e}",
                    extra=self._extra(entry.table_name, result),
                )
                result.error = str(e)
                if result.state == ObjectState.PLANNED:
                    result.advance(ObjectState.DUMP_FAILED)
                elif result.state == ObjectState.DUMPED:
                    result.advance(ObjectState.DELETE_FAILED)
                elif not result.failed:
                    result.advance(ObjectState.RESTORE_FAILED)
            return result

    def _process(self, entry: RegistryEntry, result: ObjectResult) -> None:
        table = entry.table_name

        try:
            plan = self.planner.plan(entry)
        except SchemaIntrospectionFailed as e:
            logger.warning(f"Skipping {table}: {e}", extra=self._extra(table, result))
            result.error = str(e)
            result.skip_reason = "schema introspection failed"
            result.advance(ObjectState.SKIPPED)
            return

        result.mode = plan.mode
        result.window = str(plan.window) if plan.window else None
        result.rows_matched = plan.match_count

        if not plan.eligible:
            logger.info(f"Skipping {table}: {plan.skip_reason}", extra=self._extra(table, result))
            result.skip_reason = plan.skip_reason
            result.advance(ObjectState.SKIPPED)
            return

        logger.info(
            f"{table}: {plan.match_count} rows to archive"
            f"{' in ' + result.window if result.window else ' (full table)'}",
            extra=self._extra(table, result),
        )

        try:
            artifact = self.dump_engine.dump(plan, self.config.archive_tag)
        except DumpFailed as e:
            logger.error(f"Dump failed for {table}: {e}", extra=self._extra(table, result))
            result.error = str(e)
            result.advance(ObjectState.DUMP_FAILED)
            return

        if artifact is None:
            result.skip_reason = "dump contained no rows"
            result.advance(ObjectState.SKIPPED)
            return

        result.artifact_path = artifact.path
        result.rows_archived = artifact.row_count
        result.advance(ObjectState.DUMPED)

        delete_failed = False
        if plan.predicate is not None:
            try:
                deleted = self.mutation_engine.delete_archived(plan, artifact)
            except DeleteFailed as e:
                logger.error(
                    f"Delete failed for {table}, archive stands and source rows are kept: {e}",
                    extra=self._extra(table, result),
                )
                result.error = str(e)
                result.advance(ObjectState.DELETE_FAILED)
                delete_failed = True
            else:
                if deleted is not None:
                    result.rows_deleted = deleted
                    result.advance(ObjectState.DELETED_SOURCE)

        if plan.advances_checkpoint and not delete_failed:
            try:
                result.checkpoint = self.checkpoint_store.upsert(
                    CheckpointScope.TABLE,
                    table_object_name(self.database_name, table),
                    plan.window.end,
                )
            except Exception as e:
                logger.error(
                    f"Checkpoint update failed for {table}, window will be re-evaluated: {e}",
                    extra=self._extra(table, result),
                )
                result.error = f"checkpoint update failed: {e}"

        if delete_failed:
            return

        if self.mutation_engine.restore_enabled:
            try:
                self.mutation_engine.restore(artifact)
            except RestoreFailed as e:
                result.error = str(e)
                result.advance(ObjectState.RESTORE_FAILED)
                return
            result.restored = True
            result.advance(ObjectState.RESTORED)

        result.advance(ObjectState.DONE)
        logger.info(f"Finished {table}", extra=self._extra(table, result))

    def _transfer(self, summary: RunSummary) -> None:
        if self.transfer_engine is None:
            summary.transfer_status = "disabled"
            return

        try:
            transfer = self.transfer_engine.transfer(self.dump_engine.dump_root)
        except TransferFailed as e:
            logger.error(f"Transfer failed: {e}", extra={"run_id": self._run_id})
            summary.transfer_status = "failed"
            summary.uploads_retried = max(e.attempts - 1, 0)
            summary.fatal_error = str(e)
            summary.exit_code = EXIT_TRANSFER_FAILED
            return

        summary.transfer_status = "succeeded"
        summary.files_uploaded = transfer.files_uploaded
        summary.uploads_retried = transfer.retries
        summary.local_files_cleaned = transfer.local_files_cleaned

    def _extra(self, table: str, result: ObjectResult) -> Dict[str, str]:
        return {"run_id": self._run_id, "table": table, "state": result.state.value}
