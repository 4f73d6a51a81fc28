#!/usr/bin/env python3
"""
CLI entry point for the table archiver.

Reads the manager table, dumps each table's archive window, optionally
deletes archived rows and restores the dumps elsewhere, then uploads the
artifact tree to S3.

Usage:
    table-archiver --config config/archival.yaml
    table-archiver --config config/archival.yaml --no-dry-run
    table-archiver --incremental --skip-upload
    table-archiver --show-checkpoints
"""

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from archival.config import ArchivalConfig
from archival.core.checkpoint_store import CheckpointStore
from archival.core.database import Database
from archival.core.dump_tool import DumpTool
from archival.core.exceptions import ArchivalConfigError, PrerequisiteMissing
from archival.core.logging import configure_logging
from archival.core.models import ArchiveWindow, normalize_timestamp
from archival.core.object_store import ObjectStore
from archival.db import create_backend
from archival.dump import DumpEngine
from archival.mutation import MutationEngine
from archival.planning import WindowPlanner
from archival.registry import RegistryReader
from archival.runner import (
    EXIT_ERROR, EXIT_INTERRUPTED, EXIT_OK, EXIT_PREREQUISITE_MISSING,
    ArchiveRunner, RunnerConfig,
)
from archival.state import create_checkpoint_store
from archival.transfer import TransferEngine, create_s3_store


logger = logging.getLogger("archival.cli")


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Time-windowed table archiver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration YAML file",
    )

    dry_run = parser.add_mutually_exclusive_group()
    dry_run.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        default=None,
        help="Keep source rows after dumping (default)",
    )
    dry_run.add_argument(
        "--no-dry-run",
        dest="dry_run",
        action="store_false",
        help="Delete archived rows from the source",
    )

    parser.add_argument(
        "--incremental",
        action="store_true",
        help="Start each table's window at its last checkpoint",
    )

    parser.add_argument(
        "--skip-upload",
        action="store_true",
        help="Do not upload artifacts even if a bucket is configured",
    )

    parser.add_argument(
        "--skip-restore",
        action="store_true",
        help="Do not restore artifacts even if a destination is configured",
    )

    parser.add_argument(
        "--workers",
        type=int,
        help="Number of tables processed concurrently",
    )

    parser.add_argument(
        "--show-checkpoints",
        action="store_true",
        help="List stored checkpoints and exit",
    )

    parser.add_argument(
        "--structured-logs",
        action="store_true",
        help="Emit JSON log lines",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    return parser.parse_args(argv)


def apply_cli_overrides(config: ArchivalConfig, args) -> None:
    """Fold command-line flags into the loaded configuration."""
    if args.dry_run is not None:
        config.config["mutation"]["dry_run"] = args.dry_run
    if args.incremental:
        config.config["window"]["incremental"] = True
    if args.skip_upload:
        config.config["transfer"]["enabled"] = False
    if args.skip_restore:
        config.config["mutation"]["restore_enabled"] = False
    if args.workers is not None:
        config.config["runner"]["max_workers"] = args.workers
    if args.verbose:
        config.config["logging"]["level"] = "DEBUG"
    if args.structured_logs:
        config.config["logging"]["structured"] = True


def check_prerequisites(
    dump_tool: DumpTool,
    restore_tool: Optional[DumpTool] = None,
    object_store: Optional[ObjectStore] = None,
) -> None:
    """
    Verify external capabilities before touching any data.

    Raises:
        PrerequisiteMissing: If a client binary or credentials are unavailable
    """
    dump_tool.check_available()
    if restore_tool is not None:
        restore_tool.check_available()
    if object_store is not None:
        object_store.check_credentials()


def build_runner(
    config: ArchivalConfig,
    database: Database,
    dump_tool: DumpTool,
    checkpoint_store: CheckpointStore,
    restore_tool: Optional[DumpTool] = None,
    object_store: Optional[ObjectStore] = None,
    now: Optional[datetime] = None,
    install_signal_handlers: bool = True,
) -> ArchiveRunner:
    """Assemble the runner and its engines from configuration."""
    now = now or datetime.now(timezone.utc)

    window = None
    if not config.incremental:
        start, end = config.get_window_bounds(now)
        window = ArchiveWindow(start=start, end=end)

    planner = WindowPlanner(
        database=database,
        timestamp_column=config.get("registry.timestamp_column", "insert_ts"),
        window=window,
        incremental=config.incremental,
        checkpoint_store=checkpoint_store,
        epoch_start=config.get_epoch_start(),
        run_end=normalize_timestamp(now),
        full_dump_without_column=bool(config.get("window.full_dump_without_column", False)),
    )

    transfer_engine = None
    if object_store is not None:
        transfer = config.get_transfer_config()
        transfer_engine = TransferEngine(
            store=object_store,
            remote_prefix=config.get_remote_prefix(),
            storage_class=transfer.get("storage_class", "STANDARD_IA"),
            max_retries=int(transfer.get("max_retries", 1)),
            backoff_seconds=float(transfer.get("backoff_seconds", 2.0)),
            delete_local_after_upload=bool(transfer.get("delete_local_after_upload", False)),
            retention_days=int(transfer.get("retention_days", 30)),
        )

    return ArchiveRunner(
        registry=RegistryReader(
            database, manager_table=config.get("registry.manager_table", "archieve_table_manager")
        ),
        planner=planner,
        dump_engine=DumpEngine(dump_tool, config.dump_root, database.name),
        mutation_engine=MutationEngine(
            source=database,
            dump_root=config.dump_root,
            dry_run=config.dry_run,
            restore_tool=restore_tool,
        ),
        checkpoint_store=checkpoint_store,
        database_name=database.name,
        config=RunnerConfig(
            archive_tag=config.get_archive_tag(now),
            max_workers=int(config.get("runner.max_workers", 1)),
            install_signal_handlers=install_signal_handlers,
        ),
        transfer_engine=transfer_engine,
    )


def show_checkpoints(checkpoint_store: CheckpointStore) -> None:
    checkpoints = checkpoint_store.list_checkpoints()
    if not checkpoints:
        print("No checkpoints stored")
        return
    for cp in checkpoints:
        print(f"{cp.scope.value:<6} {cp.object_name:<48} {cp.last_backup_ts.isoformat(sep=' ')}")


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = ArchivalConfig(config_path=args.config)
        apply_cli_overrides(config, args)
        log_config = config.get_logging_config()
        configure_logging(
            level=log_config.get("level", "INFO"),
            structured=bool(log_config.get("structured", False)),
            log_file=config.log_file,
        )
        config.validate()
    except ArchivalConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_ERROR

    config.log_config()

    resources = []
    try:
        source = config.get_source_config()
        backend = source.get("backend", "mysql")
        database, dump_tool = create_backend(backend, source, odbc_driver=source.get("driver"))
        resources.append(database)

        checkpoint_store = create_checkpoint_store(
            database, table=config.get("checkpoint.table", "backup_checkpoint")
        )
        resources.append(checkpoint_store)

        if args.show_checkpoints:
            show_checkpoints(checkpoint_store)
            return EXIT_OK

        restore_tool = None
        if config.get("mutation.restore_enabled", False):
            restore_database, restore_tool = create_backend(
                backend, config.get_restore_config(), odbc_driver=source.get("driver")
            )
            resources.append(restore_database)

        object_store = None
        transfer = config.get_transfer_config()
        if transfer.get("enabled"):
            object_store = create_s3_store(
                bucket=transfer.get("bucket"),
                region=transfer.get("region"),
                endpoint_url=transfer.get("endpoint_url"),
            )

        check_prerequisites(dump_tool, restore_tool, object_store)

        runner = build_runner(
            config,
            database,
            dump_tool,
            checkpoint_store,
            restore_tool=restore_tool,
            object_store=object_store,
        )
        summary = runner.run()

        print(summary.summary())
        return summary.exit_code

    except PrerequisiteMissing as e:
        logger.error(f"Prerequisite missing: {e}")
        return EXIT_PREREQUISITE_MISSING
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return EXIT_ERROR
    finally:
        for resource in reversed(resources):
            resource.close()


if __name__ == "__main__":
    sys.exit(main())
