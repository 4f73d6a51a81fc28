"""
Transfer engine: ships the artifact tree with bounded retry, then applies
local retention.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..core.exceptions import TransferFailed
from ..core.object_store import ObjectStore
from ..utils.files import prune_empty_tree, remove_quietly
from ..utils.retry import RetryConfig, retry_with_backoff


logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    """Outcome of a successful transfer."""
    files_uploaded: int = 0
    attempts: int = 0
    retries: int = 0
    local_files_cleaned: int = 0


class TransferEngine:
    """
    Syncs `local_root` to the object store.

    Exhausting the retries raises TransferFailed. Retention cleanup runs
    only after a successful sync and never raises.
    """

    def __init__(
        self,
        store: ObjectStore,
        remote_prefix: str = "",
        storage_class: str = "STANDARD_IA",
        max_retries: int = 1,
        backoff_seconds: float = 2.0,
        delete_local_after_upload: bool = False,
        retention_days: int = 30,
    ):
        """
        Initialize the transfer engine.

        Args:
            store: Remote object store
            remote_prefix: Key prefix under the bucket
            storage_class: Storage class for uploaded objects
            max_retries: Retries after the first attempt (at least 1)
            backoff_seconds: Fixed delay between attempts
            delete_local_after_upload: Enable retention cleanup
            retention_days: Age after which local artifacts are removed
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.store = store
        self.remote_prefix = remote_prefix
        self.storage_class = storage_class
        self.retry_config = RetryConfig.fixed(max_retries, backoff_seconds)
        self.delete_local_after_upload = delete_local_after_upload
        self.retention_days = retention_days

    def transfer(self, local_root: Path, now: Optional[float] = None) -> TransferResult:
        """
        Sync the local tree and apply retention.

        Raises:
            TransferFailed: If every attempt failed
        """
        destination = self.store.describe(self.remote_prefix)
        logger.info(f"Uploading {local_root} to {destination}")

        retry_result = retry_with_backoff(
            lambda: self.store.sync(Path(local_root), self.remote_prefix, self.storage_class),
            self.retry_config,
            operation_name=f"sync to {destination}",
        )
        if not retry_result.success:
            raise TransferFailed(
                f"Upload to {destination} failed after {retry_result.attempts} attempts: "
                f"{retry_result.error}",
                attempts=retry_result.attempts,
            )

        result = TransferResult(
            files_uploaded=retry_result.result or 0,
            attempts=retry_result.attempts,
            retries=retry_result.retries,
        )
        logger.info(f"Upload to {destination} complete ({result.files_uploaded} files)")

        if self.delete_local_after_upload:
            result.local_files_cleaned = self.cleanup(Path(local_root), now=now)
        return result

    def cleanup(self, local_root: Path, now: Optional[float] = None) -> int:
        """
        Delete local files older than the retention threshold.

        Returns:
            Number of files removed
        """
        try:
            cutoff = (now if now is not None else time.time()) - self.retention_days * 86400
            removed = 0
            if local_root.is_dir():
                for path in list(local_root.rglob("*")):
                    if path.is_file() and path.stat().st_mtime < cutoff:
                        if remove_quietly(path):
                            removed += 1
                prune_empty_tree(local_root)
            logger.info(
                f"Retention cleanup removed {removed} files older than {self.retention_days} days"
            )
            return removed
        except OSError as e:
            logger.warning(f"Retention cleanup of {local_root} failed: {e}")
            return 0
