"""
Object storage interface for shipping the artifact tree.
"""

from abc import ABC, abstractmethod
from pathlib import Path


class ObjectStore(ABC):
    """
    Abstract base class for remote object stores.

    A sync is tree-level and idempotent: only files that are new or changed
    relative to the remote copy are transferred, so it is safe to retry.
    """

    @abstractmethod
    def check_credentials(self) -> str:
        """
        Verify credentials are usable.

        Returns:
            Identity the store is authenticated as

        Raises:
            PrerequisiteMissing: If no usable credentials are available
        """
        pass

    @abstractmethod
    def sync(self, local_dir: Path, remote_prefix: str, storage_class: str) -> int:
        """
        Sync a local directory tree under a remote prefix.

        Args:
            local_dir: Root of the local tree
            remote_prefix: Key prefix under the store's bucket
            storage_class: Storage class applied to uploaded objects

        Returns:
            Number of files transferred

        Raises:
            Exception: Any transfer failure
        """
        pass

    def describe(self, remote_prefix: str) -> str:
        """Human-readable destination for logging."""
        return remote_prefix
