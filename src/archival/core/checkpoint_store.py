"""
Checkpoint store interface for per-object high-water marks.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .models import Checkpoint, CheckpointScope


class CheckpointStore(ABC):
    """
    Abstract base class for checkpoint stores.

    Checkpoints record the last archived timestamp per (scope, object) and
    seed the next incremental window. The store is the single writer of
    checkpoint state for a run.
    """

    @abstractmethod
    def get(self, scope: CheckpointScope, object_name: str) -> Optional[datetime]:
        """
        Get the last archived timestamp.

        Args:
            scope: Checkpoint scope
            object_name: Object the checkpoint belongs to

        Returns:
            Timestamp if a checkpoint exists, None otherwise
        """
        pass

    @abstractmethod
    def upsert(self, scope: CheckpointScope, object_name: str, timestamp: datetime) -> datetime:
        """
        Record a checkpoint.

        Newer values replace older ones; an older value never regresses the
        stored checkpoint. Replaying the same value is a no-op.

        Args:
            scope: Checkpoint scope
            object_name: Object the checkpoint belongs to
            timestamp: New high-water mark

        Returns:
            The checkpoint value stored after the call
        """
        pass

    @abstractmethod
    def list_checkpoints(self, scope: Optional[CheckpointScope] = None) -> List[Checkpoint]:
        """
        List stored checkpoints.

        Args:
            scope: Optional scope filter

        Returns:
            Checkpoints ordered by scope and object name
        """
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass
