"""
Dump tool interface: extraction and replay of re-insertable row statements.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .models import WindowPredicate


class DumpTool(ABC):
    """
    Abstract base class for dump/apply tools.

    Artifacts are plain SQL files holding one complete
    `INSERT INTO ... (columns) VALUES (...);` statement per row, replayable
    against an empty table of matching schema.
    """

    @abstractmethod
    def check_available(self) -> None:
        """
        Verify the tool can run.

        Raises:
            PrerequisiteMissing: If a required client or dependency is absent
        """
        pass

    @abstractmethod
    def dump_table(
        self,
        table: str,
        out_path: Path,
        predicate: Optional[WindowPredicate] = None,
    ) -> Optional[int]:
        """
        Write the rows of a table matching the predicate to out_path.

        Args:
            table: Validated table name
            out_path: File to write (created or truncated)
            predicate: Row filter; None dumps the whole table

        Returns:
            Rows written, or None when only the artifact itself can tell
            (the engine then counts its row statements)

        Raises:
            Exception: Any failure; the caller removes out_path
        """
        pass

    @abstractmethod
    def apply(self, artifact_path: Path) -> None:
        """
        Replay an artifact against this tool's target database.

        Raises:
            Exception: Any failure applying the statements
        """
        pass
