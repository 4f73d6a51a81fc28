"""
Registry reader: loads archivable objects from the manager table.
"""

import logging
from typing import List, Optional

from ..core.database import Database, is_valid_identifier, quote_identifier
from ..core.exceptions import InvalidRegistryRow, RegistryUnavailable
from ..core.models import RegistryEntry


logger = logging.getLogger(__name__)


class RegistryReader:
    """
    Reads `(table_name, key_column)` rows from the manager table.

    The registry is read-only to the engine. Malformed rows are skipped
    with a warning and kept in `invalid_rows` for the run summary.
    """

    def __init__(self, database: Database, manager_table: str = "archieve_table_manager"):
        self.database = database
        self.manager_table = manager_table
        self.invalid_rows: List[InvalidRegistryRow] = []

    def list_objects(self) -> List[RegistryEntry]:
        """
        Load the registry snapshot for this run.

        Returns:
            Valid entries in registry order; empty when the registry has no rows

        Raises:
            RegistryUnavailable: If the manager table cannot be queried
        """
        self.invalid_rows = []
        try:
            sql = (
                f"SELECT table_name, key_column FROM {quote_identifier(self.manager_table)}"
            )
            rows = self.database.query(sql)
        except Exception as e:
            raise RegistryUnavailable(
                f"Cannot read manager table '{self.manager_table}': {e}"
            ) from e

        entries: List[RegistryEntry] = []
        seen = set()
        for row in rows:
            try:
                entry = self._parse_row(row)
            except InvalidRegistryRow as e:
                logger.warning(f"Skipping registry row: {e}", extra={"table": e.table})
                self.invalid_rows.append(e)
                continue

            if entry.table_name in seen:
                error = InvalidRegistryRow(
                    f"duplicate entry for table '{entry.table_name}'", table=entry.table_name
                )
                logger.warning(f"Skipping registry row: {error}", extra={"table": entry.table_name})
                self.invalid_rows.append(error)
                continue

            seen.add(entry.table_name)
            entries.append(entry)

        logger.info(
            f"Registry '{self.manager_table}': {len(entries)} entries, "
            f"{len(self.invalid_rows)} invalid rows skipped"
        )
        return entries

    def _parse_row(self, row) -> RegistryEntry:
        table_name = self._clean(row[0] if len(row) > 0 else None)
        key_column = self._clean(row[1] if len(row) > 1 else None)

        if not table_name or not key_column:
            raise InvalidRegistryRow(
                f"empty table_name or key_column in row {tuple(row)!r}", table=table_name
            )
        if not is_valid_identifier(table_name):
            raise InvalidRegistryRow(f"invalid table name {table_name!r}", table=table_name)
        if not is_valid_identifier(key_column):
            raise InvalidRegistryRow(
                f"invalid key column {key_column!r} for table '{table_name}'", table=table_name
            )
        return RegistryEntry(table_name=table_name, key_column=key_column)

    @staticmethod
    def _clean(value) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None
