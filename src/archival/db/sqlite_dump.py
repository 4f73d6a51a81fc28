"""
Dump/apply tool for the SQLite backend.

Writes the same artifact shape as mysqldump with --complete-insert
--skip-extended-insert --no-create-info: one full INSERT per row.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from ..core.database import quote_identifier
from ..core.dump_tool import DumpTool
from ..core.models import WindowPredicate
from .sqlite_database import SqliteDatabase


logger = logging.getLogger(__name__)


def render_literal(value: Any) -> str:
    """Render a Python value as a SQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"X'{bytes(value).hex()}'"
    text = str(value).replace("'", "''")
    return f"'{text}'"


class SqliteDumpTool(DumpTool):
    """
    Dump rows from, or apply artifacts to, a SQLite database.
    """

    def __init__(self, database: SqliteDatabase):
        self.database = database

    def check_available(self) -> None:
        # sqlite3 ships with the interpreter
        return None

    def dump_table(
        self,
        table: str,
        out_path: Path,
        predicate: Optional[WindowPredicate] = None,
    ) -> int:
        quoted = quote_identifier(table)
        columns = self.database.get_columns(table)
        if not columns:
            raise RuntimeError(f"Table has no columns or does not exist: {table}")
        column_list = ", ".join(quote_identifier(c) for c in columns)

        sql = f"SELECT {column_list} FROM {quoted}"
        params = ()
        if predicate is not None:
            sql += f" WHERE {predicate.to_sql()}"
            params = predicate.params()

        rows = self.database.query(sql, params)

        with open(out_path, "w", encoding="utf-8") as f:
            f.write(f"-- Archive dump of {quoted} from {self.database.name}\n")
            if predicate is not None:
                f.write(f"-- WHERE: {predicate.to_literal_sql()}\n")
            f.write("\n")
            for row in rows:
                values = ", ".join(render_literal(v) for v in row)
                f.write(f"INSERT INTO {quoted} ({column_list}) VALUES ({values});\n")

        logger.debug(f"Wrote {len(rows)} rows of {table} to {out_path}")
        return len(rows)

    def apply(self, artifact_path: Path) -> None:
        script = Path(artifact_path).read_text(encoding="utf-8")
        self.database.executescript(script)
