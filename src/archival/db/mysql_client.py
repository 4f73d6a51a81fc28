"""
mysqldump / mysql client wrapper implementing the DumpTool capability.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from ..core.database import is_valid_identifier
from ..core.dump_tool import DumpTool
from ..core.exceptions import PrerequisiteMissing
from ..core.models import WindowPredicate


logger = logging.getLogger(__name__)


# Consistent single-transaction read of data only, one complete INSERT per row
DUMP_FLAGS = [
    "--single-transaction",
    "--set-gtid-purged=OFF",
    "--skip-triggers",
    "--no-tablespaces",
    "--default-character-set=utf8mb4",
    "--complete-insert",
    "--tz-utc",
    "--skip-extended-insert",
    "--no-create-info",
    "--skip-dump-date",
]


class MysqlClientDumpTool(DumpTool):
    """
    Runs the MySQL command line clients as subprocesses.

    The password is handed over through MYSQL_PWD so it never appears in
    the process list.
    """

    def __init__(
        self,
        database: str,
        host: str = "localhost",
        port: int = 3306,
        username: Optional[str] = None,
        password: Optional[str] = None,
        mysqldump_bin: str = "mysqldump",
        mysql_bin: str = "mysql",
        timeout_seconds: Optional[float] = None,
    ):
        """
        Initialize the client wrapper.

        Args:
            database: Database dumped from / applied to
            host: Server host
            port: Server port
            username: Database username
            password: Database password
            mysqldump_bin: mysqldump executable
            mysql_bin: mysql executable
            timeout_seconds: Optional limit per subprocess
        """
        if not is_valid_identifier(database):
            raise ValueError(f"Invalid database name: {database}")
        self.database = database
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.mysqldump_bin = mysqldump_bin
        self.mysql_bin = mysql_bin
        self.timeout_seconds = timeout_seconds

    def _connection_args(self) -> List[str]:
        args = [f"--host={self.host}", f"--port={self.port}"]
        if self.username:
            args.append(f"--user={self.username}")
        return args

    def _env(self) -> Dict[str, str]:
        env = dict(os.environ)
        if self.password:
            env["MYSQL_PWD"] = self.password
        return env

    def check_available(self) -> None:
        for binary in (self.mysqldump_bin, self.mysql_bin):
            if shutil.which(binary) is None:
                raise PrerequisiteMissing(f"'{binary}' not found on PATH")

    def build_dump_command(self, table: str, predicate: Optional[WindowPredicate] = None) -> List[str]:
        """Assemble the mysqldump argument vector for a table."""
        if not is_valid_identifier(table):
            raise ValueError(f"Invalid table name: {table}")
        cmd = [self.mysqldump_bin, *self._connection_args(), *DUMP_FLAGS]
        if predicate is not None:
            cmd.append(f"--where={predicate.to_literal_sql()}")
        cmd.extend([self.database, table])
        return cmd

    def build_apply_command(self) -> List[str]:
        """Assemble the mysql argument vector for replaying an artifact."""
        return [
            self.mysql_bin,
            *self._connection_args(),
            f"--database={self.database}",
            "--default-character-set=utf8mb4",
            "--batch",
        ]

    def dump_table(
        self,
        table: str,
        out_path: Path,
        predicate: Optional[WindowPredicate] = None,
    ) -> Optional[int]:
        cmd = self.build_dump_command(table, predicate)
        logger.debug(f"Running mysqldump for {self.database}.{table}")

        with open(out_path, "wb") as out:
            result = subprocess.run(
                cmd,
                stdout=out,
                stderr=subprocess.PIPE,
                env=self._env(),
                timeout=self.timeout_seconds,
            )

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise RuntimeError(f"mysqldump exited with {result.returncode}: {stderr}")

        # Values are escaped one statement per line; the engine counts the file
        return None

    def apply(self, artifact_path: Path) -> None:
        cmd = self.build_apply_command()
        logger.debug(f"Applying {artifact_path} to {self.host}:{self.port}/{self.database}")

        with open(artifact_path, "rb") as source:
            result = subprocess.run(
                cmd,
                stdin=source,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=self._env(),
                timeout=self.timeout_seconds,
            )

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise RuntimeError(f"mysql exited with {result.returncode}: {stderr}")
