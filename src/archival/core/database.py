"""
Database capability interface used by the archival engine.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, List, Sequence, Tuple

from .models import ObjectKind


_IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def is_valid_identifier(name: str) -> bool:
    """
    Validate that a name is a safe SQL identifier.

    Uses a strict whitelist approach to prevent SQL injection:
    - Must start with a letter or underscore
    - Can only contain letters, digits, and underscores
    - Maximum length of 64 characters (MySQL limit)

    Args:
        name: The identifier to validate

    Returns:
        True if valid, False otherwise
    """
    if not name or len(name) > 64:
        return False
    return bool(_IDENTIFIER_PATTERN.match(name))


def quote_identifier(name: str) -> str:
    """
    Quote a validated identifier with backticks.

    Backticks are understood by both MySQL and SQLite.

    Raises:
        ValueError: If the name is not a safe identifier
    """
    if not is_valid_identifier(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f"`{name}`"


class Database(ABC):
    """
    Abstract base class for database connections.

    The engine only needs to run parametrized reads and writes and to
    introspect schema objects; the wire protocol is the implementation's
    concern. Parameters use the '?' placeholder style.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Database (schema) name used for artifact paths and checkpoint keys."""
        pass

    @abstractmethod
    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Tuple]:
        """
        Execute a read query.

        Args:
            sql: SQL text with '?' placeholders
            params: Bound parameters

        Returns:
            List of row tuples
        """
        pass

    @abstractmethod
    def execute(self, sql: str, params: Sequence[Any] = (), commit: bool = True) -> int:
        """
        Execute a write statement.

        Args:
            sql: SQL text with '?' placeholders
            params: Bound parameters
            commit: Whether to commit immediately; when False the caller
                must call commit() or rollback()

        Returns:
            Number of affected rows
        """
        pass

    @abstractmethod
    def commit(self) -> None:
        """Commit the current transaction."""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Roll back the current transaction."""
        pass

    @abstractmethod
    def get_object_kind(self, table: str) -> ObjectKind:
        """Resolve whether a name is a base table, a view, or absent."""
        pass

    @abstractmethod
    def column_exists(self, table: str, column: str) -> bool:
        """Check whether a table has the given column."""
        pass

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Execute a query and return the first column of the first row."""
        rows = self.query(sql, params)
        if not rows:
            return None
        return rows[0][0]

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass
