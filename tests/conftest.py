"""
Shared test fixtures and configuration for pytest.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from archival.core.models import ArchiveWindow, RegistryEntry
from archival.db.sqlite_database import SqliteDatabase
from archival.db.sqlite_dump import SqliteDumpTool


logger = logging.getLogger(__name__)


ORDERS_DDL = """
    CREATE TABLE orders (
        id INTEGER PRIMARY KEY,
        customer TEXT NOT NULL,
        amount REAL,
        note TEXT,
        insert_ts TEXT NOT NULL
    )
"""

# 5 rows inside January 2023, one exactly at the window end, one before it
ORDER_ROWS = [
    (1, "alice", 10.5, None, "2022-12-31 23:59:59"),
    (2, "bob", 20.0, "first", "2023-01-01 00:00:00"),
    (3, "carol", 5.25, "it's quoted", "2023-01-05 12:00:00"),
    (4, "dave", 100.0, None, "2023-01-15 08:30:00"),
    (5, "erin", 7.0, "x", "2023-01-20 17:45:10"),
    (6, "frank", 3.0, None, "2023-01-31 23:59:59"),
    (7, "grace", 42.0, None, "2023-02-01 00:00:00"),
]

JANUARY = ArchiveWindow(start=datetime(2023, 1, 1), end=datetime(2023, 2, 1))


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (requires MySQL)")


# ============================================================================
# Helpers
# ============================================================================

def create_orders(db: SqliteDatabase, rows=ORDER_ROWS) -> None:
    db.execute(ORDERS_DDL)
    for row in rows:
        db.execute(
            "INSERT INTO orders (id, customer, amount, note, insert_ts) VALUES (?, ?, ?, ?, ?)",
            row,
        )


def create_registry(db: SqliteDatabase, entries, table: str = "archieve_table_manager") -> None:
    db.execute(f"CREATE TABLE {table} (table_name TEXT, key_column TEXT)")
    for table_name, key_column in entries:
        db.execute(
            f"INSERT INTO {table} (table_name, key_column) VALUES (?, ?)",
            (table_name, key_column),
        )


def count_rows(db: SqliteDatabase, table: str) -> int:
    return db.scalar(f"SELECT COUNT(*) FROM {table}")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def source_db(tmp_path):
    """Source database holding `orders`, the view `order_view` and the registry."""
    db = SqliteDatabase(tmp_path / "shop.db", name="shop")
    create_orders(db)
    db.execute("CREATE VIEW order_view AS SELECT id, customer FROM orders")
    create_registry(db, [("orders", "id"), ("order_view", "id")])
    yield db
    db.close()


@pytest.fixture
def dest_db(tmp_path):
    """Empty destination database with the `orders` schema."""
    db = SqliteDatabase(tmp_path / "shop_archive.db", name="shop_archive")
    db.execute(ORDERS_DDL)
    yield db
    db.close()


@pytest.fixture
def source_dump_tool(source_db):
    return SqliteDumpTool(source_db)


@pytest.fixture
def dest_dump_tool(dest_db):
    return SqliteDumpTool(dest_db)


@pytest.fixture
def dump_root(tmp_path):
    root = tmp_path / "work" / "dumps"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def orders_entry():
    return RegistryEntry(table_name="orders", key_column="id")


@pytest.fixture
def january():
    """Window [2023-01-01, 2023-02-01) matching five of the seeded orders."""
    return JANUARY
