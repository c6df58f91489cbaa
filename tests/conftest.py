"""
Common test fixtures and configuration.

Shared fixtures follow kig's testing philosophy:
- Test the behavior a poller's user relies on (rows out, watermarks kept)
- Prefer real SQLite databases over mocks where the driver matters
- Keep fixtures small and obvious
"""
import sqlite3
import sys
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

import pytest

# Add src directory to Python path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from kig.connections import BaseConnection, BaseConnectionConfig  # noqa: E402


class _Handle:
    """Stands in for a DBAPI connection object."""

    def __init__(self, owner):
        self.owner = owner

    def close(self):
        self.owner.closed += 1


class FakeConnection(BaseConnection):
    """
    In-memory connection returning canned rows.

    Not registered under a type name, so it never shows up in the registry.
    Every execute() call is recorded as (sql, values).
    """

    def __init__(
        self,
        rows: Optional[List[Dict[str, Any]]] = None,
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
        connect_error: Optional[Exception] = None,
    ):
        super().__init__("fake", BaseConnectionConfig(type="fake"))
        self.rows = list(rows or [])
        self.fail_after = fail_after
        self.error = error or RuntimeError("driver exploded")
        self.connect_error = connect_error
        self.calls: List[tuple] = []
        self.connect_attempts = 0
        self.closed = 0

    async def _connect(self) -> Any:
        self.connect_attempts += 1
        if self.connect_error is not None:
            raise self.connect_error
        return _Handle(self)

    def execute(self, sql: str, values: Sequence[Any]) -> Iterator[Dict[str, Any]]:
        self.calls.append((sql, list(values)))
        for i, row in enumerate(self.rows):
            if self.fail_after is not None and i >= self.fail_after:
                raise self.error
            yield dict(row)
        if self.fail_after is not None and self.fail_after >= len(self.rows):
            raise self.error


@pytest.fixture
def fake_connection_class():
    """The FakeConnection class, for tests that build their own."""
    return FakeConnection


@pytest.fixture
def fake_connection():
    """A fake connection with three rows."""
    return FakeConnection(
        rows=[
            {"id": 1, "val": 10},
            {"id": 2, "val": 30},
            {"id": 3, "val": 20},
        ]
    )


@pytest.fixture
def sqlite_db(tmp_path) -> Path:
    """A SQLite database with an orders table of five rows."""
    db_path = tmp_path / "shop.db"
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE orders ("
            "id INTEGER PRIMARY KEY, customer TEXT, amount REAL, updated_at TEXT)"
        )
        conn.executemany(
            "INSERT INTO orders VALUES (?, ?, ?, ?)",
            [
                (1, "ada", 10.0, "2024-01-01 09:00:00"),
                (2, "grace", 25.5, "2024-01-01 10:00:00"),
                (3, "linus", 7.25, "2024-01-02 08:30:00"),
                (4, "ada", 99.0, "2024-01-03 12:00:00"),
                (5, "barbara", 42.0, "2024-01-03 12:05:00"),
            ],
        )
    conn.close()
    return db_path


@pytest.fixture
def workspace_dir(tmp_path, sqlite_db) -> Path:
    """A kig workspace with one inline poller and one poller file."""
    (tmp_path / "sql").mkdir()
    (tmp_path / "sql" / "big_orders.sql").write_text(
        "\n  SELECT id, amount FROM orders WHERE amount > :min_amount ORDER BY id\n"
    )
    (tmp_path / "pollers").mkdir()
    (tmp_path / "pollers" / "big_orders.yml").write_text(
        "connection: shop\n"
        "statement: sql/big_orders.sql\n"
        "parameters:\n"
        "  min_amount: 20\n"
    )
    (tmp_path / "kig.yml").write_text(
        'name: "shop"\n'
        "connections:\n"
        "  shop:\n"
        "    type: sqlite\n"
        f"    path: {sqlite_db}\n"
        "pollers:\n"
        "  new_orders:\n"
        "    connection: shop\n"
        "    statement: SELECT * FROM orders WHERE id > :last_max_id ORDER BY id\n"
        "    parameters:\n"
        "      last_max_id: 2\n"
        "    tags: [orders]\n"
    )
    return tmp_path


@pytest.fixture
def cli_runner():
    """Click test runner."""
    from click.testing import CliRunner

    return CliRunner()
