"""
Integration tests: pollers against a real SQLite database.

These run the whole path from statement to record - binding, the driver,
the thread pool bridge, watermarks and decoration - and check that an
incremental poller only ever sees rows it has not published before.
"""
import asyncio
import sqlite3

import pytest

from kig.connections import SqliteConnection
from kig.connections.sqlite import SqliteConnectionConfig
from kig.core.coordinator import Coordinator
from kig.core.executor import QueryExecutor
from kig.core.poller import Poller
from kig.core.record import Decorator, RecordEmitter
from kig.core.statement import Statement
from kig.core.watermark import SQL_LAST_START
from kig.utility.exceptions import TypeMismatchError


def insert_orders(db_path, rows):
    with sqlite3.connect(db_path) as conn:
        conn.executemany("INSERT INTO orders VALUES (?, ?, ?, ?)", rows)
    conn.close()


def make_poller(db_path, statement, parameters, decorator=None, fetch_size=10_000):
    queue: asyncio.Queue = asyncio.Queue()
    connection = SqliteConnection(
        "shop", SqliteConnectionConfig(path=str(db_path), fetch_size=fetch_size)
    )
    poller = Poller(
        "orders",
        statement,
        parameters,
        QueryExecutor("orders", connection),
        RecordEmitter("orders", queue, decorator),
    )
    return poller, queue


def drain(queue):
    records = []
    while not queue.empty():
        records.append(queue.get_nowait())
    return records


@pytest.mark.asyncio
@pytest.mark.timeout(30)
async def test_incremental_cycles_only_see_new_rows(sqlite_db):
    """Each cycle picks up where the previous one stopped."""
    poller, queue = make_poller(
        sqlite_db,
        Statement("SELECT id, customer FROM orders WHERE id > :last_max_id ORDER BY id"),
        {"last_max_id": 0},
    )
    await poller.executor.open()
    try:
        first = await poller.run_cycle()
        assert first.rows == 5
        assert [r["id"] for r in drain(queue)] == [1, 2, 3, 4, 5]
        assert poller.parameters["last_max_id"] == 5
        assert poller.parameters["last_min_id"] == 1

        second = await poller.run_cycle()
        assert second.rows == 0
        assert drain(queue) == []

        insert_orders(
            sqlite_db,
            [
                (6, "edsger", 12.0, "2024-01-04 08:00:00"),
                (7, "ada", 5.5, "2024-01-04 09:00:00"),
            ],
        )

        third = await poller.run_cycle()
        assert third.rows == 2
        assert [r["customer"] for r in drain(queue)] == ["edsger", "ada"]
        assert poller.parameters["last_max_id"] == 7
        assert poller.parameters["last_min_id"] == 1
        assert poller.parameters["last_max_customer"] == "linus"
    finally:
        await poller.executor.close()


@pytest.mark.asyncio
@pytest.mark.timeout(30)
async def test_run_once_with_text_watermark(sqlite_db):
    """Timestamps stored as text are tracked as strings."""
    poller, queue = make_poller(
        sqlite_db,
        "SELECT id, updated_at FROM orders "
        "WHERE updated_at > :last_max_updated_at ORDER BY updated_at",
        {"last_max_updated_at": "2024-01-02 00:00:00"},
        Decorator(type="order", tags=["incremental"], add_field={"source": "shop"}),
    )

    await poller.start()

    records = drain(queue)
    assert [r["id"] for r in records] == [3, 4, 5]
    assert all(r["type"] == "order" for r in records)
    assert all(r.tags == ["incremental"] for r in records)
    assert records[0].to_dict()["source"] == "shop"
    assert poller.parameters["last_max_updated_at"] == "2024-01-03 12:05:00"
    assert poller.parameters["last_min_updated_at"] == "2024-01-02 08:30:00"
    assert SQL_LAST_START in poller.parameters
    assert not poller.executor.connection.is_open


@pytest.mark.asyncio
@pytest.mark.timeout(30)
async def test_sql_last_start_is_bindable(sqlite_db):
    """sql_last_start from the previous cycle can be used in the statement."""
    poller, queue = make_poller(
        sqlite_db,
        "SELECT id FROM orders WHERE :sql_last_start IS NOT NULL ORDER BY id",
        {"sql_last_start": "1970-01-01 00:00:00"},
    )

    await poller.start()

    assert len(drain(queue)) == 5
    assert poller.parameters[SQL_LAST_START].year >= 2024


@pytest.mark.asyncio
@pytest.mark.timeout(30)
async def test_coordinator_runs_workspace(workspace_dir, tmp_path):
    """A workspace run writes every poller's records to the sink."""
    output = tmp_path / "records.jsonl"
    coordinator = Coordinator(
        config_path=str(workspace_dir / "kig.yml"), output=str(output)
    )

    results = await coordinator.run()

    assert sorted(r["name"] for r in results) == ["big_orders", "new_orders"]
    assert all(r["status"] == "pass" for r in results)
    lines = output.read_text().splitlines()
    assert len(lines) == 6


@pytest.mark.asyncio
@pytest.mark.timeout(30)
@pytest.mark.parametrize("fetch_size", [1, 10_000])
async def test_mixed_kind_column_fails_the_cycle(tmp_path, fetch_size):
    """A column holding a number and then text fails, whatever the batch size."""
    db_path = tmp_path / "mixed.db"
    with sqlite3.connect(db_path) as conn:
        conn.execute("CREATE TABLE t (id INTEGER, v)")
        conn.executemany("INSERT INTO t VALUES (?, ?)", [(1, 5), (2, "x")])
    conn.close()

    poller, queue = make_poller(
        db_path, "SELECT id, v FROM t ORDER BY id", {}, fetch_size=fetch_size
    )

    with pytest.raises(TypeMismatchError):
        await poller.start()

    records = drain(queue)
    assert [r.fields for r in records] == [{"id": 1, "v": 5}, {"id": 2, "v": "x"}]
    assert poller.parameters["last_max_v"] == 5
    assert poller.parameters["last_max_id"] == 1
    assert not poller.executor.connection.is_open
