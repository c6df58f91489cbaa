"""
Tests for records, decoration, and the record emitter.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from kig.core.record import Decorator, Record, RecordEmitter


class TestRecord:
    def test_to_dict_adds_timestamp_and_version(self):
        stamp = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        record = Record({"id": 1}, timestamp=stamp)

        assert record.to_dict() == {
            "id": 1,
            "@timestamp": "2024-05-01T12:00:00+00:00",
            "@version": "1",
        }

    def test_fields_are_copied(self):
        row = {"id": 1}
        record = Record(row)
        record["id"] = 2
        assert row == {"id": 1}


class TestDecorator:
    def test_adds_type_tags_and_fields(self):
        record = Record({"id": 1})
        Decorator(type="order", tags=["shop"], add_field={"source": "db"}).decorate(
            record
        )

        data = record.to_dict()
        assert data["type"] == "order"
        assert data["tags"] == ["shop"]
        assert data["source"] == "db"

    def test_never_overwrites_row_fields(self):
        record = Record({"type": "refund", "source": "row"})
        Decorator(type="order", add_field={"source": "db"}).decorate(record)

        assert record["type"] == "refund"
        assert record["source"] == "row"

    def test_tags_are_not_duplicated(self):
        record = Record({})
        decorator = Decorator(tags=["a", "b"])
        decorator.decorate(record)
        decorator.decorate(record)
        assert record.tags == ["a", "b"]


class TestRecordEmitter:
    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_publish_puts_decorated_record_on_queue(self):
        queue: asyncio.Queue = asyncio.Queue()
        emitter = RecordEmitter("orders", queue, Decorator(tags=["orders"]))

        returned = await emitter.publish({"id": 1})

        record = queue.get_nowait()
        assert record is returned
        assert record["id"] == 1
        assert record.tags == ["orders"]
        assert emitter.published == 1

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_publish_preserves_order(self):
        queue: asyncio.Queue = asyncio.Queue()
        emitter = RecordEmitter("orders", queue)

        for i in range(5):
            await emitter.publish({"id": i})

        assert [queue.get_nowait()["id"] for _ in range(5)] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_publish_waits_on_full_queue(self):
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        emitter = RecordEmitter("orders", queue)
        await emitter.publish({"id": 1})

        pending = asyncio.create_task(emitter.publish({"id": 2}))
        await asyncio.sleep(0.05)
        assert not pending.done()

        assert queue.get_nowait()["id"] == 1
        await asyncio.wait_for(pending, timeout=1)
        assert queue.get_nowait()["id"] == 2
