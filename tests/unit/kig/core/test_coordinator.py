"""
Tests for the Coordinator - running the pollers of a workspace.
"""
import asyncio
import json

import pytest

from kig.core.coordinator import Coordinator, validate_config
from kig.core.sink import JsonLinesSink
from kig.core.workspace import WorkspaceConfig
from kig.utility.exceptions import ConfigError


def read_jsonl(path):
    return [json.loads(line) for line in path.read_text().splitlines() if line]


class TestCoordinatorRun:
    @pytest.mark.asyncio
    @pytest.mark.timeout(20)
    async def test_runs_one_shot_pollers_to_completion(self, workspace_dir):
        output = workspace_dir / "out" / "records.jsonl"
        coordinator = Coordinator(
            config_path=str(workspace_dir / "kig.yml"), output=str(output)
        )

        results = await coordinator.run()

        assert not coordinator.failed
        by_name = {r["name"]: r for r in results}
        assert by_name["new_orders"]["rows"] == 3
        assert by_name["big_orders"]["rows"] == 3
        assert all(r["status"] == "pass" for r in results)

        records = read_jsonl(output)
        assert len(records) == 6
        tagged = [r for r in records if r.get("tags") == ["orders"]]
        assert sorted(r["id"] for r in tagged) == [3, 4, 5]
        assert all("@timestamp" in r and r["@version"] == "1" for r in records)

    @pytest.mark.asyncio
    @pytest.mark.timeout(20)
    async def test_poller_filter(self, workspace_dir):
        output = workspace_dir / "records.jsonl"
        coordinator = Coordinator(
            config_path=str(workspace_dir / "kig.yml"),
            poller_filter=["big_orders"],
            output=str(output),
        )

        results = await coordinator.run()

        assert [r["name"] for r in results] == ["big_orders"]
        assert [r["id"] for r in read_jsonl(output)] == [2, 4, 5]

    @pytest.mark.asyncio
    @pytest.mark.timeout(20)
    async def test_unknown_poller_in_filter(self, workspace_dir):
        coordinator = Coordinator(
            config_path=str(workspace_dir / "kig.yml"), poller_filter=["nope"]
        )

        with pytest.raises(ConfigError, match="No pollers matched: nope"):
            await coordinator.run()

    @pytest.mark.asyncio
    @pytest.mark.timeout(20)
    async def test_failed_poller_is_reported(self, workspace_dir, sqlite_db):
        config = WorkspaceConfig.from_dict(
            {
                "connections": {"shop": {"type": "sqlite", "path": str(sqlite_db)}},
                "pollers": {
                    "ok": {"connection": "shop", "statement": "SELECT id FROM orders"},
                    "broken": {
                        "connection": "shop",
                        "statement": "SELECT * FROM orders WHERE id = :my_id",
                    },
                },
            }
        )
        output = workspace_dir / "records.jsonl"
        coordinator = Coordinator(config=config, output=str(output))

        results = await coordinator.run()

        assert coordinator.failed
        by_name = {r["name"]: r for r in results}
        assert by_name["ok"]["status"] == "pass"
        assert by_name["broken"]["status"] == "fail"
        assert "my_id" in by_name["broken"]["error"]
        assert len(read_jsonl(output)) == 5

    @pytest.mark.asyncio
    @pytest.mark.timeout(20)
    async def test_scheduled_pollers_run_until_stopped(self, sqlite_db, tmp_path):
        config = WorkspaceConfig.from_dict(
            {
                "pollers": {
                    "every_second": {
                        "connection": {"type": "sqlite", "path": str(sqlite_db)},
                        "statement": "SELECT id FROM orders WHERE id > :last_max_id",
                        "parameters": {"last_max_id": 0},
                        "schedule": "* * * * * *",
                    }
                }
            }
        )
        output = tmp_path / "records.jsonl"
        coordinator = Coordinator(config=config, output=str(output))

        run = asyncio.create_task(coordinator.run())
        poller = None
        for _ in range(500):
            await asyncio.sleep(0.01)
            if coordinator.pollers and coordinator.pollers[0].cycles_run >= 2:
                poller = coordinator.pollers[0]
                break
        assert not run.done()

        coordinator.request_stop()
        results = await asyncio.wait_for(run, timeout=10)

        assert poller is not None
        assert results[0]["status"] == "pass"
        # Only the first cycle found rows, later ones start after last_max_id
        assert [r["id"] for r in read_jsonl(output)] == [1, 2, 3, 4, 5]
        assert poller.parameters["last_max_id"] == 5


class TestValidateConfig:
    def test_valid(self):
        assert (
            validate_config(
                {
                    "pollers": {
                        "p": {
                            "connection": {"type": "sqlite", "path": "a.db"},
                            "statement": "SELECT 1",
                        }
                    }
                }
            )
            == []
        )

    def test_invalid(self):
        errors = validate_config({"pollers": {"p": {"statement": "SELECT 1"}}})
        assert len(errors) == 1
        assert "connection" in errors[0]


class TestJsonLinesSink:
    def test_writes_one_line_per_record(self, tmp_path):
        from datetime import datetime
        from decimal import Decimal

        from kig.core.record import Record

        path = tmp_path / "nested" / "out.jsonl"
        sink = JsonLinesSink(path)
        sink.open()
        sink.write(Record({"id": 1, "at": datetime(2024, 1, 1), "amount": Decimal("2.50")}))
        sink.write(Record({"id": 2}))
        sink.close()

        records = read_jsonl(path)
        assert [r["id"] for r in records] == [1, 2]
        assert records[0]["at"] == "2024-01-01 00:00:00"
        assert records[0]["amount"] == "2.50"
        assert sink.written == 2
        assert sink.describe() == str(path)

    def test_stdout_by_default(self):
        assert JsonLinesSink().describe() == "stdout"
