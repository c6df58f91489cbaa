"""
Records and the record emitter.

A record is what leaves kig: the fields of one row wrapped with a timestamp
and version, decorated with the poller's instance-wide metadata (type,
tags, extra fields), and put on the output queue for a consumer to drain.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from kig.messages import get_logger

TIMESTAMP_FIELD = "@timestamp"
VERSION_FIELD = "@version"


class Record:
    """
    The default wrapper for a published row.

    Example:
        ```python
        record = Record({"id": 1, "name": "Ada"})
        record["id"]        # 1
        record.to_dict()    # {"id": 1, "name": "Ada", "@timestamp": "...",
                            #  "@version": "1"}
        ```
    """

    VERSION = "1"

    def __init__(
        self, fields: Mapping[str, Any], timestamp: Optional[datetime] = None
    ):
        self.fields: Dict[str, Any] = dict(fields)
        self.timestamp = timestamp or datetime.now(timezone.utc)
        self.tags: List[str] = []

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.fields[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.fields

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten the record into a plain dict, ready for serialization."""
        data = dict(self.fields)
        data[TIMESTAMP_FIELD] = self.timestamp.isoformat()
        data[VERSION_FIELD] = self.VERSION
        if self.tags:
            data["tags"] = list(self.tags)
        return data

    def __repr__(self) -> str:
        return f"Record({self.fields!r})"


class Decorator:
    """
    Attaches a poller's instance-wide metadata to every record.

    - type: set as the "type" field unless the row already has one
    - tags: appended to the record's tags, without duplicates
    - add_field: extra fields, never overwriting a column of the row
    """

    def __init__(
        self,
        type: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        add_field: Optional[Mapping[str, Any]] = None,
    ):
        self.type = type
        self.tags = list(tags or [])
        self.add_field = dict(add_field or {})

    def decorate(self, record: Record) -> None:
        """Decorate record in place."""
        if self.type is not None and "type" not in record:
            record["type"] = self.type

        for tag in self.tags:
            if tag not in record.tags:
                record.tags.append(tag)

        for key, value in self.add_field.items():
            if key not in record:
                record[key] = value


class RecordEmitter:
    """
    Turns rows into records and publishes them in order.

    The output is any object with an async put() - an asyncio.Queue by
    default. publish() only waits when the output applies backpressure
    (a bounded queue that is full).
    """

    def __init__(
        self,
        name: str,
        output: "asyncio.Queue[Record]",
        decorator: Optional[Decorator] = None,
    ):
        self.name = name
        self.output = output
        self.decorator = decorator or Decorator()
        self.published = 0
        self.logger = get_logger(f"kig.emitter.{name}")

    async def publish(self, row: Mapping[str, Any]) -> Record:
        """
        Wrap, decorate and hand one row to the output.

        Args:
            row: Result row to publish

        Returns:
            The published record (owned by the consumer from now on)
        """
        record = Record(row)
        self.decorator.decorate(record)
        await self.output.put(record)
        self.published += 1
        return record
