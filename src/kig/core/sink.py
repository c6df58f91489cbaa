"""
Record sinks - where the coordinator sends published records.

The poller side only knows an output queue. The coordinator drains that
queue into a sink. The default sink writes one JSON document per line.
"""
import json
import sys
from pathlib import Path
from typing import IO, Optional, Union

from kig.messages import get_logger

from .record import Record


class JsonLinesSink:
    """
    Writes records as JSON lines to a file or to stdout.

    Values JSON cannot represent natively (datetimes, decimals, bytes) are
    written as strings.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else None
        self.written = 0
        self._stream: Optional[IO[str]] = None
        self.logger = get_logger("kig.sink")

    def open(self) -> None:
        if self._stream is not None:
            return
        if self.path is None:
            self._stream = sys.stdout
        else:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._stream = open(self.path, "a", encoding="utf-8")
            self.logger.debug(f"Writing records to {self.logger.path(str(self.path))}")

    def write(self, record: Record) -> None:
        if self._stream is None:
            self.open()
        self._stream.write(json.dumps(record.to_dict(), default=str) + "\n")
        self.written += 1

    def close(self) -> None:
        if self._stream is None:
            return
        self._stream.flush()
        if self.path is not None:
            self._stream.close()
        self._stream = None

    def describe(self) -> str:
        return str(self.path) if self.path else "stdout"
