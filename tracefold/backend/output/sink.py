"""
output/sink.py

JSON-lines sink for combined and passed-through records.

Design decisions:
  - One compact JSON object per line, flushed after every record so a
    downstream shipper tailing the file sees complete lines promptly.
  - "-" writes to stdout; the sink never closes stdout.
  - Write failures (disk full, closed pipe) are logged and counted; the
    record is lost. Delivery is at-most-once.
  - Values json cannot encode are written via str() rather than failing.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import IO, Any

from ..metrics import METRICS

logger = logging.getLogger(__name__)

STDOUT = "-"


class JsonLinesSink:
    """
    Append-only JSON-lines writer.

    Usage:
        with JsonLinesSink("out/combined.log") as sink:
            sink.write({"traceId": "abc", "message": "..."})
    """

    def __init__(self, path: str = STDOUT) -> None:
        self.path = path
        self._fh: IO[str] | None = None

    def open(self) -> None:
        if self._fh is not None:
            return
        if self.path == STDOUT:
            self._fh = sys.stdout
        else:
            directory = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(directory, exist_ok=True)
            self._fh = open(self.path, "a", encoding="utf-8")
        logger.info("Sink opened — path=%r", self.path)

    def close(self) -> None:
        if self._fh is None:
            return
        if self._fh is not sys.stdout:
            self._fh.close()
        self._fh = None
        logger.info("Sink closed — path=%r", self.path)

    def write(self, record: dict[str, Any]) -> bool:
        """Write one record. Returns False if it was lost to an OSError."""
        if self._fh is None:
            self.open()
        line = json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=str)
        try:
            self._fh.write(line + "\n")
            self._fh.flush()
        except OSError as exc:
            METRICS.write_errors.inc()
            logger.error("Sink write to %r failed: %s", self.path, exc)
            return False
        METRICS.records_written.inc()
        return True

    def __enter__(self) -> "JsonLinesSink":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


async def sink_consumer(
    sink: JsonLinesSink,
    queue: asyncio.Queue,
    shutdown_event: asyncio.Event,
) -> None:
    """Drain the output queue into the sink until shutdown is requested."""
    logger.info("Sink consumer started — path=%r", sink.path)
    while not shutdown_event.is_set():
        try:
            record: dict = await asyncio.wait_for(queue.get(), timeout=0.5)
        except asyncio.TimeoutError:
            continue
        except asyncio.CancelledError:
            break
        try:
            sink.write(record)
        finally:
            queue.task_done()

    # Whatever is already queued still gets written.
    while not queue.empty():
        sink.write(queue.get_nowait())
        queue.task_done()
    logger.info("Sink consumer exiting")
