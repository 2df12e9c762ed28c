"""
ingest/tailer.py

LogTailer — follows a JSON-lines log file (or stdin) in a background thread
and bridges each parsed line safely into the asyncio event loop via
asyncio.run_coroutine_threadsafe.

Key design decisions:
  - File reads block, so they run in a SEPARATE THREAD. We must never
    await or put() to an asyncio.Queue from that thread directly. Instead,
    run_coroutine_threadsafe() schedules the put on the main event loop.
  - A file is durable, so file input is back-pressured: the reader thread
    waits for room on the queue and no line is lost on replay. stdin is
    treated as a live stream and goes through the drop-oldest safe_put().
  - Follow mode polls for growth like `tail -F`: when the file shrinks
    below the current offset (truncation / copytruncate rotation) reading
    restarts from offset 0.
  - A trailing partial line is held back until its newline arrives.
  - This module is intentionally thin — parsing logic lives in parser.py.

Lifecycle:
    tailer = LogTailer(queue, loop, path="/var/log/app/app.log")
    tailer.start()
    # ... asyncio event loop runs ...
    tailer.stop()
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import os
import sys
import threading

from ..metrics import METRICS
from ..pipeline import safe_put
from .parser import parse_line

logger = logging.getLogger(__name__)

STDIN = "-"


class LogTailer:
    """
    Reads log lines in a background thread and feeds them to an asyncio.Queue.

    Args:
        queue:         asyncio.Queue[TimedRecord] — the input queue from pipeline.py
        loop:          The running asyncio event loop
        path:          File to read, or "-" for stdin
        follow:        Keep polling for new lines after reaching end of file
        start_at_end:  Skip existing content and only read new lines
        poll_interval: Seconds between polls while waiting for growth
        block:         Wait for queue room instead of dropping the oldest
                       record. Defaults to True for files, False for stdin.
    """

    def __init__(
        self,
        queue: asyncio.Queue,
        loop: asyncio.AbstractEventLoop,
        path: str = STDIN,
        follow: bool = True,
        start_at_end: bool = False,
        poll_interval: float = 0.2,
        block: bool | None = None,
    ) -> None:
        self._queue = queue
        self._loop = loop
        self._path = path
        self._follow = follow
        self._start_at_end = start_at_end
        self._poll_interval = poll_interval
        self._block = (path != STDIN) if block is None else block
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._running = False
        self.finished = threading.Event()
        """Set once the reader thread has exited (EOF without follow, error, or stop)."""

    # ------------------------------------------------------------------
    # Line handling — executes in the reader thread
    # ------------------------------------------------------------------

    def _handle_line(self, line: str) -> None:
        METRICS.lines_received.inc()

        record = parse_line(line)
        if record is None:
            METRICS.lines_parse_error.inc()
            return

        METRICS.lines_parsed_ok.inc()
        if self._block:
            self._put_blocking(record)
        else:
            asyncio.run_coroutine_threadsafe(
                safe_put(self._queue, record),
                self._loop,
            )

    def _put_blocking(self, record) -> None:
        """Wait until the loop has queued record; give up only on stop()."""
        future = asyncio.run_coroutine_threadsafe(self._queue.put(record), self._loop)
        while True:
            try:
                future.result(timeout=self._poll_interval)
                return
            except concurrent.futures.CancelledError:
                return
            except concurrent.futures.TimeoutError:
                if self._stop_event.is_set():
                    future.cancel()
                    return

    def _read_stdin(self) -> None:
        for line in sys.stdin:
            if self._stop_event.is_set():
                break
            self._handle_line(line)

    def _read_file(self) -> None:
        with open(self._path, "r", encoding="utf-8", errors="replace") as f:
            if self._start_at_end:
                f.seek(0, os.SEEK_END)
            buffer = ""
            while not self._stop_event.is_set():
                chunk = f.read()
                if chunk:
                    buffer += chunk
                    while "\n" in buffer:
                        line, buffer = buffer.split("\n", 1)
                        self._handle_line(line)
                    continue

                if not self._follow:
                    if buffer:
                        self._handle_line(buffer)
                    return

                try:
                    size = os.stat(self._path).st_size
                except OSError:
                    size = f.tell()  # mid-rotation; try again next poll
                if size < f.tell():
                    logger.info("%s truncated — reading from the start", self._path)
                    f.seek(0)
                    buffer = ""
                self._stop_event.wait(self._poll_interval)

    def _run(self) -> None:
        try:
            if self._path == STDIN:
                self._read_stdin()
            else:
                self._read_file()
        except OSError as exc:
            logger.error("Reading %s failed: %s", self._path, exc)
        finally:
            with self._lock:
                self._running = False
            self.finished.set()
            logger.info("LogTailer finished — metrics: %s", METRICS.as_dict())

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the reader in its background thread."""
        with self._lock:
            if self._running:
                logger.warning("LogTailer.start() called but already running")
                return

            if self._path != STDIN and not os.path.isfile(self._path):
                raise FileNotFoundError(f"Input file not found: {self._path}")

            logger.info(
                "Starting log tailer — path=%r follow=%s start_at_end=%s",
                self._path,
                self._follow,
                self._start_at_end,
            )
            self._stop_event.clear()
            self.finished.clear()
            self._thread = threading.Thread(
                target=self._run, name="log-tailer", daemon=True
            )
            self._running = True
            self._thread.start()

    def stop(self) -> None:
        """Signal the reader to stop and wait for its thread to finish."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            # stdin reads cannot be interrupted; the thread is a daemon.
            thread.join(timeout=5.0)
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._running

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"LogTailer(path={self._path!r}, "
            f"follow={self._follow}, "
            f"running={self._running})"
        )
