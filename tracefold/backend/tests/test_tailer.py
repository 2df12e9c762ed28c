"""
tests/test_tailer.py

Integration-style tests for LogTailer against real temporary files.

Strategy:
  - The reader thread is real; tests await on the asyncio side until the
    expected number of records has crossed the run_coroutine_threadsafe
    bridge (or a short deadline passes).
  - poll_interval is tiny so follow-mode tests stay fast.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from tracefold.backend.ingest.tailer import LogTailer
from tracefold.backend.metrics import METRICS


@pytest.fixture(autouse=True)
def reset_metrics():
    """Reset metrics counters before each test."""
    METRICS.reset_all()
    yield


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def line(**fields) -> str:
    return json.dumps(fields) + "\n"


async def wait_for_items(q: asyncio.Queue, n: int, timeout: float = 2.0) -> list:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while q.qsize() < n and loop.time() < deadline:
        await asyncio.sleep(0.01)
    items = []
    while not q.empty():
        items.append(q.get_nowait())
    return items


async def wait_finished(tailer: LogTailer, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not tailer.finished.is_set() and loop.time() < deadline:
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.05)   # let the last scheduled puts land


# ---------------------------------------------------------------------------
# One-shot reads
# ---------------------------------------------------------------------------

class TestReadOnce:

    @pytest.mark.asyncio
    async def test_reads_all_lines_then_finishes(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text(
            line(traceId="abc", message="handler finished")
            + line(traceId="abc", message="request completed")
        )
        q: asyncio.Queue = asyncio.Queue()
        tailer = LogTailer(q, asyncio.get_running_loop(), str(path), follow=False)
        tailer.start()
        await wait_finished(tailer)

        items = await wait_for_items(q, 2)
        assert [i.fields["message"] for i in items] == ["handler finished", "request completed"]
        assert tailer.finished.is_set()
        assert tailer.is_running is False

    @pytest.mark.asyncio
    async def test_bad_lines_counted_and_skipped(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text("garbage\n" + line(message="ok") + "\n[1,2]\n")
        q: asyncio.Queue = asyncio.Queue()
        tailer = LogTailer(q, asyncio.get_running_loop(), str(path), follow=False)
        tailer.start()
        await wait_finished(tailer)

        items = await wait_for_items(q, 1)
        assert len(items) == 1
        assert METRICS.lines_received.value == 4
        assert METRICS.lines_parsed_ok.value == 1
        assert METRICS.lines_parse_error.value == 3

    @pytest.mark.asyncio
    async def test_final_line_without_newline_is_read(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text(line(message="a") + json.dumps({"message": "b"}))
        q: asyncio.Queue = asyncio.Queue()
        tailer = LogTailer(q, asyncio.get_running_loop(), str(path), follow=False)
        tailer.start()
        await wait_finished(tailer)

        items = await wait_for_items(q, 2)
        assert [i.fields["message"] for i in items] == ["a", "b"]

    def test_missing_file_raises_on_start(self, tmp_path):
        loop = asyncio.new_event_loop()
        try:
            tailer = LogTailer(asyncio.Queue(), loop, str(tmp_path / "nope.log"))
            with pytest.raises(FileNotFoundError):
                tailer.start()
            assert tailer.is_running is False
        finally:
            loop.close()


# ---------------------------------------------------------------------------
# Follow mode
# ---------------------------------------------------------------------------

class TestFollow:

    @pytest.mark.asyncio
    async def test_picks_up_appended_lines(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text(line(message="existing"))
        q: asyncio.Queue = asyncio.Queue()
        tailer = LogTailer(q, asyncio.get_running_loop(), str(path), poll_interval=0.01)
        tailer.start()
        try:
            first = await wait_for_items(q, 1)
            with path.open("a") as f:
                f.write(line(message="appended"))
            second = await wait_for_items(q, 1)
        finally:
            tailer.stop()

        assert [i.fields["message"] for i in first] == ["existing"]
        assert [i.fields["message"] for i in second] == ["appended"]

    @pytest.mark.asyncio
    async def test_start_at_end_skips_existing(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text(line(message="old"))
        q: asyncio.Queue = asyncio.Queue()
        tailer = LogTailer(
            q, asyncio.get_running_loop(), str(path),
            start_at_end=True, poll_interval=0.01,
        )
        tailer.start()
        try:
            await asyncio.sleep(0.05)
            with path.open("a") as f:
                f.write(line(message="new"))
            items = await wait_for_items(q, 1)
        finally:
            tailer.stop()

        assert [i.fields["message"] for i in items] == ["new"]

    @pytest.mark.asyncio
    async def test_partial_line_held_until_complete(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text("")
        q: asyncio.Queue = asyncio.Queue()
        tailer = LogTailer(q, asyncio.get_running_loop(), str(path), poll_interval=0.01)
        tailer.start()
        try:
            with path.open("a") as f:
                f.write('{"message": "spl')
            await asyncio.sleep(0.1)
            assert q.empty()
            with path.open("a") as f:
                f.write('it"}\n')
            items = await wait_for_items(q, 1)
        finally:
            tailer.stop()

        assert [i.fields["message"] for i in items] == ["split"]

    @pytest.mark.asyncio
    async def test_truncation_restarts_from_beginning(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text(line(message="a" * 50) + line(message="b" * 50))
        q: asyncio.Queue = asyncio.Queue()
        tailer = LogTailer(q, asyncio.get_running_loop(), str(path), poll_interval=0.01)
        tailer.start()
        try:
            before = await wait_for_items(q, 2)
            path.write_text(line(message="c"))
            after = await wait_for_items(q, 1)
        finally:
            tailer.stop()

        assert len(before) == 2
        assert [i.fields["message"] for i in after] == ["c"]

    @pytest.mark.asyncio
    async def test_stop_ends_thread(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text("")
        tailer = LogTailer(asyncio.Queue(), asyncio.get_running_loop(), str(path), poll_interval=0.01)
        tailer.start()
        assert tailer.is_running
        tailer.stop()
        assert tailer.finished.is_set()
        assert tailer.is_running is False


# ---------------------------------------------------------------------------
# Back-pressure
# ---------------------------------------------------------------------------

class TestBackpressure:

    @pytest.mark.asyncio
    async def test_file_replay_waits_for_room_instead_of_dropping(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text("".join(line(message=str(n)) for n in range(50)))
        q: asyncio.Queue = asyncio.Queue(maxsize=2)
        tailer = LogTailer(q, asyncio.get_running_loop(), str(path), follow=False)
        tailer.start()

        messages = []
        for _ in range(50):
            item = await asyncio.wait_for(q.get(), timeout=2.0)
            messages.append(item.fields["message"])
        await wait_finished(tailer)

        assert messages == [str(n) for n in range(50)]
        assert METRICS.records_dropped.value == 0

    @pytest.mark.asyncio
    async def test_stop_releases_reader_blocked_on_full_queue(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text("".join(line(message=str(n)) for n in range(5)))
        q: asyncio.Queue = asyncio.Queue(maxsize=1)
        tailer = LogTailer(
            q, asyncio.get_running_loop(), str(path), follow=False, poll_interval=0.01
        )
        tailer.start()
        await asyncio.sleep(0.1)
        assert not tailer.finished.is_set()

        tailer.stop()
        assert tailer.finished.is_set()
        assert q.qsize() == 1

    def test_block_defaults_by_source(self, tmp_path):
        loop = asyncio.new_event_loop()
        try:
            assert LogTailer(asyncio.Queue(), loop, str(tmp_path / "a.log"))._block is True
            assert LogTailer(asyncio.Queue(), loop, "-")._block is False
            assert LogTailer(asyncio.Queue(), loop, "-", block=True)._block is True
        finally:
            loop.close()
