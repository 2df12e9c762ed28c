"""
backend/pipeline.py

Defines the interprocess asyncio.Queue instances and the ring-buffer
safe_put() helper used by the ingest layer to enqueue without blocking.

Queue sizing:
  input_queue  = 10_000  — raw TimedRecords; absorbs log bursts
  output_queue =  1_000  — combined / passed-through records for the sink

Both queues use safe_put() which drops the *oldest* item when full
(ring-buffer semantics) rather than blocking the producer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .metrics import METRICS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Queue definitions — import these from other modules
# ---------------------------------------------------------------------------

# Lazily initialised so tests can create fresh queues without import side effects.
# Call init_queues() once at startup (done inside main.py).

input_queue: asyncio.Queue | None = None
output_queue: asyncio.Queue | None = None


def init_queues(input_size: int = 10_000, output_size: int = 1_000) -> None:
    """
    Initialise both pipeline queues.
    Must be called from within a running asyncio event loop.
    """
    global input_queue, output_queue
    input_queue = asyncio.Queue(maxsize=input_size)
    output_queue = asyncio.Queue(maxsize=output_size)
    logger.info(
        "Pipeline queues initialised — sizes: input=%d output=%d",
        input_size,
        output_size,
    )


def queue_sizes() -> dict[str, int]:
    """Current depth of each queue (0 when not initialised)."""
    return {
        "input": input_queue.qsize() if input_queue is not None else 0,
        "output": output_queue.qsize() if output_queue is not None else 0,
    }


# ---------------------------------------------------------------------------
# Ring-buffer put helper
# ---------------------------------------------------------------------------

async def safe_put(queue: asyncio.Queue, item: Any) -> bool:
    """
    Non-blocking enqueue with ring-buffer drop semantics.

    If the queue is full, the *oldest* item is discarded to make room,
    METRICS.records_dropped is incremented, and a warning is logged.

    Returns:
        True  — item was enqueued successfully.
        False — item could not be enqueued (extremely unlikely race condition).
    """
    if queue.full():
        try:
            queue.get_nowait()  # discard oldest item
            queue.task_done()
            METRICS.records_dropped.inc()
            logger.warning(
                "Queue full (%d/%d) — oldest item dropped to make room",
                queue.qsize(),
                queue.maxsize,
            )
        except asyncio.QueueEmpty:
            pass  # queue was drained between the full() check and get_nowait()

    try:
        queue.put_nowait(item)
        return True
    except asyncio.QueueFull:
        METRICS.records_dropped.inc()
        logger.error("safe_put: queue still full after drop — item lost")
        return False
