"""
aggregation/worker.py

AggregatorWorker — bridges the input queue → Aggregator → output queue.

Consumes TimedRecord objects put on the input queue by the tailer or the
HTTP ingest route, feeds each one to the Aggregator, and forwards every
PassThrough / Emit record to the output queue for the sink.

Scheduling:
  - Main loop: asyncio.wait_for(queue.get(), timeout=1.0)
    The timeout keeps groups_active fresh in stats during quiet periods.
  - The Aggregator is always stamped with the processing time (clock()),
    not the time the line was read, so the stale bound is measured against
    when the aggregator actually saw the record.
  - Output is back-pressured: a full output queue blocks the worker (and,
    behind it, the input queue) instead of dropping combined records.
  - Graceful shutdown: on CancelledError, logs how many incomplete groups
    are being discarded (buffered groups are never persisted), then re-raises.

Stats dict (exposed for the stats route and the periodic metrics log):
    records_forwarded — records put on the output queue
  plus every counter from Aggregator.stats (merged on read).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from ..models import TimedRecord
from .aggregator import Aggregator
from .models import Emit, PassThrough

logger = logging.getLogger(__name__)


class AggregatorWorker:
    """
    Async driver for a single Aggregator instance.

    Args:
        input_queue:  asyncio.Queue[TimedRecord]  (from ingest layer)
        output_queue: asyncio.Queue[dict]         (to the sink)
        aggregator:   The Aggregator to drive (one per log stream).
        clock:        Wall-clock source; patched in tests.
    """

    def __init__(
        self,
        input_queue: asyncio.Queue,
        output_queue: asyncio.Queue,
        aggregator: Aggregator | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._input_q = input_queue
        self._output_q = output_queue
        self.aggregator = aggregator if aggregator is not None else Aggregator()
        self._clock = clock
        self._forwarded = 0

    @property
    def stats(self) -> dict[str, int]:
        return {**self.aggregator.stats, "records_forwarded": self._forwarded}

    # ------------------------------------------------------------------
    # Main async loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Main aggregation loop. Runs until cancelled."""
        logger.info("Aggregator worker started")
        try:
            while True:
                await self._process_one()
        except asyncio.CancelledError:
            pending = self.aggregator.active_count
            if pending:
                logger.warning(
                    "Aggregator worker cancelled — discarding %d incomplete groups",
                    pending,
                )
            logger.info("Aggregator worker shutdown — final stats: %s", self.stats)
            raise

    # ------------------------------------------------------------------
    # Internal: per-iteration logic
    # ------------------------------------------------------------------

    async def _process_one(self) -> None:
        """Dequeue one record (max 1 s wait) and run it through the Aggregator."""
        try:
            item: TimedRecord = await asyncio.wait_for(
                self._input_q.get(), timeout=1.0
            )
        except asyncio.TimeoutError:
            return

        try:
            decision = self.aggregator.process(item.fields, self._clock())
        finally:
            self._input_q.task_done()

        if isinstance(decision, (Emit, PassThrough)):
            await self._forward(decision.record)

    async def _forward(self, record: dict) -> None:
        # Blocks while the sink is behind; combined records are never dropped.
        await self._output_q.put(record)
        self._forwarded += 1
