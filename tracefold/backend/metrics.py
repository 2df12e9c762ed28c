"""
backend/metrics.py

Lightweight thread-safe counters for the ingest and output stages.
No external dependencies — uses Python's threading.Lock.

The tailer thread and the asyncio loop both increment these, hence the lock.
Aggregation counters live on Aggregator.stats instead (single-threaded).

Usage:
    from tracefold.backend.metrics import METRICS
    METRICS.lines_received.inc()
    print(METRICS.as_dict())
"""

import threading


class Counter:
    """A thread-safe integer counter."""

    __slots__ = ("_value", "_lock")

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    def reset(self) -> None:
        with self._lock:
            self._value = 0

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def __repr__(self) -> str:  # pragma: no cover
        return f"Counter({self._value})"


class Metrics:
    """Singleton holding all pipeline counters."""

    def __init__(self) -> None:
        # --- Ingest ---
        self.lines_received: Counter = Counter()
        """Raw lines read from the input (file, stdin or HTTP)."""

        self.lines_parsed_ok: Counter = Counter()
        """Lines that decoded to a JSON object."""

        self.lines_parse_error: Counter = Counter()
        """Blank, non-JSON or non-object lines that were skipped."""

        self.records_dropped: Counter = Counter()
        """Items discarded because a pipeline queue was full."""

        # --- Output ---
        self.records_written: Counter = Counter()
        """Records successfully written to the sink."""

        self.write_errors: Counter = Counter()
        """Records lost because the sink raised OSError."""

    def as_dict(self) -> dict:
        """Return all counters as a plain dict (safe for JSON serialisation)."""
        return {
            name: counter.value
            for name, counter in vars(self).items()
            if isinstance(counter, Counter)
        }

    def reset_all(self) -> None:
        """Reset every counter to zero (useful in tests)."""
        for attr in vars(self).values():
            if isinstance(attr, Counter):
                attr.reset()


# Module-level singleton — import from here everywhere
METRICS = Metrics()
