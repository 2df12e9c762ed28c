"""
backend/models.py

Shared dataclasses for the stages of the pipeline.

TimedRecord is the contract between the ingest layer (tailer / HTTP) and the
aggregation worker. Everything downstream of the aggregator is a plain dict,
written verbatim by the sink.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Stage 1 — Ingest output
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class TimedRecord:
    """One decoded log line and the moment it was received."""

    timestamp: float
    """
    Unix epoch timestamp at which the line was read. Informational only: the
    worker stamps the Aggregator with its own clock at dequeue time.
    """

    fields: dict[str, Any] = field(default_factory=dict)
    """The decoded JSON object, untouched."""


# ---------------------------------------------------------------------------
# Stage 2 — Aggregation output  (canonical classes live in aggregation/models.py)
# ---------------------------------------------------------------------------

# Re-exported so callers can import from backend.models without needing to
# know the internal sub-package layout.
from .aggregation.models import Decision, Emit, Group, PassThrough, Suppress  # noqa: E402
