"""
aggregation/models.py

Data models for the aggregation layer.

Group    — per-correlation-key buffer of messages and latest status fields
Suppress / PassThrough / Emit — the three outcomes of Aggregator.process()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


# ---------------------------------------------------------------------------
# Group — accumulating state for one correlation key
# ---------------------------------------------------------------------------

@dataclass
class Group:
    """
    Buffered records for a single correlation key.

    Memory is O(messages) per group; status fields are overwritten in place.
    """

    key: str

    last_seen: float
    """Timestamp of the most recent record applied (duplicates included)."""

    messages: list[str] = field(default_factory=list)
    """Messages in arrival order; joined with newlines on flush."""

    latest_fields: dict[str, Any] = field(default_factory=dict)
    """Last non-None value seen per status field."""

    completed: bool = False
    """Set once the completion marker has been observed."""

    def __repr__(self) -> str:
        return (
            f"Group({self.key!r} "
            f"msgs={len(self.messages)} "
            f"fields={sorted(self.latest_fields)} "
            f"completed={self.completed})"
        )


# ---------------------------------------------------------------------------
# Decision — result of feeding one record to the Aggregator
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Suppress:
    """Record was absorbed into a group (or discarded as a duplicate)."""


@dataclass(frozen=True, slots=True)
class PassThrough:
    """Record has no usable correlation key; forward it verbatim."""

    record: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Emit:
    """A group completed; forward the combined record."""

    record: dict[str, Any]


Decision = Union[Suppress, PassThrough, Emit]

# Suppress carries no data, so one instance is shared.
SUPPRESS = Suppress()
