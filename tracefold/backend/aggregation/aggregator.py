"""
aggregation/aggregator.py

Aggregator — folds the many log lines a request produces into one record.

Records sharing a correlation key (traceId by default) are buffered until a
record whose message contains the completion marker arrives; the group is
then flushed as a single combined record:

    {traceId, message: "<msg 1>\\n<msg 2>\\n...", <latest status fields>}

Design constraints:
  - Push model: process() is called once per record, synchronously, and
    returns a Decision (Suppress / PassThrough / Emit). No I/O, no locking.
  - Groups live in an OrderedDict that doubles as the LRU eviction order:
    every touch is move_to_end(), eviction is popitem(last=False). Both O(1),
    and the order can never disagree with the mapping.
  - Max groups cap (default 1000) bounds memory when completion records are
    lost; the least-recently-touched group is dropped, not flushed.
  - Stale sweep runs every `sweep_interval` records (count-based, not
    timer-based) and drops groups idle longer than `stale_timeout` seconds.
  - process() never raises on record content. Every anomaly degrades to
    pass-through, suppression or a silent drop.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Callable, Iterable

from .models import SUPPRESS, Decision, Emit, Group, PassThrough

logger = logging.getLogger(__name__)

DEFAULT_MAX_GROUPS = 1_000
DEFAULT_SWEEP_INTERVAL = 100
DEFAULT_STALE_TIMEOUT = 30.0
DEFAULT_COMPLETION_MARKER = "request completed"
DEFAULT_CORRELATION_FIELD = "traceId"
DEFAULT_MESSAGE_FIELD = "message"
DEFAULT_STATUS_FIELDS = ("method", "path", "status", "latencyMs")

DROP_EVICTED = "evicted"
DROP_EXPIRED = "expired"

DropHook = Callable[[Group, str], None]


class Aggregator:
    """
    Buffers records per correlation key and emits one combined record per key.

    Thread safety: NOT thread-safe. One instance per log stream, driven from
    a single coroutine (see AggregatorWorker) — no locking needed.

    Args:
        max_groups:        Live group cap; LRU group is evicted beyond it.
        sweep_interval:    Run the stale sweep every N processed records.
        stale_timeout:     Seconds of silence after which a group is stale.
        completion_marker: Substring of the message that closes a group.
        correlation_field: Record field holding the correlation key.
        message_field:     Record field holding the log message.
        status_fields:     Fields carried into the combined record
                           (last non-None value wins, per field).
        on_drop:           Optional callback(group, reason) invoked after a
                           group is evicted ("evicted") or swept ("expired").
    """

    def __init__(
        self,
        max_groups: int = DEFAULT_MAX_GROUPS,
        sweep_interval: int = DEFAULT_SWEEP_INTERVAL,
        stale_timeout: float = DEFAULT_STALE_TIMEOUT,
        completion_marker: str = DEFAULT_COMPLETION_MARKER,
        correlation_field: str = DEFAULT_CORRELATION_FIELD,
        message_field: str = DEFAULT_MESSAGE_FIELD,
        status_fields: Iterable[str] = DEFAULT_STATUS_FIELDS,
        on_drop: DropHook | None = None,
    ) -> None:
        if max_groups < 1:
            raise ValueError(f"max_groups must be >= 1, got {max_groups}")
        if sweep_interval < 1:
            raise ValueError(f"sweep_interval must be >= 1, got {sweep_interval}")
        if stale_timeout <= 0:
            raise ValueError(f"stale_timeout must be > 0, got {stale_timeout}")
        if not completion_marker:
            raise ValueError("completion_marker must not be empty")

        self._groups: OrderedDict[str, Group] = OrderedDict()
        self._max_groups = max_groups
        self._sweep_interval = sweep_interval
        self._stale_timeout = stale_timeout
        self._marker = completion_marker
        self._key_field = correlation_field
        self._message_field = message_field
        self._status_fields = tuple(status_fields)
        self._on_drop = on_drop
        self._since_sweep = 0

        self.stats: dict[str, int] = {
            "records_processed": 0,
            "records_passed_through": 0,
            "records_suppressed": 0,
            "duplicates_suppressed": 0,
            "groups_created": 0,
            "groups_emitted": 0,
            "groups_evicted": 0,
            "groups_expired": 0,
            "sweeps_run": 0,
            "groups_active": 0,
        }
        logger.debug(
            "Aggregator initialised — max_groups=%d sweep_every=%d stale=%ss marker=%r",
            max_groups,
            sweep_interval,
            stale_timeout,
            completion_marker,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process(self, record: dict[str, Any], timestamp: float) -> Decision:
        """
        Apply one record and decide what, if anything, to forward.

        Returns:
            PassThrough(record) — no usable correlation key; record untouched.
            Suppress            — record buffered, or a duplicate completion.
            Emit(combined)      — this record completed its group.
        """
        self.stats["records_processed"] += 1

        # --- Count-driven stale sweep ---
        self._since_sweep += 1
        if self._since_sweep >= self._sweep_interval:
            self._since_sweep = 0
            self._sweep(timestamp)

        key = record.get(self._key_field) if isinstance(record, dict) else None
        if not isinstance(key, str) or not key:
            self.stats["records_passed_through"] += 1
            return PassThrough(record)

        message = self._message_of(record)
        is_complete = self._marker in message

        group = self._groups.get(key)
        if group is None:
            group = self._create(key, timestamp)
        else:
            group.last_seen = timestamp
            self._groups.move_to_end(key)
            if group.completed and is_complete:
                self.stats["records_suppressed"] += 1
                self.stats["duplicates_suppressed"] += 1
                logger.debug("Duplicate completion for %r suppressed", key)
                return SUPPRESS

        group.messages.append(message)
        for name in self._status_fields:
            value = record.get(name)
            if value is not None:
                group.latest_fields[name] = value

        if not is_complete:
            self.stats["records_suppressed"] += 1
            return SUPPRESS

        group.completed = True
        combined = self._combine(group)
        del self._groups[key]
        self.stats["groups_emitted"] += 1
        self.stats["groups_active"] = len(self._groups)
        logger.debug("Flushed %r (%d messages)", key, len(group.messages))
        return Emit(combined)

    def get(self, key: str) -> Group | None:
        """Return the live group for key without touching its recency."""
        return self._groups.get(key)

    def keys(self) -> list[str]:
        """Live keys, least-recently-touched first."""
        return list(self._groups)

    @property
    def active_count(self) -> int:
        return len(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    def __contains__(self, key: object) -> bool:
        return key in self._groups

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _message_of(self, record: dict[str, Any]) -> str:
        message = record.get(self._message_field)
        if message is None:
            return ""
        if not isinstance(message, str):
            return str(message)
        return message

    def _create(self, key: str, timestamp: float) -> Group:
        """Insert a new most-recent group, evicting the LRU one if full."""
        if len(self._groups) >= self._max_groups:
            evicted_key, evicted = self._groups.popitem(last=False)
            self.stats["groups_evicted"] += 1
            logger.warning(
                "Group cap %d reached — evicted %r (%d buffered messages dropped)",
                self._max_groups,
                evicted_key,
                len(evicted.messages),
            )
            self._notify_drop(evicted, DROP_EVICTED)

        group = Group(key=key, last_seen=timestamp)
        self._groups[key] = group
        self.stats["groups_created"] += 1
        self.stats["groups_active"] = len(self._groups)
        logger.debug("New group %r (total active: %d)", key, len(self._groups))
        return group

    def _combine(self, group: Group) -> dict[str, Any]:
        combined: dict[str, Any] = {
            self._key_field: group.key,
            self._message_field: "\n".join(group.messages),
        }
        for name in self._status_fields:
            if name in group.latest_fields:
                combined[name] = group.latest_fields[name]
        return combined

    def _sweep(self, now: float) -> None:
        """Drop every group whose last_seen is more than stale_timeout ago."""
        self.stats["sweeps_run"] += 1
        stale_keys = [
            k for k, g in self._groups.items()
            if now - g.last_seen > self._stale_timeout
        ]
        for key in stale_keys:
            group = self._groups.pop(key)
            self._notify_drop(group, DROP_EXPIRED)

        self.stats["groups_expired"] += len(stale_keys)
        self.stats["groups_active"] = len(self._groups)
        if stale_keys:
            logger.info(
                "Expired %d stale groups (timeout=%ss, remaining active: %d)",
                len(stale_keys),
                self._stale_timeout,
                len(self._groups),
            )

    def _notify_drop(self, group: Group, reason: str) -> None:
        if self._on_drop is None:
            return
        try:
            self._on_drop(group, reason)
        except Exception:
            logger.exception("on_drop hook failed for %r (%s)", group.key, reason)
