"""
api/serializers.py

Response models for the HTTP API.
"""

from __future__ import annotations

from pydantic import BaseModel

from ..config import Settings


class StatsResponse(BaseModel):
    ingest: dict[str, int] = {}
    aggregator: dict[str, int] = {}
    queues: dict[str, int] = {}


class ConfigResponse(BaseModel):
    correlation_field: str
    message_field: str
    status_fields: list[str]
    completion_marker: str
    max_groups: int
    sweep_interval_records: int
    stale_timeout_seconds: float

    @classmethod
    def from_settings(cls, s: Settings) -> "ConfigResponse":
        return cls(
            correlation_field=s.CORRELATION_FIELD,
            message_field=s.MESSAGE_FIELD,
            status_fields=list(s.STATUS_FIELDS),
            completion_marker=s.COMPLETION_MARKER,
            max_groups=s.MAX_GROUPS,
            sweep_interval_records=s.SWEEP_INTERVAL_RECORDS,
            stale_timeout_seconds=s.STALE_TIMEOUT_SECONDS,
        )


class IngestResponse(BaseModel):
    accepted: int
