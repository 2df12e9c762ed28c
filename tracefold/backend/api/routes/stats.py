"""
api/routes/stats.py

GET /api/stats — live ingest, aggregator and queue counters
"""

from __future__ import annotations

from fastapi import APIRouter

from ... import pipeline
from ...metrics import METRICS
from ..serializers import StatsResponse

router = APIRouter(prefix="/stats", tags=["stats"])


def _get_aggregator_stats() -> dict:
    from ..main import get_aggregator_stats
    return get_aggregator_stats()


@router.get("", response_model=StatsResponse)
async def get_stats() -> StatsResponse:
    """Return the current pipeline counters."""
    return StatsResponse(
        ingest=METRICS.as_dict(),
        aggregator=_get_aggregator_stats(),
        queues=pipeline.queue_sizes(),
    )
