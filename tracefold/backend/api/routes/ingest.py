"""
api/routes/ingest.py

POST /api/ingest — push one JSON object, or a list of them, into the pipeline

Each object is queued as a TimedRecord exactly as if it had been read from
the tailed log file. Full queues drop their oldest item (safe_put).
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Body, HTTPException, status

from ... import pipeline
from ...metrics import METRICS
from ...models import TimedRecord
from ...pipeline import safe_put
from ..serializers import IngestResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ingest", tags=["ingest"])


@router.post("", response_model=IngestResponse, status_code=status.HTTP_202_ACCEPTED)
async def ingest(
    payload: dict[str, Any] | list[dict[str, Any]] = Body(...),
) -> IngestResponse:
    """Queue records for aggregation."""
    if pipeline.input_queue is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pipeline not initialised",
        )

    records = payload if isinstance(payload, list) else [payload]
    now = time.time()
    accepted = 0
    for fields in records:
        METRICS.lines_received.inc()
        METRICS.lines_parsed_ok.inc()
        if await safe_put(pipeline.input_queue, TimedRecord(timestamp=now, fields=fields)):
            accepted += 1

    logger.debug("Ingested %d/%d records over HTTP", accepted, len(records))
    return IngestResponse(accepted=accepted)
