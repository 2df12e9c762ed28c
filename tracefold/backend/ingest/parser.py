"""
ingest/parser.py

Converts one raw log line into a TimedRecord.

Design principles:
  - Called from the tailer thread (not asyncio) and from the HTTP route.
    It must be synchronous and fast — no I/O, no blocking calls.
  - Returns None for anything that is not a JSON object (blank lines,
    truncated writes, plain-text banners), so the caller can count and
    skip it. Never raises on line content.

Accepted shapes:
  {"traceId": "abc", "message": "handler finished", "status": 200}
  2024/05/01 12:00:00 {"traceId": "abc", "message": "request completed"}

The second form is what a Go `log.Logger` with LstdFlags writes to container
stdout; the timestamp prefix is stripped and ignored.
"""

from __future__ import annotations

import json
import logging
import re
import time

from ..models import TimedRecord

logger = logging.getLogger(__name__)

# "YYYY/MM/DD HH:MM:SS " with optional microseconds, as written by LstdFlags.
_STD_PREFIX = re.compile(r"^\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2}(?:\.\d+)? ")


def strip_prefix(line: str) -> str:
    """Remove the trailing newline and a leading LstdFlags timestamp, if any."""
    stripped = line.rstrip("\r\n")
    return _STD_PREFIX.sub("", stripped, count=1)


def parse_line(line: str, received_at: float | None = None) -> TimedRecord | None:
    """
    Parse a single log line.

    Args:
        line:        Raw line, with or without trailing newline.
        received_at: Ingest timestamp; defaults to time.time().

    Returns:
        TimedRecord on success, None if the line is not a JSON object.
    """
    body = strip_prefix(line).strip()
    if not body:
        return None

    try:
        fields = json.loads(body)
    except ValueError:
        logger.debug("Unparseable line skipped: %.80r", body)
        return None

    if not isinstance(fields, dict):
        logger.debug("Non-object JSON skipped: %.80r", body)
        return None

    return TimedRecord(
        timestamp=received_at if received_at is not None else time.time(),
        fields=fields,
    )
