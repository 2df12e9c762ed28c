"""
tests/test_api.py

FastAPI route tests using TestClient (synchronous).
The input queue is a plain asyncio.Queue installed on the pipeline module,
so no worker or tailer is running.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from tracefold.backend import pipeline
from tracefold.backend.api.main import create_app, set_aggregator_stats
from tracefold.backend.api.routes.config import set_active_config
from tracefold.backend.api.serializers import ConfigResponse
from tracefold.backend.metrics import METRICS


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def client(monkeypatch):
    METRICS.reset_all()
    monkeypatch.setattr(pipeline, "input_queue", asyncio.Queue(maxsize=100))
    monkeypatch.setattr(pipeline, "output_queue", asyncio.Queue(maxsize=100))
    set_aggregator_stats(lambda: {"groups_active": 3, "groups_emitted": 7})
    with TestClient(create_app()) as c:
        yield c


def queued() -> list:
    items = []
    while not pipeline.input_queue.empty():
        items.append(pipeline.input_queue.get_nowait())
    return items


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# POST /api/ingest
# ---------------------------------------------------------------------------

class TestIngest:

    def test_single_object(self, client):
        resp = client.post("/api/ingest", json={"traceId": "abc", "message": "handler finished"})
        assert resp.status_code == 202
        assert resp.json() == {"accepted": 1}
        items = queued()
        assert [i.fields for i in items] == [{"traceId": "abc", "message": "handler finished"}]

    def test_list_of_objects(self, client):
        body = [
            {"traceId": "abc", "message": "handler finished"},
            {"traceId": "abc", "message": "request completed", "status": 200},
        ]
        resp = client.post("/api/ingest", json=body)
        assert resp.status_code == 202
        assert resp.json() == {"accepted": 2}
        assert [i.fields for i in queued()] == body
        assert METRICS.lines_received.value == 2

    @pytest.mark.parametrize("body", ["just text", 42, [1, 2], [{"a": 1}, "x"]])
    def test_non_object_rejected(self, client, body):
        resp = client.post("/api/ingest", json=body)
        assert resp.status_code == 422
        assert queued() == []

    def test_uninitialised_pipeline_returns_503(self, client, monkeypatch):
        monkeypatch.setattr(pipeline, "input_queue", None)
        resp = client.post("/api/ingest", json={"a": 1})
        assert resp.status_code == 503


# ---------------------------------------------------------------------------
# GET /api/stats
# ---------------------------------------------------------------------------

class TestStats:

    def test_stats_shape(self, client):
        client.post("/api/ingest", json={"a": 1})
        resp = client.get("/api/stats")
        assert resp.status_code == 200
        body = resp.json()
        assert body["aggregator"] == {"groups_active": 3, "groups_emitted": 7}
        assert body["ingest"]["lines_received"] == 1
        assert body["queues"] == {"input": 1, "output": 0}


# ---------------------------------------------------------------------------
# GET /api/config
# ---------------------------------------------------------------------------

class TestConfig:

    def test_returns_active_config(self, client):
        set_active_config(ConfigResponse(
            correlation_field="traceId",
            message_field="message",
            status_fields=["status"],
            completion_marker="request completed",
            max_groups=42,
            sweep_interval_records=10,
            stale_timeout_seconds=5.0,
        ))
        resp = client.get("/api/config")
        assert resp.status_code == 200
        body = resp.json()
        assert body["max_groups"] == 42
        assert body["status_fields"] == ["status"]
        assert body["completion_marker"] == "request completed"

    def test_config_is_read_only(self, client):
        resp = client.put("/api/config", json={"max_groups": 1})
        assert resp.status_code == 405
