import json
import logging

from fastapi.testclient import TestClient

from swarm_mcp.logging_config import JsonFormatter
from swarm_mcp.server import app


def test_health_endpoint():
    client = TestClient(app)
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"
    assert resp.headers.get("X-Request-ID")


def test_metrics_endpoint_counts_requests():
    client = TestClient(app)
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    data = resp.json()
    # Two requests so far: /health and /metrics
    assert data.get("requests", 0) >= 2
    assert data["sse_sessions"] == {"opened": 0, "active": 0}
    assert len(data["recent_request_durations_ms"]) >= 1


def test_json_formatter_includes_extras():
    record = logging.LogRecord("swarm_mcp.test", logging.WARNING, __file__, 1, "tool=%s failed", ("upload_data",), None)
    record.tool = "upload_data"
    record.transport = "stdio"
    payload = json.loads(JsonFormatter().format(record))
    assert payload == {
        "level": "WARNING",
        "message": "tool=upload_data failed",
        "name": "swarm_mcp.test",
        "tool": "upload_data",
        "transport": "stdio",
    }
