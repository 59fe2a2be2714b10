from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_check(client: TestClient):
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["environment"] == "testing"
    assert body["version"] == "1.0.0"
    assert body["uptime"] >= 0


def test_liveness_and_readiness(client: TestClient):
    live = client.get("/health/live")
    ready = client.get("/health/ready")

    assert live.status_code == 200
    assert live.json()["status"] == "alive"
    assert ready.status_code == 200
    assert ready.json()["status"] == "ready"
    assert all(ready.json()["checks"].values())


def test_detailed_health_reports_task_statistics(make_client):
    with make_client(seed_sample_tasks=True) as client:
        resp = client.get("/health/detailed")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total_tasks"] == 4
    assert data["statistics"]["completed"] == 1
    assert "completionRate" in data["statistics"]


def test_metrics_are_prometheus_text(client: TestClient):
    client.post("/api/v1/tasks", json={"title": "Count me"})

    resp = client.get("/health/metrics")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert "# TYPE taskflow_tasks_total gauge" in resp.text
    assert "taskflow_tasks_total 1" in resp.text
    assert "taskflow_rate_limit_keys " in resp.text


def test_health_checks_are_not_rate_limited(make_client):
    client = make_client(global_rate_limit_max_requests=1)

    for _ in range(3):
        resp = client.get("/health/live")
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers
