from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # In tests, neither Redis nor the database is configured
    assert data["checks"]["redis"] == "not_configured"
    assert data["checks"]["database"] == "not_configured"


def test_health_reports_queue_backlog(client: TestClient) -> None:
    client.post(
        "/v1/events/challenge-completed",
        json={"userId": 1, "challengeId": 2, "completionStatus": "success"},
    )
    data = client.get("/health").json()
    assert data["queues"]["challenge_completed"] == 1
    assert data["queues"]["challenge_completed.dead"] == 0


def test_ready_returns_200(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200
