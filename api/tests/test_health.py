from fastapi.testclient import TestClient


def test_health(client: TestClient) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["uptime_s"] >= 0


def test_public_config_lists_allowed_types(client: TestClient) -> None:
    response = client.get("/api/config")
    assert response.status_code == 200
    body = response.json()
    assert "pdf" in body["allowed_file_types"]
    assert body["max_upload_bytes"] > 0


def test_redis_health_reports_unavailable(client: TestClient) -> None:
    response = client.get("/api/health/redis")
    assert response.status_code == 503
    assert response.json() == {"success": False, "error": "Redis unavailable"}


def test_security_headers(client: TestClient) -> None:
    response = client.get("/api/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_unknown_route_uses_error_envelope(client: TestClient) -> None:
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.json()["success"] is False
