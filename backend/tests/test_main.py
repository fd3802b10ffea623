from fastapi.testclient import TestClient

from auth_service.main import app


def test_health_check_runs_lifespan():
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_auth_routes_are_mounted():
    paths = set(app.openapi()["paths"])

    assert {"/api/auth/token", "/api/auth/refresh", "/api/auth/session"} <= paths
