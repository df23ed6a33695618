from fastapi.testclient import TestClient

from switchboard.api.app import create_app


def test_health_endpoint() -> None:
    client = TestClient(create_app())
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_openapi_lists_switchboard_routes() -> None:
    client = TestClient(create_app())
    paths = client.get("/openapi.json").json()["paths"]
    assert "/api/v1/servers/{server_id}/restart" in paths
    assert "/api/v1/models/resolve" in paths
