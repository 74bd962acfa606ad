import pytest
from fastapi.testclient import TestClient

from takelog.api.deps import get_engine
from takelog.main import app


@pytest.fixture
def client(engine):
    """FastAPI test client wired to a fresh in-memory engine."""
    app.dependency_overrides[get_engine] = lambda: engine
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def api_project(client):
    """Create a project over HTTP and return its id."""

    def _create(name: str = "Night Shoot", **settings) -> str:
        response = client.post("/api/projects", json={"name": name, "settings": settings})
        assert response.status_code == 201
        return response.json()["data"]["id"]

    return _create
