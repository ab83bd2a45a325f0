"""
API endpoint tests.

Tests cover:
- PUT /api/v1/deployments/{name}/spec - create and replace specs
- GET /api/v1/deployments[/{name}[/plan|/events]] - read access
- DELETE /api/v1/deployments/{name}
- GET /ready and /health

The application runs without its lifespan; module globals are replaced
with in-memory doubles.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

import kubarango.main as main
from kubarango.modules.api.models import Action, ActionType, ServerGroup, new_plan

from conftest import InMemoryStatusStore


@pytest.fixture
def store(monkeypatch):
    store = InMemoryStatusStore()
    monkeypatch.setattr(main, "store", store)
    return store


@pytest.fixture
def events(monkeypatch):
    events = AsyncMock()
    events.list_events.return_value = [{"type": "Normal", "reason": "PodCreated"}]
    monkeypatch.setattr(main, "events", events)
    return events


@pytest.fixture
def operator(monkeypatch):
    operator = AsyncMock()
    operator.deployments = ["db"]
    monkeypatch.setattr(main, "operator", operator)
    return operator


@pytest.fixture
def client(store, events):
    return TestClient(main.app)


SPEC = {"mode": "Single", "image": "arangodb/arangodb:3.11"}


class TestPutSpec:
    def test_create(self, client, store):
        response = client.put("/api/v1/deployments/db/spec", json=SPEC)

        assert response.status_code == 201
        assert response.json()["version"] == 1
        assert store.get("db").spec.image == "arangodb/arangodb:3.11"

    def test_create_syncs_operator(self, client, operator):
        client.put("/api/v1/deployments/db/spec", json=SPEC)
        operator.sync.assert_awaited_once()

    def test_replace(self, client, store):
        client.put("/api/v1/deployments/db/spec", json=SPEC)

        response = client.put(
            "/api/v1/deployments/db/spec", json={**SPEC, "image": "arangodb/arangodb:3.12"}
        )

        assert response.status_code == 200
        assert response.json()["version"] == 2
        assert store.get("db").spec.image == "arangodb/arangodb:3.12"

    def test_out_of_bounds_count(self, client, store):
        spec = {"coordinators": {"count": 6, "min_count": 2, "max_count": 5}}

        response = client.put("/api/v1/deployments/db/spec", json=spec)

        assert response.status_code == 422
        assert "maxCount" in response.json()["error"]
        assert store.records == {}

    def test_invalid_name(self, client):
        response = client.put("/api/v1/deployments/Bad_Name/spec", json=SPEC)
        assert response.status_code == 400

    def test_conflict(self, client, store):
        client.put("/api/v1/deployments/db/spec", json=SPEC)
        store.conflicts_to_inject = 1

        response = client.put("/api/v1/deployments/db/spec", json=SPEC)

        assert response.status_code == 409


class TestReadEndpoints:
    def test_list(self, client):
        client.put("/api/v1/deployments/b/spec", json=SPEC)
        client.put("/api/v1/deployments/a/spec", json=SPEC)

        response = client.get("/api/v1/deployments")

        assert response.json() == {"deployments": ["a", "b"]}

    def test_get_unknown(self, client):
        response = client.get("/api/v1/deployments/missing")
        assert response.status_code == 404
        assert "missing" in response.json()["error"]

    def test_get(self, client):
        client.put("/api/v1/deployments/db/spec", json=SPEC)

        body = client.get("/api/v1/deployments/db").json()

        assert body["name"] == "db"
        assert body["spec"]["mode"] == "Single"
        assert body["status"]["plan"] == []

    def test_plan(self, client, store):
        client.put("/api/v1/deployments/db/spec", json=SPEC)
        store.records["db"].status.plan = new_plan(
            Action.new(ActionType.ROTATE_MEMBER, ServerGroup.SINGLE, "SNGL-1", "Restart is pending")
        )

        plan = client.get("/api/v1/deployments/db/plan").json()["plan"]

        assert [a["type"] for a in plan] == ["RotateMember"]
        assert plan[0]["member_id"] == "SNGL-1"

    def test_events(self, client, events):
        client.put("/api/v1/deployments/db/spec", json=SPEC)

        response = client.get("/api/v1/deployments/db/events?limit=5")

        assert response.json()["events"][0]["reason"] == "PodCreated"
        events.list_events.assert_awaited_once_with("db", 5)


class TestDelete:
    def test_delete(self, client, operator):
        client.put("/api/v1/deployments/db/spec", json=SPEC)

        response = client.delete("/api/v1/deployments/db")

        assert response.status_code == 204
        assert client.get("/api/v1/deployments/db").status_code == 404
        assert operator.sync.await_count == 2

    def test_delete_unknown(self, client):
        assert client.delete("/api/v1/deployments/missing").status_code == 404


class TestProbes:
    def test_not_ready_without_operator(self, client, monkeypatch):
        monkeypatch.setattr(main, "operator", None)
        response = client.get("/ready")
        assert response.status_code == 503

    def test_ready(self, client, operator):
        response = client.get("/ready")
        assert response.json() == {"status": "ready", "deployments": 1}

    def test_health_without_redis(self, client, monkeypatch):
        monkeypatch.setattr(main, "redis_client", None)
        response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["redis"] == "disconnected"

    def test_healthy(self, client, operator, monkeypatch):
        redis_client = MagicMock()
        redis_client.ping = AsyncMock(return_value=True)
        monkeypatch.setattr(main, "redis_client", redis_client)

        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["deployments"] == 1

    def test_uninitialized_store(self, monkeypatch):
        monkeypatch.setattr(main, "store", None)
        response = TestClient(main.app).get("/api/v1/deployments")
        assert response.status_code == 503
