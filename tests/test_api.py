"""
REST API tests.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import TIMEOUT
from leasegate.api.deps import get_store, validate_auth_config
from leasegate.config import Environment, settings
from leasegate.main import app


@pytest.fixture
async def client(store):
    """Async test client wired to the test store."""
    app.dependency_overrides[get_store] = lambda: store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_config_reports_timeout(client):
    response = await client.get("/v1/config")
    assert response.status_code == 200
    assert response.json()["lease_timeout_seconds"] == TIMEOUT.total_seconds()


@pytest.mark.asyncio
async def test_lease_lifecycle_over_http(client, clock):
    created = await client.post("/v1/leases", json={"title": "nightly-export"})
    assert created.status_code == 201
    body = created.json()
    assert body["title"] == "nightly-export"
    assert body["refresh_count"] == 0
    assert body["live"] is True
    lease_id = body["id"]

    clock.advance(60)
    refreshed = await client.post(f"/v1/leases/{lease_id}/heartbeat")
    assert refreshed.status_code == 200
    assert refreshed.json()["refresh_count"] == 1

    live = await client.get(f"/v1/leases/{lease_id}/live")
    assert live.json() == {"id": lease_id, "live": True}

    fetched = await client.get(f"/v1/leases/{lease_id}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == lease_id

    released = await client.delete(f"/v1/leases/{lease_id}")
    assert released.status_code == 204
    again = await client.delete(f"/v1/leases/{lease_id}")
    assert again.status_code == 204

    gone = await client.post(f"/v1/leases/{lease_id}/heartbeat")
    assert gone.status_code == 404
    missing = await client.get(f"/v1/leases/{lease_id}")
    assert missing.status_code == 404
    live = await client.get(f"/v1/leases/{lease_id}/live")
    assert live.json()["live"] is False


@pytest.mark.asyncio
async def test_sweep_endpoint(client, clock):
    await client.post("/v1/leases", json={"title": "a"})
    await client.post("/v1/leases", json={"title": "b"})
    clock.advance(TIMEOUT.total_seconds() + 1)

    response = await client.post("/v1/leases/sweep", json={})

    assert response.status_code == 200
    body = response.json()
    assert body["swept"] == 2
    assert {lease["title"] for lease in body["leases"]} == {"a", "b"}
    assert all(lease["live"] is False for lease in body["leases"])


@pytest.mark.asyncio
async def test_allocation_exhausted_maps_to_503(client, store):
    store.id_min_value, store.id_max_value = 1, 2
    await client.post("/v1/leases", json={"title": "a"})
    await client.post("/v1/leases", json={"title": "b"})

    response = await client.post("/v1/leases", json={"title": "c"})

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_api_key_required_when_not_insecure(client, monkeypatch):
    monkeypatch.setattr(settings, "allow_insecure_dev", False)
    monkeypatch.setattr(settings, "api_key", "secret-key")

    missing = await client.get("/v1/health")
    wrong = await client.get("/v1/health", headers={"X-API-Key": "nope"})
    bearer = await client.get("/v1/health", headers={"Authorization": "Bearer secret-key"})
    header = await client.get("/v1/health", headers={"X-API-Key": "secret-key"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert bearer.status_code == 200
    assert header.status_code == 200


def test_validate_auth_config_rejects_insecure_production(monkeypatch):
    monkeypatch.setattr(settings, "allow_insecure_dev", True)
    monkeypatch.setattr(settings, "env", Environment.PRODUCTION)

    with pytest.raises(RuntimeError):
        validate_auth_config()


def test_validate_auth_config_requires_key(monkeypatch):
    monkeypatch.setattr(settings, "allow_insecure_dev", False)
    monkeypatch.setattr(settings, "api_key", None)

    with pytest.raises(RuntimeError):
        validate_auth_config()
