"""Integration tests for rollbar_secrets/main.py via ASGI transport."""

import httpx
import pytest

from rollbar_secrets.backend.factory import get_backend, get_lease_manager
from rollbar_secrets.errors import UpstreamError
from rollbar_secrets.main import app
from rollbar_secrets.runtime.leases import LeaseManager


@pytest.fixture
def app_client(backend, storage):
    """httpx AsyncClient wired to the FastAPI app with a mocked Rollbar client."""
    manager = LeaseManager(backend, storage, default_ttl=300, max_ttl=1000)
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_lease_manager] = lambda: manager
    transport = httpx.ASGITransport(app=app)
    client = httpx.AsyncClient(transport=transport, base_url="http://test")
    yield client
    app.dependency_overrides.clear()


async def _configure(app_client):
    resp = await app_client.post("/v1/config", json={"account_access_token": "acct-token"})
    assert resp.status_code == 204
    resp = await app_client.post(
        "/v1/roles/r1",
        json={"project_id": 42, "project_access_token_scopes": "read"},
    )
    assert resp.status_code == 204


class TestHealthEndpoint:

    async def test_health(self, app_client):
        resp = await app_client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert "X-Request-Id" in resp.headers


class TestConfigEndpoints:

    async def test_read_absent_config_is_empty(self, app_client):
        resp = await app_client.get("/v1/config")
        assert resp.status_code == 200
        assert resp.json() == {"data": {"account_access_token": ""}}

    async def test_write_and_read(self, app_client):
        await app_client.post("/v1/config", json={"account_access_token": "acct-token"})
        resp = await app_client.get("/v1/config")
        assert resp.json()["data"]["account_access_token"] == "acct-token"

    async def test_create_without_token_is_400(self, app_client):
        resp = await app_client.post("/v1/config", json={})
        assert resp.status_code == 400
        assert "Account Access Token" in resp.json()["error"]

    async def test_delete(self, app_client):
        await app_client.post("/v1/config", json={"account_access_token": "acct-token"})
        resp = await app_client.delete("/v1/config")
        assert resp.status_code == 204
        resp = await app_client.get("/v1/config")
        assert resp.json()["data"]["account_access_token"] == ""


class TestRoleEndpoints:

    async def test_write_read_list_delete(self, app_client):
        await _configure(app_client)

        resp = await app_client.get("/v1/roles/r1")
        assert resp.status_code == 200
        assert resp.json()["data"] == {
            "project_id": 42,
            "project_access_token_scopes": "read",
            "ttl": 3600,
            "max_ttl": 7200,
        }

        resp = await app_client.get("/v1/roles")
        assert resp.json() == {"data": {"keys": ["r1"]}}

        resp = await app_client.delete("/v1/roles/r1")
        assert resp.status_code == 204
        resp = await app_client.get("/v1/roles/r1")
        assert resp.status_code == 404

    async def test_partial_update(self, app_client):
        await _configure(app_client)
        resp = await app_client.post("/v1/roles/r1", json={"ttl": "30m"})
        assert resp.status_code == 204
        data = (await app_client.get("/v1/roles/r1")).json()["data"]
        assert data["ttl"] == 1800
        assert data["project_id"] == 42
        assert data["project_access_token_scopes"] == "read"

    async def test_ttl_over_max_is_400(self, app_client):
        resp = await app_client.post("/v1/roles/r1", json={"project_id": 42, "ttl": 10, "max_ttl": 5})
        assert resp.status_code == 400
        assert resp.json() == {"error": "ttl cannot be greater than max_ttl"}

    async def test_missing_project_id_is_400(self, app_client):
        resp = await app_client.post("/v1/roles/r1", json={})
        assert resp.status_code == 400


class TestTokenLifecycle:

    async def test_issue_renew_revoke(self, app_client, rollbar_client):
        await _configure(app_client)

        resp = await app_client.post("/v1/projectaccesstoken/r1")
        assert resp.status_code == 200
        body = resp.json()
        assert body["data"] == {"project_access_token": "abc123"}
        assert body["renewable"] is True
        # Role default ttl (3600s) wins over the runtime default
        assert 3590 <= body["lease_duration"] <= 3600
        lease_id = body["lease_id"]

        resp = await app_client.get(f"/v1/sys/leases/{lease_id}")
        assert resp.status_code == 200
        assert resp.json()["data"]["role"] == "r1"
        assert "project_access_token" not in resp.json()["data"]

        resp = await app_client.post("/v1/sys/leases/renew", json={"lease_id": lease_id, "increment": "1m"})
        assert resp.status_code == 200
        assert 0 < resp.json()["lease_duration"] <= 60

        resp = await app_client.post("/v1/sys/leases/revoke", json={"lease_id": lease_id})
        assert resp.status_code == 204
        rollbar_client.delete_project_access_token.assert_called_once_with(42, "abc123")

        resp = await app_client.get("/v1/sys/leases")
        assert resp.json() == {"data": {"keys": []}}

    async def test_get_also_issues(self, app_client):
        await _configure(app_client)
        resp = await app_client.get("/v1/projectaccesstoken/r1")
        assert resp.status_code == 200

    async def test_unknown_role_is_404(self, app_client, rollbar_client):
        await _configure(app_client)
        resp = await app_client.post("/v1/projectaccesstoken/ghost")
        assert resp.status_code == 404
        rollbar_client.create_project_access_token.assert_not_called()

    async def test_missing_config_is_500(self, app_client):
        await app_client.post("/v1/roles/r1", json={"project_id": 42})
        resp = await app_client.post("/v1/projectaccesstoken/r1")
        assert resp.status_code == 500
        assert "nil" in resp.json()["error"]

    async def test_upstream_failure_is_502_with_cause(self, app_client, rollbar_client):
        await _configure(app_client)
        rollbar_client.create_project_access_token.side_effect = UpstreamError(
            "status: 401, body: invalid token", status_code=401
        )
        resp = await app_client.post("/v1/projectaccesstoken/r1")
        assert resp.status_code == 502
        assert "status: 401, body: invalid token" in resp.json()["error"]

    async def test_failed_revoke_keeps_lease(self, app_client, rollbar_client):
        await _configure(app_client)
        lease_id = (await app_client.post("/v1/projectaccesstoken/r1")).json()["lease_id"]
        rollbar_client.delete_project_access_token.side_effect = UpstreamError("status: 500, body: x")

        resp = await app_client.post("/v1/sys/leases/revoke", json={"lease_id": lease_id})
        assert resp.status_code == 502

        resp = await app_client.get(f"/v1/sys/leases/{lease_id}")
        assert resp.json()["data"]["revoke_attempts"] == 1

    async def test_unknown_lease_is_404(self, app_client):
        resp = await app_client.post("/v1/sys/leases/renew", json={"lease_id": "nope"})
        assert resp.status_code == 404

    async def test_tidy(self, app_client):
        resp = await app_client.post("/v1/sys/leases/tidy")
        assert resp.status_code == 200
        assert resp.json() == {"data": {"revoked": [], "failed": []}}

    async def test_lease_store_failure_revokes_token(self, app_client, rollbar_client, monkeypatch):
        await _configure(app_client)

        def disk_full(self, lease):
            raise OSError("disk full")

        monkeypatch.setattr(LeaseManager, "_save", disk_full)

        with pytest.raises(OSError, match="disk full"):
            await app_client.post("/v1/projectaccesstoken/r1")
        rollbar_client.create_project_access_token.assert_called_once()
        rollbar_client.delete_project_access_token.assert_called_once_with(42, "abc123")

    async def test_lease_store_failure_survives_failed_cleanup(self, app_client, rollbar_client, monkeypatch):
        await _configure(app_client)
        rollbar_client.delete_project_access_token.side_effect = UpstreamError("status: 500, body: x")

        def disk_full(self, lease):
            raise OSError("disk full")

        monkeypatch.setattr(LeaseManager, "_save", disk_full)

        with pytest.raises(OSError, match="disk full"):
            await app_client.post("/v1/projectaccesstoken/r1")
        rollbar_client.delete_project_access_token.assert_called_once()


class TestStrictRequestTypes:

    @pytest.mark.parametrize("body", [
        {"project_id": True},
        {"project_id": 42, "ttl": True},
        {"project_id": 42, "max_ttl": False},
    ])
    async def test_booleans_are_rejected(self, app_client, body):
        resp = await app_client.post("/v1/roles/r1", json=body)
        assert resp.status_code == 422
        resp = await app_client.get("/v1/roles/r1")
        assert resp.status_code == 404

    async def test_bool_increment_is_rejected(self, app_client):
        resp = await app_client.post("/v1/sys/leases/renew", json={"lease_id": "x", "increment": True})
        assert resp.status_code == 422

    async def test_corrupt_role_is_500_with_message(self, app_client, storage):
        storage.put("roles/r1", b'{"name": "r1"}')
        resp = await app_client.get("/v1/roles/r1")
        assert resp.status_code == 500
        assert "error reading role 'r1'" in resp.json()["error"]
