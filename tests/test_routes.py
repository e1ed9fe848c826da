"""Tests for the HTTP surface: /authorize, health and operator endpoints."""

import pytest
from fastapi.testclient import TestClient

from harborlist.trust.auth import EdgeSecretGate
from harborlist.trust.authorizer import TokenAuthorizer
from harborlist.trust.main import create_app
from harborlist.trust.models import DomainId, EdgeSecret, SecretState
from harborlist.trust.routes import deps


@pytest.fixture
def client(authorizer, synchronizer):
    app = create_app()
    app.dependency_overrides[deps.get_authorizer] = lambda: authorizer
    app.dependency_overrides[deps.get_synchronizer] = lambda: synchronizer
    # No context manager: the lifespan (and init_deps) is not run
    return TestClient(app)


class TestAuthorizeEndpoint:
    def test_allow(self, client, make_token):
        response = client.post(
            "/authorize",
            json={"path": "/api/customer/listings"},
            headers={
                "Authorization": f"Bearer {make_token(DomainId.CUSTOMER)}",
                "X-Request-ID": "req-123",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["effect"] == "allow"
        assert data["context"]["domain_id"] == "customer"
        assert data["context"]["subject_id"] == "cust-0001"
        assert data["request_id"] == "req-123"
        assert data["cache_ttl"] > 0

    def test_domain_mismatch_is_generic_401(self, client, make_token):
        response = client.post(
            "/authorize",
            json={"path": "/api/admin/users"},
            headers={"Authorization": f"Bearer {make_token(DomainId.CUSTOMER)}"},
        )

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json() == {"detail": "Unauthorized"}

    def test_missing_token_is_401(self, client):
        response = client.post("/authorize", json={"path": "/api/customer/listings"})
        assert response.status_code == 401
        assert "malformed" not in response.text

    def test_unknown_path_is_401(self, client, make_token):
        response = client.post(
            "/authorize",
            json={"path": "/internal/metrics"},
            headers={"Authorization": f"Bearer {make_token(DomainId.STAFF)}"},
        )
        assert response.status_code == 401

    def test_edge_secret_header_forwarded(self, registry, verifiers, store, make_token):
        store.put_secret_state(SecretState(active=EdgeSecret(value="e" * 64)), 0)
        gated = TokenAuthorizer(
            registry, verifiers, edge_secret_gate=EdgeSecretGate(store), timeout_seconds=5.0
        )
        app = create_app()
        app.dependency_overrides[deps.get_authorizer] = lambda: gated
        client = TestClient(app)
        token = make_token(DomainId.STAFF)

        denied = client.post(
            "/authorize",
            json={"path": "/api/admin/users"},
            headers={"Authorization": f"Bearer {token}"},
        )
        allowed = client.post(
            "/authorize",
            json={"path": "/api/admin/users"},
            headers={"Authorization": f"Bearer {token}", "X-Auth-Secret": "e" * 64},
        )

        assert denied.status_code == 401
        assert allowed.status_code == 200

    def test_configured_edge_secret_header_forwarded(self, registry, verifiers, store, make_token):
        store.put_secret_state(SecretState(active=EdgeSecret(value="c" * 64)), 0)
        gated = TokenAuthorizer(
            registry,
            verifiers,
            edge_secret_gate=EdgeSecretGate(store, header="CF-Origin-Token"),
            timeout_seconds=5.0,
        )
        app = create_app()
        app.dependency_overrides[deps.get_authorizer] = lambda: gated
        client = TestClient(app)
        token = make_token(DomainId.STAFF)

        default_name = client.post(
            "/authorize",
            json={"path": "/api/admin/users"},
            headers={"Authorization": f"Bearer {token}", "X-Auth-Secret": "c" * 64},
        )
        configured_name = client.post(
            "/authorize",
            json={"path": "/api/admin/users"},
            headers={"Authorization": f"Bearer {token}", "CF-Origin-Token": "c" * 64},
        )

        assert default_name.status_code == 401
        assert configured_name.status_code == 200


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["details"]["domains"] == ["customer", "staff"]

    def test_ready_requires_committed_trust_state(self, client):
        before = client.get("/ready").json()
        assert before["status"] == "unhealthy"

        run = client.post("/sync/run")
        assert run.status_code == 200
        assert run.json()["outcome"] == "bootstrapped"

        after = client.get("/ready").json()
        assert after["status"] == "healthy"
        assert after["details"]["ranges_version"] == 1
        assert after["details"]["secret_version"] == 1
        assert "cache" in after["details"]


class TestSyncEndpoints:
    def test_status(self, client):
        client.post("/sync/run")
        data = client.get("/sync/status").json()
        assert data["ranges"]["version"] == 1
        assert data["secret_version"] == 1
        assert data["stalled"] is False

    def test_rotate_secret_never_returns_secret(self, client, store):
        client.post("/sync/run")
        response = client.post("/sync/rotate-secret")

        assert response.status_code == 200
        assert response.json()["outcome"] == "rotated"
        assert store.get_secret_state().active.value not in response.text


def test_metrics_endpoint(client, make_token):
    client.post(
        "/authorize",
        json={"path": "/api/customer/listings"},
        headers={"Authorization": f"Bearer {make_token(DomainId.CUSTOMER)}"},
    )
    response = client.get("/metrics/")
    assert response.status_code == 200
    assert "harborlist_authorizer_decisions_total" in response.text


def test_uninitialized_deps_raise():
    with pytest.raises(RuntimeError):
        deps.get_synchronizer()
