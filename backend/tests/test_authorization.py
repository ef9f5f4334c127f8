"""
Authentication tests.

Verifies:
- Unauthenticated requests return 401
- Login issues a bearer token; bad credentials are refused
- Logout revokes the token
"""

import pytest

from tienda.models import SessionToken
from tienda.services import session_service
from tienda.time_utils import utcnow
from conftest import TEST_PASSWORD, auth_headers, get_auth_token


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/dashboard"),
            ("GET", "/api/categories"),
            ("POST", "/api/categories"),
            ("PUT", "/api/categories/1"),
            ("DELETE", "/api/categories/1"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/products/low-stock"),
            ("PUT", "/api/products/1"),
            ("POST", "/api/products/1/edit"),
            ("DELETE", "/api/products/1"),
            ("GET", "/api/customers"),
            ("POST", "/api/customers"),
            ("DELETE", "/api/customers/1"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales/new"),
            ("GET", "/api/sales/report"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/products", headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestSessions:
    def test_login_returns_token(self, client, user):
        resp = client.post("/api/auth/login", json={"username": "cajero", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        assert len(resp.json["token"]) == 64
        assert resp.json["user"]["username"] == "cajero"

    def test_login_by_email(self, client, user):
        assert get_auth_token(client, "cajero@tienda.local", TEST_PASSWORD)

    def test_wrong_password(self, client, user):
        resp = client.post("/api/auth/login", json={"username": "cajero", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_missing_credentials(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "cajero"})
        assert resp.status_code == 400

    def test_me(self, client, headers):
        resp = client.get("/api/auth/me", headers=headers)
        assert resp.status_code == 200
        assert resp.json["user"]["email"] == "cajero@tienda.local"

    def test_logout_revokes_token(self, client, headers):
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_expired_token_rejected(self, client, db_session, user):
        token = get_auth_token(client, "cajero", TEST_PASSWORD)
        db_session.query(SessionToken).update({"expires_at": utcnow()})
        db_session.commit()

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_deactivated_user_rejected(self, client, db_session, user):
        token = get_auth_token(client, "cajero", TEST_PASSWORD)
        user.is_active = False
        db_session.commit()

        with pytest.raises(session_service.AuthorizationError):
            session_service.validate_session(token)
