"""
tests/test_api_routes.py -- Integration tests for the auth and user API routes.

These tests exercise the full stack: FastAPI routing -> dependency injection
-> AuthService -> stores -> response model serialization, so the error
envelope, cookies and status codes are checked as a client sees them.

Coverage:
  - Register 201 / duplicate 409 / validation 400 with field
  - Login 200 sets cookie + no-store; bad credentials 401 with one message
  - Cookie and Bearer sessions both reach /auth/me; logout ends the session
  - Forgot-password 202 with identical bodies; reset with emailed token
  - Profile update and password change
  - Admin routes: 401 without session, 403 below the required role
  - Login rate limit: 429 with Retry-After

Fixtures used (from conftest.py):
  - api_client: (client, service, outbox) -- TestClient over an isolated service
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.models import Role
from auth.service import RESET_ACKNOWLEDGEMENT
from conftest import seed_user

PASSWORD = "Secret123"
STRONG = "N3w-Secret!"


def _register(client: TestClient, email: str = "jane@example.com", password: str = PASSWORD):
    return client.post("/api/v1/auth/register", json={"name": "Jane Doe", "email": email, "password": password})


def _login(client: TestClient, email: str = "jane@example.com", password: str = PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


class TestRegister:
    def test_register_created(self, api_client) -> None:
        client, _service, _outbox = api_client
        resp = _register(client, email="Jane@Example.com")
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["email"] == "jane@example.com"
        assert data["role"] == "staff"
        assert data["initials"] == "JD"
        assert "password_hash" not in data

    def test_register_duplicate(self, api_client) -> None:
        client, _service, _outbox = api_client
        _register(client)
        resp = _register(client, email="JANE@example.com")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "duplicate_email"

    def test_register_validation_names_field(self, api_client) -> None:
        client, _service, _outbox = api_client
        resp = _register(client, email="not-an-email")
        assert resp.status_code == 400
        assert resp.json()["error"]["field"] == "email"

    def test_register_weak_password(self, api_client) -> None:
        client, _service, _outbox = api_client
        resp = _register(client, password="password")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "weak_password"

    def test_wrong_body_type_is_422(self, api_client) -> None:
        client, _service, _outbox = api_client
        resp = client.post("/api/v1/auth/register", json={"name": ["x"], "email": 1, "password": None})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestLoginLogout:
    def test_login_sets_cookie_and_no_store(self, api_client) -> None:
        client, _service, _outbox = api_client
        _register(client)
        resp = _login(client, email="JANE@EXAMPLE.COM")
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["user"]["email"] == "jane@example.com"
        assert data["expires_in"] == 8 * 3600
        assert resp.headers["Cache-Control"] == "no-store"
        assert client.cookies.get("edap_session") == data["token"]
        assert "httponly" in resp.headers["set-cookie"].lower()

    def test_bad_credentials_share_one_response(self, api_client) -> None:
        client, _service, _outbox = api_client
        _register(client)
        unknown = _login(client, email="nobody@example.com")
        wrong = _login(client, password="Wrong1234")
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()
        assert unknown.json()["error"]["message"] == "Invalid email or password."

    def test_missing_fields(self, api_client) -> None:
        client, _service, _outbox = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "jane@example.com"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "missing_fields"

    def test_inactive_account_is_403(self, api_client) -> None:
        client, service, _outbox = api_client
        _register(client)
        service.set_active("jane@example.com", False)
        resp = _login(client)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "account_inactive"

    def test_me_with_cookie_then_logout(self, api_client) -> None:
        client, _service, _outbox = api_client
        _register(client)
        _login(client)
        assert client.get("/api/v1/auth/me").json()["email"] == "jane@example.com"
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        client.cookies.clear()
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_me_with_bearer(self, api_client) -> None:
        client, service, _outbox = api_client
        _register(client)
        token = _login(client).json()["token"]
        client.cookies.clear()
        headers = {"Authorization": f"Bearer {token}"}
        assert client.get("/api/v1/auth/me", headers=headers).status_code == 200
        client.post("/api/v1/auth/logout", headers=headers)
        assert service.resolve_session(token) is None
        resp = client.get("/api/v1/auth/me", headers=headers)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "not_authenticated"

    def test_logout_without_session(self, api_client) -> None:
        client, _service, _outbox = api_client
        assert client.post("/api/v1/auth/logout").status_code == 200


class TestPasswordReset:
    def test_forgot_password_is_indistinguishable(self, api_client) -> None:
        client, _service, outbox = api_client
        _register(client)
        known = client.post("/api/v1/auth/forgot-password", json={"email": "jane@example.com"})
        unknown = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@example.com"})
        assert known.status_code == unknown.status_code == 202
        assert known.json() == unknown.json() == {"message": RESET_ACKNOWLEDGEMENT}
        assert len(outbox.sent) == 1

    def test_reset_flow(self, api_client) -> None:
        client, _service, outbox = api_client
        _register(client)
        client.post("/api/v1/auth/forgot-password", json={"email": "jane@example.com"})
        token = outbox.last_token()
        assert client.get("/api/v1/auth/reset-password", params={"token": token}).json() == {"valid": True}

        body = {"token": token, "password": STRONG, "confirm_password": STRONG}
        assert client.post("/api/v1/auth/reset-password", json=body).status_code == 200
        assert _login(client, password=STRONG).status_code == 200

        again = client.post("/api/v1/auth/reset-password", json=body)
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "invalid_or_expired_token"
        assert client.get("/api/v1/auth/reset-password", params={"token": token}).json() == {"valid": False}

    def test_reset_mismatch(self, api_client) -> None:
        client, _service, outbox = api_client
        _register(client)
        client.post("/api/v1/auth/forgot-password", json={"email": "jane@example.com"})
        body = {"token": outbox.last_token(), "password": STRONG, "confirm_password": "Different-1!"}
        resp = client.post("/api/v1/auth/reset-password", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == {
            "code": "password_mismatch",
            "message": "Passwords do not match.",
            "field": "confirm_password",
        }


class TestProfile:
    def test_profile_requires_session(self, api_client) -> None:
        client, _service, _outbox = api_client
        assert client.patch("/api/v1/profile", json={"name": "Jane"}).status_code == 401

    def test_update_profile(self, api_client) -> None:
        client, _service, _outbox = api_client
        _register(client)
        _login(client)
        resp = client.patch("/api/v1/profile", json={"name": "Jane Q. Doe", "department": "Finance"})
        assert resp.status_code == 200, resp.text
        assert resp.json()["department"] == "Finance"
        assert resp.json()["display_name"] == "Jane Q. Doe"

    def test_change_password(self, api_client) -> None:
        client, _service, _outbox = api_client
        _register(client)
        _login(client)
        wrong = client.post(
            "/api/v1/profile/password",
            json={"current_password": "Wrong1234", "new_password": STRONG, "confirm_password": STRONG},
        )
        assert wrong.status_code == 400
        assert wrong.json()["error"]["code"] == "current_password_incorrect"

        ok = client.post(
            "/api/v1/profile/password",
            json={"current_password": PASSWORD, "new_password": STRONG, "confirm_password": STRONG},
        )
        assert ok.status_code == 200
        client.cookies.clear()
        assert _login(client, password=STRONG).status_code == 200


class TestAdmin:
    def test_list_users_requires_director(self, api_client) -> None:
        client, service, _outbox = api_client
        assert client.get("/api/v1/admin/users").status_code == 401

        seed_user(service, "Max Manager", "max@example.com", PASSWORD, Role.MANAGER)
        _login(client, email="max@example.com")
        resp = client.get("/api/v1/admin/users")
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "not_authorized"

        service.update_role("max@example.com", Role.DIRECTOR)
        resp = client.get("/api/v1/admin/users")
        assert resp.status_code == 200
        assert [u["email"] for u in resp.json()] == ["max@example.com"]

    def test_executive_patches_user(self, api_client) -> None:
        client, service, _outbox = api_client
        seed_user(service, "Eve Exec", "eve@example.com", PASSWORD, Role.EXECUTIVE)
        _register(client)
        jane_token = _login(client).json()["token"]
        client.cookies.clear()
        _login(client, email="eve@example.com")

        resp = client.patch("/api/v1/admin/users/Jane@Example.com", json={"role": "manager"})
        assert resp.status_code == 200, resp.text
        assert resp.json()["role"] == "manager"

        resp = client.patch("/api/v1/admin/users/jane@example.com", json={"is_active": False})
        assert resp.json()["is_active"] is False
        assert service.resolve_session(jane_token) is None

    def test_patch_rejects_unknown_role_and_user(self, api_client) -> None:
        client, service, _outbox = api_client
        seed_user(service, "Eve Exec", "eve@example.com", PASSWORD, Role.EXECUTIVE)
        _register(client)
        _login(client, email="eve@example.com")
        bad_role = client.patch("/api/v1/admin/users/jane@example.com", json={"role": "admin"})
        assert bad_role.status_code == 400
        assert bad_role.json()["error"]["field"] == "role"
        ghost = client.patch("/api/v1/admin/users/ghost@example.com", json={"is_active": False})
        assert ghost.status_code == 404

    def test_executive_cannot_deactivate_self(self, api_client) -> None:
        client, service, _outbox = api_client
        seed_user(service, "Eve Exec", "eve@example.com", PASSWORD, Role.EXECUTIVE)
        _login(client, email="eve@example.com")
        resp = client.patch("/api/v1/admin/users/eve@example.com", json={"is_active": False})
        assert resp.status_code == 400
        assert service.user_has_role("eve@example.com", Role.EXECUTIVE)

    def test_director_cannot_patch(self, api_client) -> None:
        client, service, _outbox = api_client
        seed_user(service, "Dana Director", "dana@example.com", PASSWORD, Role.DIRECTOR)
        _register(client)
        _login(client, email="dana@example.com")
        resp = client.patch("/api/v1/admin/users/jane@example.com", json={"role": "executive"})
        assert resp.status_code == 403


class TestRateLimit:
    def test_login_is_rate_limited(self, api_client) -> None:
        client, _service, _outbox = api_client
        statuses = [_login(client, email="nobody@example.com").status_code for _ in range(11)]
        assert statuses[:10] == [401] * 10
        assert statuses[10] == 429
        resp = _login(client, email="nobody@example.com")
        assert resp.json()["error"]["code"] == "rate_limited"
        assert "Retry-After" in resp.headers
