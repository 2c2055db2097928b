"""
PayDesk - Authentication API Tests

Registration, login, token handling and rate limiting over HTTP.
"""

import time
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from pydantic import ValidationError as PydanticValidationError

from main import create_app, seed_default_admin
from paydesk.config import Settings
from paydesk.middleware.security import RateLimiter
from paydesk.utils.security import create_access_token


API = "/api/v1"


def register_payload(**overrides) -> dict:
    payload = {
        "name": "Priya Nair",
        "email": "priya@example.com",
        "password": "secret123",
        "department": "Sales",
        "basic_salary": "35000.00",
    }
    payload.update(overrides)
    return payload


class TestRegistration:
    """Test cases for POST /auth/register."""

    @pytest.mark.asyncio
    async def test_register_employee(self, client):
        response = await client.post(f"{API}/auth/register", json=register_payload())

        assert response.status_code == 201
        data = response.json()
        assert data["user"]["email"] == "priya@example.com"
        assert data["user"]["role"] == "employee"
        assert data["user"]["employee_code"] == "EMP0001"
        assert data["tokens"]["token_type"] == "bearer"
        assert data["tokens"]["access_token"]
        assert "hashed_password" not in data["user"]

    @pytest.mark.asyncio
    async def test_anonymous_cannot_register_admin(self, client):
        response = await client.post(f"{API}/auth/register", json=register_payload(role="admin"))

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "INSUFFICIENT_PERMISSIONS"

    @pytest.mark.asyncio
    async def test_employee_cannot_register_admin(self, client, employee_headers):
        response = await client.post(
            f"{API}/auth/register",
            json=register_payload(role="admin"),
            headers=employee_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_can_register_admin(self, client, admin_headers):
        response = await client.post(
            f"{API}/auth/register",
            json=register_payload(email="second-admin@example.com", role="admin"),
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["user"]["role"] == "admin"
        assert response.json()["user"]["employee_code"] is None

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client, employee_user):
        response = await client.post(
            f"{API}/auth/register",
            json=register_payload(email="ravi@example.com"),
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "DUPLICATE_ENTRY"

    @pytest.mark.asyncio
    async def test_invalid_payload(self, client):
        response = await client.post(
            f"{API}/auth/register",
            json=register_payload(email="not-an-email", password="abc"),
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


class TestLogin:
    """Test cases for POST /auth/login."""

    @pytest.mark.asyncio
    async def test_login_success(self, client, employee_user):
        response = await client.post(
            f"{API}/auth/login",
            json={"email": "ravi@example.com", "password": "EmployeePass123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["id"] == str(employee_user.id)
        assert data["tokens"]["expires_in"] > 0
        assert "access_token" in response.cookies

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client, employee_user):
        response = await client.post(
            f"{API}/auth/login",
            json={"email": "ravi@example.com", "password": "wrong-password"},
        )

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "INVALID_CREDENTIALS"

    @pytest.mark.asyncio
    async def test_login_unknown_email_same_error(self, client):
        response = await client.post(
            f"{API}/auth/login",
            json={"email": "ghost@example.com", "password": "whatever"},
        )

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "INVALID_CREDENTIALS"
        assert response.json()["detail"]["message"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_login_deactivated_account(self, client, admin_headers, employee_user):
        await client.delete(f"{API}/users/{employee_user.id}", headers=admin_headers)

        response = await client.post(
            f"{API}/auth/login",
            json={"email": "ravi@example.com", "password": "EmployeePass123"},
        )

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "ACCOUNT_DISABLED"

    @pytest.mark.asyncio
    async def test_seeded_admin_can_login(self, app, client, settings):
        app.state.settings = settings.model_copy(
            update={"admin_email": "owner@example.com", "admin_password": "OwnerPass123"}
        )
        await seed_default_admin(app)

        response = await client.post(
            f"{API}/auth/login",
            json={"email": "owner@example.com", "password": "OwnerPass123"},
        )

        assert response.status_code == 200
        assert response.json()["user"]["role"] == "admin"

    def test_reserved_admin_email_rejected_at_startup(self):
        """A seed address that login would refuse never reaches the store."""
        with pytest.raises(PydanticValidationError):
            Settings(admin_email="admin@paydesk.local", admin_password="AdminPass123")


class TestTokenHandling:
    """Bearer header, cookie and token failure modes."""

    @pytest.mark.asyncio
    async def test_me_with_bearer(self, client, employee_user, employee_headers):
        response = await client.get(f"{API}/auth/me", headers=employee_headers)

        assert response.status_code == 200
        assert response.json()["email"] == "ravi@example.com"

    @pytest.mark.asyncio
    async def test_me_with_cookie(self, client, employee_user):
        token = create_access_token({"sub": str(employee_user.id)})

        response = await client.get(
            f"{API}/auth/me",
            headers={"Cookie": f"access_token=Bearer {token}"},
        )

        assert response.status_code == 200
        assert response.json()["id"] == str(employee_user.id)

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get(f"{API}/auth/me")

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_expired_token(self, client, employee_user):
        token = create_access_token({"sub": str(employee_user.id)}, expires_delta=timedelta(seconds=-5))

        response = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "TOKEN_EXPIRED"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get(f"{API}/auth/me", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "TOKEN_INVALID"

    @pytest.mark.asyncio
    async def test_token_for_deleted_account(self, client):
        token = create_access_token({"sub": "8a0f3a52-4b3e-4a4f-9a55-6f1f0ad3c001"})

        response = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "USER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_token_for_deactivated_account_is_forbidden(
        self, client, admin_headers, employee_user, employee_headers
    ):
        """A valid token for a deactivated account is 403, not 401."""
        await client.delete(f"{API}/users/{employee_user.id}", headers=admin_headers)

        response = await client.get(f"{API}/auth/me", headers=employee_headers)

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "ACCOUNT_DISABLED"

    @pytest.mark.asyncio
    async def test_refresh_token(self, client, employee_headers):
        response = await client.post(f"{API}/auth/refresh-token", headers=employee_headers)

        assert response.status_code == 200
        assert response.json()["access_token"]

    @pytest.mark.asyncio
    async def test_change_password_then_login(self, client, employee_user, employee_headers):
        response = await client.put(
            f"{API}/auth/change-password",
            json={
                "current_password": "EmployeePass123",
                "new_password": "Changed456",
                "confirm_password": "Changed456",
            },
            headers=employee_headers,
        )
        assert response.status_code == 200

        login = await client.post(
            f"{API}/auth/login",
            json={"email": "ravi@example.com", "password": "Changed456"},
        )
        assert login.status_code == 200

    @pytest.mark.asyncio
    async def test_logout_clears_cookie(self, client, employee_headers):
        response = await client.post(f"{API}/auth/logout", headers=employee_headers)

        assert response.status_code == 200
        assert "access_token" in response.headers.get("set-cookie", "")


class TestRateLimiting:
    """Per-IP limits on registration and login."""

    @pytest.mark.asyncio
    async def test_login_rate_limited(self, app, client, employee_user):
        app.state.rate_limiter.rules[f"{API}/auth/login"] = (3, 900)
        credentials = {"email": "ravi@example.com", "password": "wrong-password"}

        for _ in range(3):
            response = await client.post(f"{API}/auth/login", json=credentials)
            assert response.status_code == 401

        response = await client.post(f"{API}/auth/login", json=credentials)

        assert response.status_code == 429
        assert response.json()["detail"]["code"] == "RATE_LIMITED"
        assert int(response.headers["Retry-After"]) > 0

    @pytest.mark.asyncio
    async def test_forwarded_header_ignored_from_untrusted_peer(self, app, client, employee_user):
        app.state.rate_limiter.rules[f"{API}/auth/login"] = (3, 900)
        credentials = {"email": "ravi@example.com", "password": "wrong-password"}

        codes = []
        for n in range(5):
            response = await client.post(
                f"{API}/auth/login",
                json=credentials,
                headers={"X-Forwarded-For": f"10.0.0.{n}"},
            )
            codes.append(response.status_code)

        assert codes == [401, 401, 401, 429, 429]
        assert app.state.rate_limiter.tracked_clients == 1

    @pytest.mark.asyncio
    async def test_limits_are_per_ip_behind_trusted_proxy(self, settings):
        # ASGITransport reports the peer as 127.0.0.1
        application = create_app(settings.model_copy(update={"trusted_proxies": "127.0.0.1"}))
        application.state.db.init()
        await application.state.db.create_all()
        application.state.rate_limiter.rules[f"{API}/auth/register"] = (1, 900)

        try:
            async with AsyncClient(transport=ASGITransport(app=application), base_url="http://test") as proxied:
                first = await proxied.post(
                    f"{API}/auth/register",
                    json=register_payload(),
                    headers={"X-Forwarded-For": "10.0.0.1"},
                )
                blocked = await proxied.post(
                    f"{API}/auth/register",
                    json=register_payload(email="other@example.com"),
                    headers={"X-Forwarded-For": "10.0.0.1"},
                )
                other_ip = await proxied.post(
                    f"{API}/auth/register",
                    json=register_payload(email="other@example.com"),
                    headers={"X-Forwarded-For": "10.0.0.2, 127.0.0.1"},
                )
        finally:
            await application.state.db.dispose()

        assert first.status_code == 201
        assert first.headers["X-RateLimit-Remaining"] == "0"
        assert blocked.status_code == 429
        assert other_ip.status_code == 201

    def test_expired_clients_are_dropped(self):
        limiter = RateLimiter({"/login": (2, 10)})
        now = time.time()
        limiter.check("10.0.0.1", "/login")
        limiter.check("10.0.0.2", "/login")
        assert limiter.tracked_clients == 2

        limiter.sweep(now + 11)

        assert limiter.tracked_clients == 0
        assert limiter.check("10.0.0.1", "/login") == (True, 0, 1)

    @pytest.mark.asyncio
    async def test_other_paths_not_limited(self, app, client, employee_headers):
        app.state.rate_limiter.rules[f"{API}/auth/login"] = (1, 900)

        for _ in range(3):
            response = await client.get(f"{API}/auth/me", headers=employee_headers)
            assert response.status_code == 200


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "connected"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
