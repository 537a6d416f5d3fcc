"""Integration tests — full HTTP flow against real database."""

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from conftest import RecordingEmailSender, unique_email
from sessionfort import SessionFort

pytestmark = pytest.mark.asyncio

PASSWORD = "testpassword123"


async def _register(client: AsyncClient, email=None, role=None):
    email = email or unique_email()
    body = {"email": email, "password": PASSWORD}
    if role is not None:
        body["role"] = role
    response = await client.post("/auth/register", json=body)
    assert response.status_code == 201, response.text
    return email


async def _login(client: AsyncClient, mailbox: RecordingEmailSender, email: str) -> dict:
    response = await client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    response = await client.post("/auth/otp/verify", json={
        "email": email, "code": mailbox.last_code(email),
    })
    assert response.status_code == 200, response.text
    return response.json()


class TestRegister:
    async def test_register_success(self, client: AsyncClient):
        email = unique_email()
        response = await client.post("/auth/register", json={"email": email, "password": PASSWORD})

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == email
        assert data["role"] == "CUSTOMER"
        assert "password_hash" not in data
        assert "tokens" not in data

    async def test_register_vendor(self, client: AsyncClient):
        response = await client.post("/auth/register", json={
            "email": unique_email(), "password": PASSWORD, "role": "VENDOR",
        })
        assert response.status_code == 201
        assert response.json()["role"] == "VENDOR"

    async def test_cannot_self_assign_admin(self, client: AsyncClient):
        response = await client.post("/auth/register", json={
            "email": unique_email(), "password": PASSWORD, "role": "SUPER_ADMIN",
        })
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_role"

    async def test_duplicate_email(self, client: AsyncClient):
        email = await _register(client)
        response = await client.post("/auth/register", json={"email": email, "password": "other-pass"})

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "user_exists"

    async def test_short_password(self, client: AsyncClient):
        response = await client.post("/auth/register", json={"email": unique_email(), "password": "abc"})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "weak_password"

    async def test_invalid_email(self, client: AsyncClient):
        response = await client.post("/auth/register", json={"email": "nope", "password": PASSWORD})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_email"


class TestLoginFlow:
    async def test_login_returns_no_tokens(self, client: AsyncClient):
        email = await _register(client)
        response = await client.post("/auth/login", json={"email": email, "password": PASSWORD})

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "OTP sent to email for verification"
        assert "access_token" not in response.cookies

    async def test_wrong_password(self, client: AsyncClient):
        email = await _register(client)
        response = await client.post("/auth/login", json={"email": email, "password": "wrong-pass"})

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "invalid_credentials"

    async def test_lockout(self, client: AsyncClient):
        email = await _register(client)
        for _ in range(5):
            await client.post("/auth/login", json={"email": email, "password": "wrong-pass"})

        response = await client.post("/auth/login", json={"email": email, "password": PASSWORD})
        assert response.status_code == 423
        assert response.json()["detail"]["error"] == "account_locked"

    async def test_verify_sets_cookies(self, client: AsyncClient, mailbox):
        email = await _register(client)
        await client.post("/auth/login", json={"email": email, "password": PASSWORD})
        response = await client.post("/auth/otp/verify", json={
            "email": email, "code": mailbox.last_code(email),
        })

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["email"] == email
        assert data["tokens"]["expires_in"] == 900
        assert "access_token" in response.cookies
        assert "refresh_token" in response.cookies

    async def test_wrong_otp(self, client: AsyncClient, mailbox):
        email = await _register(client)
        await client.post("/auth/login", json={"email": email, "password": PASSWORD})
        response = await client.post("/auth/otp/verify", json={"email": email, "code": "000000"})

        assert response.status_code == 401
        detail = response.json()["detail"]
        assert detail["error"] == "invalid_otp"
        assert detail["remaining_attempts"] == 4

    async def test_request_otp(self, client: AsyncClient, mailbox):
        email = await _register(client)
        response = await client.post("/auth/otp", json={"email": email})
        assert response.status_code == 200
        assert len(mailbox.messages_to(email)) == 1

    async def test_request_otp_unknown(self, client: AsyncClient):
        response = await client.post("/auth/otp", json={"email": unique_email()})
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "user_not_found"


class TestMe:
    async def test_me_with_bearer(self, client: AsyncClient, mailbox):
        email = await _register(client)
        tokens = (await _login(client, mailbox, email))["tokens"]
        client.cookies.clear()

        response = await client.get("/auth/me", headers={
            "Authorization": f"Bearer {tokens['access_token']}",
        })
        assert response.status_code == 200
        assert response.json()["email"] == email

    async def test_me_with_cookie(self, client: AsyncClient, mailbox):
        email = await _register(client)
        await _login(client, mailbox, email)

        response = await client.get("/auth/me")
        assert response.status_code == 200
        assert response.json()["email"] == email

    async def test_me_without_token(self, client: AsyncClient):
        client.cookies.clear()
        response = await client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "token_missing"

    async def test_refresh_token_is_not_an_access_token(self, client: AsyncClient, mailbox):
        email = await _register(client)
        tokens = (await _login(client, mailbox, email))["tokens"]
        client.cookies.clear()

        response = await client.get("/auth/me", headers={
            "Authorization": f"Bearer {tokens['refresh_token']}",
        })
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "token_invalid"


class TestRefreshAndLogout:
    async def test_refresh_with_body(self, client: AsyncClient, mailbox):
        email = await _register(client)
        tokens = (await _login(client, mailbox, email))["tokens"]
        client.cookies.clear()

        response = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        assert response.json()["tokens"]["refresh_token"] != tokens["refresh_token"]

    async def test_refresh_with_cookie(self, client: AsyncClient, mailbox):
        email = await _register(client)
        await _login(client, mailbox, email)

        response = await client.post("/auth/refresh")
        assert response.status_code == 200

    async def test_refresh_missing(self, client: AsyncClient):
        client.cookies.clear()
        response = await client.post("/auth/refresh")
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "refresh_token_missing"

    async def test_reuse_detected(self, client: AsyncClient, mailbox):
        email = await _register(client)
        tokens = (await _login(client, mailbox, email))["tokens"]
        client.cookies.clear()

        await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        response = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "refresh_token_reused"

    async def test_logout(self, client: AsyncClient, mailbox):
        email = await _register(client)
        tokens = (await _login(client, mailbox, email))["tokens"]
        client.cookies.clear()

        response = await client.post("/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 204

        response = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 401

    async def test_logout_with_garbage(self, client: AsyncClient):
        response = await client.post("/auth/logout", json={"refresh_token": "garbage"})
        assert response.status_code == 204

    async def test_logout_with_storage_failure(self, auth, client: AsyncClient, mailbox, monkeypatch):
        email = await _register(client)
        tokens = (await _login(client, mailbox, email))["tokens"]
        monkeypatch.setattr(
            auth.context.ledger, "revoke_all", AsyncMock(side_effect=OSError("connection reset")),
        )

        response = await client.post("/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 204


class TestPasswordResetHttp:
    async def test_reset_flow(self, client: AsyncClient, mailbox):
        email = await _register(client)
        response = await client.post("/auth/forgot-password", json={"email": email})
        assert response.status_code == 200

        response = await client.post("/auth/verify-reset-otp", json={
            "email": email, "code": mailbox.last_code(email),
        })
        assert response.status_code == 200
        assert response.json()["message"] == "OTP verified successfully"

        response = await client.post("/auth/reset-password", json={
            "email": email, "new_password": "new-password-123",
        })
        assert response.status_code == 200
        assert response.json()["email"] == email

    async def test_reset_without_verification(self, client: AsyncClient, mailbox):
        email = await _register(client)
        await client.post("/auth/forgot-password", json={"email": email})
        response = await client.post("/auth/reset-password", json={
            "email": email, "new_password": "new-password-123",
        })
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "no_otp_requested"


class TestRoles:
    async def test_customer_denied_admin(self, client: AsyncClient, mailbox):
        email = await _register(client)
        await _login(client, mailbox, email)

        response = await client.get("/test-admin")
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "insufficient_role"

    async def test_vendor_allowed(self, client: AsyncClient, mailbox):
        email = await _register(client, role="VENDOR")
        await _login(client, mailbox, email)

        response = await client.get("/test-vendor")
        assert response.status_code == 200
        assert response.json()["role"] == "VENDOR"

    async def test_super_admin(self, auth: SessionFort, client: AsyncClient, mailbox):
        # Only one SUPER_ADMIN can ever be bootstrapped per database.
        admin = await auth.bootstrap_super_admin(unique_email(), PASSWORD)
        if admin is None:
            pytest.skip("SUPER_ADMIN already bootstrapped in this database")
        await _login(client, mailbox, admin.email)

        response = await client.get("/test-admin")
        assert response.status_code == 200
        assert response.json()["role"] == "SUPER_ADMIN"
