"""
Tests for the authentication endpoints.

Covers login with lockout, the reset and first-time setup token flows,
and the /me profile, preference and default-group endpoints.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from volunteer_media.api.auth.accounts import issue_setup_token
from volunteer_media.models import User
from volunteer_media.models.base import utcnow

pytestmark = pytest.mark.asyncio


async def _load(session, user_id: int) -> User:
    return await session.scalar(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )


class TestLogin:
    async def test_login_success(self, client: AsyncClient, volunteer):
        """A correct password returns a token and the user."""
        response = await client.post(
            "/api/login", json={"username": volunteer.username, "password": volunteer.password}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["token"]
        assert data["user"]["username"] == "walker"
        assert data["last_login"].endswith("+00:00") or data["last_login"].endswith("Z")

    async def test_login_is_case_insensitive(self, client: AsyncClient, volunteer):
        response = await client.post("/api/login", json={"username": "WALKER", "password": volunteer.password})
        assert response.status_code == 200

    async def test_unknown_user(self, client: AsyncClient):
        response = await client.post("/api/login", json={"username": "nobody", "password": "whatever1"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials"}

    async def test_wrong_password_reports_attempts_remaining(self, client: AsyncClient, volunteer):
        response = await client.post("/api/login", json={"username": volunteer.username, "password": "wrong-one"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials", "attempts_remaining": 4}

    async def test_fifth_failure_locks_account(self, client: AsyncClient, volunteer):
        """The fifth bad password locks the account for 30 minutes."""
        for _ in range(4):
            await client.post("/api/login", json={"username": volunteer.username, "password": "wrong-one"})
        response = await client.post("/api/login", json={"username": volunteer.username, "password": "wrong-one"})
        assert response.status_code == 403
        data = response.json()
        assert data["retry_in_mins"] == 30
        assert "locked_until" in data

        # Even the right password is refused while locked
        response = await client.post(
            "/api/login", json={"username": volunteer.username, "password": volunteer.password}
        )
        assert response.status_code == 403
        assert "temporarily locked" in response.json()["error"]

    async def test_expired_lock_is_cleared_on_login(self, client: AsyncClient, session, volunteer):
        user = await _load(session, volunteer.id)
        user.failed_login_attempts = 5
        user.locked_until = utcnow() - timedelta(minutes=1)
        await session.commit()

        response = await client.post(
            "/api/login", json={"username": volunteer.username, "password": volunteer.password}
        )
        assert response.status_code == 200
        user = await _load(session, volunteer.id)
        assert user.failed_login_attempts == 0
        assert user.locked_until is None

    async def test_pending_setup_cannot_log_in(self, client: AsyncClient, make_user):
        account = await make_user("invitee", requires_password_setup=True)
        response = await client.post("/api/login", json={"username": "invitee", "password": account.password})
        assert response.status_code == 403
        assert "requires password setup" in response.json()["error"]

    async def test_missing_fields_is_bad_request(self, client: AsyncClient):
        response = await client.post("/api/login", json={"username": "walker"})
        assert response.status_code == 400
        assert response.json() == {"error": "password is required"}


class TestPasswordReset:
    async def test_request_and_complete_reset(self, client: AsyncClient, volunteer, email_service):
        """The emailed token resets the password exactly once."""
        response = await client.post("/api/request-password-reset", json={"email": volunteer.email})
        assert response.status_code == 200
        tokens = email_service.tokens("reset")
        assert len(tokens) == 1

        response = await client.post(
            "/api/reset-password", json={"token": tokens[0], "new_password": "brand-new-pass"}
        )
        assert response.status_code == 200

        response = await client.post(
            "/api/login", json={"username": volunteer.username, "password": "brand-new-pass"}
        )
        assert response.status_code == 200

        response = await client.post(
            "/api/reset-password", json={"token": tokens[0], "new_password": "another-pass"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid or expired reset token"}

    async def test_unknown_email_gets_same_message(self, client: AsyncClient, email_service):
        response = await client.post("/api/request-password-reset", json={"email": "ghost@shelter.org"})
        assert response.status_code == 200
        assert response.json()["message"] == "If the email exists, a password reset link will be sent"
        assert email_service.sent == []

    async def test_unconfigured_email_sends_nothing(self, client: AsyncClient, volunteer, email_service):
        email_service.configured = False
        response = await client.post("/api/request-password-reset", json={"email": volunteer.email})
        assert response.status_code == 200
        assert email_service.sent == []

    async def test_expired_reset_token(self, client: AsyncClient, session, volunteer, email_service):
        await client.post("/api/request-password-reset", json={"email": volunteer.email})
        token = email_service.tokens("reset")[0]
        user = await _load(session, volunteer.id)
        user.reset_token_expiry = utcnow() - timedelta(minutes=5)
        await session.commit()

        response = await client.post("/api/reset-password", json={"token": token, "new_password": "brand-new-pass"})
        assert response.status_code == 400
        assert "expired" in response.json()["error"]

    async def test_short_password_rejected(self, client: AsyncClient):
        response = await client.post("/api/reset-password", json={"token": "abc", "new_password": "short"})
        assert response.status_code == 400
        assert response.json() == {"error": "new_password must be at least 8 characters"}


class TestSetupPassword:
    async def test_setup_then_login(self, client: AsyncClient, session, make_user):
        account = await make_user("newbie", requires_password_setup=True)
        user = await _load(session, account.id)
        token = issue_setup_token(user, utcnow())
        await session.commit()

        response = await client.post("/api/setup-password", json={"token": token, "new_password": "first-password"})
        assert response.status_code == 200

        response = await client.post("/api/login", json={"username": "newbie", "password": "first-password"})
        assert response.status_code == 200

    async def test_completed_account_is_rejected(self, client: AsyncClient, session, volunteer):
        user = await _load(session, volunteer.id)
        token = issue_setup_token(user, utcnow())
        user.requires_password_setup = False
        await session.commit()

        response = await client.post("/api/setup-password", json={"token": token, "new_password": "first-password"})
        assert response.status_code == 400
        assert "already been set up" in response.json()["error"]

    async def test_invalid_setup_token(self, client: AsyncClient):
        response = await client.post("/api/setup-password", json={"token": "nope", "new_password": "first-password"})
        assert response.status_code == 400


class TestCurrentUser:
    async def test_requires_authorization_header(self, client: AsyncClient):
        response = await client.get("/api/me")
        assert response.status_code == 401
        assert response.json() == {"error": "Authorization header required"}

    async def test_rejects_garbage_token(self, client: AsyncClient):
        response = await client.get("/api/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid or expired token"}

    async def test_me_reports_group_admin(self, client: AsyncClient, group_admin, volunteer):
        response = await client.get("/api/me", headers=group_admin.headers)
        assert response.status_code == 200
        assert response.json()["is_group_admin"] is True

        response = await client.get("/api/me", headers=volunteer.headers)
        assert response.json()["is_group_admin"] is False
        assert [g["name"] for g in response.json()["groups"]] == ["ModSquad"]

    async def test_update_profile(self, client: AsyncClient, volunteer):
        payload = {
            "first_name": " Sam ",
            "last_name": "Walker",
            "email": "sam@shelter.org",
            "phone_number": "555-0100",
            "hide_email": True,
        }
        response = await client.put("/api/me/profile", json=payload, headers=volunteer.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["first_name"] == "Sam"
        assert data["hide_email"] is True

    async def test_update_profile_email_conflict(self, client: AsyncClient, volunteer, group_admin):
        response = await client.put(
            "/api/me/profile", json={"email": group_admin.email.upper()}, headers=volunteer.headers
        )
        assert response.status_code == 409

    async def test_email_preferences_round_trip(self, client: AsyncClient, volunteer):
        response = await client.put(
            "/api/email-preferences",
            json={"email_notifications_enabled": True, "show_length_of_stay": True},
            headers=volunteer.headers,
        )
        assert response.status_code == 200
        response = await client.get("/api/email-preferences", headers=volunteer.headers)
        assert response.json() == {"email_notifications_enabled": True, "show_length_of_stay": True}

    async def test_default_group(self, client: AsyncClient, volunteer, group, other_group):
        group_id, other_id = group.id, other_group.id
        response = await client.get("/api/default-group", headers=volunteer.headers)
        assert response.json() == {"default_group_id": None}

        response = await client.put("/api/default-group", json={"group_id": other_id}, headers=volunteer.headers)
        assert response.status_code == 403

        response = await client.put("/api/default-group", json={"group_id": group_id}, headers=volunteer.headers)
        assert response.status_code == 200
        response = await client.get("/api/default-group", headers=volunteer.headers)
        assert response.json()["id"] == group_id

    async def test_environment(self, client: AsyncClient, volunteer):
        response = await client.get("/api/environment", headers=volunteer.headers)
        assert response.status_code == 200
        assert response.json()["environment"] == "development"
