"""API tests for the profile and admin resource endpoints."""

import time
import jwt
from sqlalchemy import select


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def _federated_token(sub="google-sub-9", email="fed.user@gmail.com", name="Fed User"):
    now = int(time.time())
    return jwt.encode(
        {"iss": "https://accounts.google.com", "sub": sub, "email": email, "name": name, "iat": now, "exp": now + 600},
        "upstream-signing-key-not-known-locally-000",
        "HS256",
    )


class TestProfileRead:
    async def test_requires_token(self, client):
        response = await client.get("/api/profile")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    async def test_invalid_token(self, client):
        response = await client.get("/api/profile", headers=_bearer("not-a-token"))
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_token"

    async def test_local_user(self, client, token_set):
        tokens = await token_set()
        response = await client.get("/api/profile", headers=_bearer(tokens["access_token"]))
        assert response.status_code == 200
        body = response.json()
        assert body["email"] == "demo@example.com"
        assert body["name"] == "John Doe"
        assert body["role"] == "user"
        assert body["has_local_password"] is True
        assert "password_hash" not in body

    async def test_federated_token_syncs_user(self, client):
        first = await client.get("/api/profile", headers=_bearer(_federated_token()))
        assert first.status_code == 200
        body = first.json()
        assert body["email"] == "fed.user@gmail.com"
        assert body["has_local_password"] is False

        second = await client.get("/api/profile", headers=_bearer(_federated_token()))
        assert second.json()["id"] == body["id"]


class TestProfileUpdate:
    async def test_update_name(self, client, token_set):
        tokens = await token_set()
        response = await client.patch(
            "/api/profile", headers=_bearer(tokens["access_token"]), json={"name": "Jane Doe"}
        )
        assert response.status_code == 200
        assert response.json()["user"]["name"] == "Jane Doe"
        assert response.json()["password_changed"] is False

    async def test_no_updates(self, client, token_set):
        tokens = await token_set()
        response = await client.patch("/api/profile", headers=_bearer(tokens["access_token"]), json={})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    async def test_email_conflict(self, client, token_set):
        tokens = await token_set()
        response = await client.patch(
            "/api/profile",
            headers=_bearer(tokens["access_token"]),
            json={"email": "admin@example.com"},
        )
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    async def test_invalid_email(self, client, token_set):
        tokens = await token_set()
        response = await client.patch(
            "/api/profile", headers=_bearer(tokens["access_token"]), json={"email": "nope"}
        )
        assert response.status_code == 400

    async def test_password_change_requires_current_password(self, client, token_set):
        tokens = await token_set()
        headers = _bearer(tokens["access_token"])
        missing = await client.patch("/api/profile", headers=headers, json={"new_password": "NewPassw0rd!"})
        assert missing.status_code == 400

        wrong = await client.patch(
            "/api/profile",
            headers=headers,
            json={"new_password": "NewPassw0rd!", "current_password": "not-it"},
        )
        assert wrong.status_code == 401
        assert wrong.json()["error"] == "unauthorized"

    async def test_weak_new_password(self, client, token_set):
        tokens = await token_set()
        response = await client.patch(
            "/api/profile",
            headers=_bearer(tokens["access_token"]),
            json={"new_password": "weak", "current_password": "password123"},
        )
        assert response.status_code == 400
        assert "at least 10" in response.json()["error_description"]

    async def test_password_change_revokes_tokens_and_other_sessions(
        self, client, token_set, login
    ):
        from idp.database import get_session, run_in_transaction
        from idp.oauth.schemas import RefreshToken
        from idp.session.schemas import UserSession
        from idp.session.service import create_session
        from idp.user.schemas import User

        tokens = await token_set()
        await login()
        current_session = client.cookies.get("session_id")

        async def open_other_session(session):
            user_id = (
                await session.execute(select(User.user_id).where(User.email == "demo@example.com"))
            ).scalar_one()
            return await create_session(session, user_id)

        other_session = await run_in_transaction(open_other_session)

        response = await client.patch(
            "/api/profile",
            headers=_bearer(tokens["access_token"]),
            json={"new_password": "NewPassw0rd!", "current_password": "password123"},
        )
        assert response.status_code == 200
        assert response.json()["password_changed"] is True

        async with get_session() as session:
            sessions = (await session.execute(select(UserSession.session_id))).scalars().all()
            refresh = (await session.execute(select(RefreshToken.token))).scalars().all()
            await session.commit()
        assert sessions == [current_session]
        assert other_session not in sessions
        assert refresh == []

        refresh_attempt = await client.post(
            "/token/refresh", data={"refresh_token": tokens["refresh_token"], "client_id": "app-a"}
        )
        assert refresh_attempt.status_code == 400

        relogin = await client.post(
            "/login",
            json={
                "email": "demo@example.com",
                "password": "NewPassw0rd!",
                "client_id": "app-a",
                "redirect_uri": "http://localhost:3001/callback",
                "code_challenge": "x" * 43,
                "code_challenge_method": "S256",
            },
        )
        assert relogin.status_code == 200

    async def test_federated_user_sets_password_without_current(self, client):
        response = await client.patch(
            "/api/profile",
            headers=_bearer(_federated_token()),
            json={"new_password": "FirstPassw0rd"},
        )
        assert response.status_code == 200
        assert response.json()["user"]["has_local_password"] is True


class TestAdminUsers:
    async def test_forbidden_for_regular_user(self, client, token_set):
        tokens = await token_set()
        response = await client.get("/api/admin/users", headers=_bearer(tokens["access_token"]))
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    async def test_lists_users_for_admin(self, client, token_set):
        tokens = await token_set(email="admin@example.com", password="admin123")
        response = await client.get("/api/admin/users", headers=_bearer(tokens["access_token"]))
        assert response.status_code == 200
        emails = {user["email"] for user in response.json()}
        assert emails == {"demo@example.com", "admin@example.com"}
        assert all("password_hash" not in user for user in response.json())

    async def test_federated_token_cannot_claim_local_account(self, client):
        forged = _federated_token(sub="attacker-sub", email="admin@example.com", name="Mallory")
        listing = await client.get("/api/admin/users", headers=_bearer(forged))
        assert listing.status_code == 403

        profile = await client.get("/api/profile", headers=_bearer(forged))
        body = profile.json()
        assert body["email"] == "attacker-sub@federated.invalid"
        assert body["role"] == "user"
        assert body["has_local_password"] is False

    async def test_federated_token_resolves_by_link_not_email(self, client):
        first = await client.get(
            "/api/profile", headers=_bearer(_federated_token(sub="sub-7", email="seven@gmail.com"))
        )
        renamed = await client.get(
            "/api/profile", headers=_bearer(_federated_token(sub="sub-7", email="demo@example.com"))
        )
        assert renamed.json()["id"] == first.json()["id"]
        assert renamed.json()["email"] == "seven@gmail.com"
