"""API tests for userinfo, logout, discovery, health and the debug relay."""

from unittest.mock import MagicMock, patch
import pytest
from sqlalchemy import select


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


class TestUserInfo:
    async def test_returns_identity(self, client, token_set):
        tokens = await token_set()
        response = await client.get("/userinfo", headers=_bearer(tokens["access_token"]))
        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"sub", "email", "name"}
        assert body["email"] == "demo@example.com"
        assert body["name"] == "John Doe"

    async def test_missing_header(self, client):
        response = await client.get("/userinfo")
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_token"

    async def test_id_token_is_not_an_access_token(self, client, token_set):
        tokens = await token_set()
        response = await client.get("/userinfo", headers=_bearer(tokens["id_token"]))
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_token"

    async def test_garbage_token(self, client):
        response = await client.get("/userinfo", headers=_bearer("abc.def.ghi"))
        assert response.status_code == 401


class TestLogout:
    async def test_ends_session_and_revokes_refresh_token(self, client, token_set):
        from idp.database import get_session
        from idp.oauth.schemas import RefreshToken
        from idp.session.schemas import UserSession

        tokens = await token_set()
        assert client.cookies.get("session_id")

        response = await client.post("/logout", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert "session_id=" in response.headers["set-cookie"]
        assert client.cookies.get("session_id") is None

        async with get_session() as session:
            assert (await session.execute(select(UserSession))).scalars().all() == []
            assert (await session.execute(select(RefreshToken))).scalars().all() == []
            await session.commit()

        refresh = await client.post(
            "/token/refresh", data={"refresh_token": tokens["refresh_token"], "client_id": "app-a"}
        )
        assert refresh.status_code == 400

    async def test_without_session_or_token(self, client):
        response = await client.post("/logout")
        assert response.status_code == 200
        assert response.json() == {"success": True}

    async def test_next_authorize_requires_login(self, client, login, authorize_params):
        await login()
        await client.post("/logout")
        params, _ = authorize_params()
        response = await client.get("/authorize", params=params)
        assert response.status_code == 302
        assert response.headers["location"].startswith("/login?")


class TestDiscovery:
    async def test_document(self, client):
        response = await client.get("/.well-known/openid-configuration")
        assert response.status_code == 200
        body = response.json()
        assert body["issuer"] == "http://testserver"
        assert body["authorization_endpoint"] == "http://testserver/authorize"
        assert body["token_endpoint"] == "http://testserver/token"
        assert body["userinfo_endpoint"] == "http://testserver/userinfo"
        assert body["end_session_endpoint"] == "http://testserver/logout"
        assert body["code_challenge_methods_supported"] == ["S256"]
        assert body["grant_types_supported"] == ["authorization_code", "refresh_token"]
        assert body["id_token_signing_alg_values_supported"] == ["HS256"]


class TestHealth:
    async def test_connected(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "connected"}

    async def test_disconnected(self, client):
        with patch("idp.main.get_session", MagicMock(side_effect=RuntimeError("db down"))):
            response = await client.get("/health")
        assert response.status_code == 503
        assert response.json() == {"status": "error", "database": "disconnected"}


class TestDebugRelay:
    def test_history_and_echo(self):
        from fastapi.testclient import TestClient
        from idp.main import create_app

        app = create_app()
        app.state.debug_broker.publish("dbg-1", {"step": "earlier"})
        http = TestClient(app)
        with http.websocket_connect("/ws/debug?sessionId=dbg-1") as websocket:
            assert websocket.receive_json() == {"type": "history", "events": [{"step": "earlier"}]}
            websocket.send_json({"type": "event", "event": {"step": "authorize"}})
            assert websocket.receive_json() == {
                "type": "event",
                "event": {"step": "authorize"},
                "sessionId": "dbg-1",
            }
        assert app.state.debug_broker.history("dbg-1") == [{"step": "earlier"}, {"step": "authorize"}]

    def test_not_mounted_in_production(self, monkeypatch):
        from fastapi.testclient import TestClient
        from starlette.websockets import WebSocketDisconnect
        from idp.config import settings
        from idp.main import create_app

        monkeypatch.setattr(settings, "environment", "production")
        http = TestClient(create_app())
        with pytest.raises(WebSocketDisconnect):
            with http.websocket_connect("/ws/debug?sessionId=dbg-1"):
                pass
        assert http.get("/.well-known/openid-configuration").status_code == 200
