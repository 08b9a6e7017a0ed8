"""
Helpers for driving the authorization code flow over HTTP.
"""

from urllib.parse import parse_qs, urlparse
import pytest

APP_A_REDIRECT = "http://localhost:3001/callback"


def query_of(url: str) -> dict:
    return {key: values[0] for key, values in parse_qs(urlparse(url).query).items()}


@pytest.fixture
def redirect_query():
    """Query parameters of a redirect URL as a flat dict."""
    return query_of


@pytest.fixture
def authorize_params():
    """Build /authorize parameters with a fresh PKCE pair; returns (params, verifier)."""
    from idp.oauth.pkce import generate_pkce_pair

    def _build(**overrides):
        verifier, challenge = generate_pkce_pair()
        params = {
            "response_type": "code",
            "client_id": "app-a",
            "redirect_uri": APP_A_REDIRECT,
            "scope": "openid profile email",
            "state": "state-123",
            "code_challenge": challenge,
            "code_challenge_method": "S256",
            "nonce": "nonce-123",
        }
        params.update(overrides)
        params = {key: value for key, value in params.items() if value is not None}
        return params, verifier

    return _build


@pytest.fixture
def login(client, authorize_params):
    """Log in through POST /login; returns (code, verifier, params)."""

    async def _login(email="demo@example.com", password="password123", **overrides):
        params, verifier = authorize_params(**overrides)
        body = {key: value for key, value in params.items() if key != "response_type"}
        body.update(email=email, password=password)
        response = await client.post("/login", json=body)
        assert response.status_code == 200, response.text
        return query_of(response.json()["redirect_uri"])["code"], verifier, params

    return _login


@pytest.fixture
def redeem(client):
    """Exchange a code at POST /token (form-encoded)."""

    async def _redeem(code, verifier, client_id="app-a", redirect_uri=APP_A_REDIRECT):
        return await client.post(
            "/token",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": verifier,
                "client_id": client_id,
                "redirect_uri": redirect_uri,
            },
        )

    return _redeem


@pytest.fixture
def token_set(login, redeem):
    """Run the whole flow for the demo user and return the token response body."""

    async def _token_set(**kwargs):
        code, verifier, _ = await login(**kwargs)
        response = await redeem(code, verifier)
        assert response.status_code == 200, response.text
        return response.json()

    return _token_set
