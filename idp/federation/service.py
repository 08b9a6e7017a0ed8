"""
Federated login bridge: provider registry, sealed federation state, upstream code
exchange and the local code minted once the upstream user is known.
"""

import time
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlencode
import aiohttp
import jwt
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession
from idp.config import settings
from idp.constants import FEDERATION_STATE_EXPIRY_SECONDS, JWT_ALGORITHM
from idp.database import run_in_transaction
from idp.exceptions import UnsupportedProvider, UpstreamError
from idp.federation.schemas import FederationState, UpstreamProvider, UpstreamUserInfo
from idp.oauth.service import build_redirect_url, create_authorization_code
from idp.session.service import create_session, delete_session
from idp.user.service import find_or_create_federated_user


def provider_registry() -> Dict[str, UpstreamProvider]:
    """
    Upstream providers keyed by the path segment used in /auth/federated/{provider}.
    """
    return {
        "google": UpstreamProvider(
            name="google",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            authorize_url=settings.google_authorize_url,
            token_url=settings.google_token_url,
            userinfo_url=settings.google_userinfo_url,
            scopes=settings.google_scopes,
            extra_authorize_params={"access_type": "offline", "prompt": "consent"},
        ),
    }


def configured_providers() -> List[str]:
    return [name for name, provider in provider_registry().items() if provider.is_configured]


def get_provider(name: str) -> UpstreamProvider:
    provider = provider_registry().get(name)
    if not provider:
        raise UnsupportedProvider(name)
    if not provider.is_configured:
        logger.error(f"Federated provider {name} is not configured")
        raise UpstreamError("configuration_error", f"Provider {name} is not configured")
    return provider


def callback_url(provider: UpstreamProvider) -> str:
    return f"{settings.issuer}/auth/federated/{provider.name}/callback"


def seal_state(state: FederationState) -> str:
    issued_at = int(time.time())
    return jwt.encode(
        {
            "fed": state.model_dump(),
            "iat": issued_at,
            "exp": issued_at + FEDERATION_STATE_EXPIRY_SECONDS,
        },
        settings.cookie_secret,
        algorithm=JWT_ALGORITHM,
    )


def open_state(sealed: Optional[str]) -> Optional[FederationState]:
    """
    Verify and unpack a sealed federation state; None if missing, tampered or expired.
    """
    if not sealed:
        return None
    try:
        payload = jwt.decode(sealed, settings.cookie_secret, algorithms=[JWT_ALGORITHM])
        return FederationState.model_validate(payload["fed"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        logger.warning(f"Rejected federation state cookie: {exc}")
        return None


def build_authorize_url(provider: UpstreamProvider, code_challenge: str) -> str:
    params = {
        "client_id": provider.client_id,
        "redirect_uri": callback_url(provider),
        "response_type": "code",
        "scope": provider.scopes,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        **provider.extra_authorize_params,
    }
    return f"{provider.authorize_url}?{urlencode(params)}"


def _timeout() -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=settings.upstream_timeout_seconds)


async def exchange_upstream_code(provider: UpstreamProvider, code: str, code_verifier: str) -> str:
    """
    Trade the upstream authorization code for an upstream access token. Not retried.
    """
    data = {
        "code": code,
        "client_id": provider.client_id,
        "client_secret": provider.client_secret,
        "redirect_uri": callback_url(provider),
        "grant_type": "authorization_code",
        "code_verifier": code_verifier,
    }
    try:
        async with aiohttp.ClientSession(timeout=_timeout(), raise_for_status=True) as session:
            async with session.post(provider.token_url, data=data) as response:
                tokens = await response.json()
        return tokens["access_token"]
    except Exception as exc:
        logger.error(f"Token exchange with {provider.name} failed: {exc}")
        raise UpstreamError("token_exchange_failed", "Failed to exchange code with provider")


async def fetch_upstream_userinfo(provider: UpstreamProvider, access_token: str) -> UpstreamUserInfo:
    try:
        async with aiohttp.ClientSession(timeout=_timeout(), raise_for_status=True) as session:
            async with session.get(
                provider.userinfo_url, headers={"Authorization": f"Bearer {access_token}"}
            ) as response:
                data = await response.json()
        userinfo = UpstreamUserInfo.model_validate(data)
    except Exception as exc:
        logger.error(f"Userinfo fetch from {provider.name} failed: {exc}")
        raise UpstreamError("userinfo_fetch_failed", "Failed to fetch user info from provider")
    if not userinfo.email:
        logger.error(f"Userinfo from {provider.name} has no email for subject {userinfo.sub}")
        raise UpstreamError("userinfo_fetch_failed", "Provider did not return an email address")
    return userinfo


async def complete_federated_login(
    provider: UpstreamProvider,
    state: FederationState,
    userinfo: UpstreamUserInfo,
    previous_session_id: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Link the upstream identity to a local user, open a session and mint a local
    authorization code bound to the original request. Any session the browser
    already carried is deleted first.

    Returns (session_id, redirect_url).
    """

    async def _complete(db: AsyncSession) -> Tuple[str, str]:
        user = await find_or_create_federated_user(
            db,
            provider=provider.name,
            provider_sub=userinfo.sub,
            email=userinfo.email,
            name=userinfo.name,
        )
        await delete_session(db, previous_session_id)
        session_id = await create_session(db, user.user_id)
        code = await create_authorization_code(
            db,
            client_id=state.client_id,
            user_id=user.user_id,
            redirect_uri=state.redirect_uri,
            code_challenge=state.code_challenge,
            code_challenge_method=state.code_challenge_method,
            scope=state.scope,
            nonce=state.nonce,
        )
        logger.info(f"Federated login via {provider.name} for user {user.user_id}")
        return session_id, build_redirect_url(
            state.redirect_uri, {"code": code, "state": state.state}
        )

    return await run_in_transaction(_complete)
