"""
Service layer for the authorization code flow: clients, codes and refresh tokens.
"""

from typing import Optional
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode
from loguru import logger
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from idp.constants import DEFAULT_SCOPE
from idp.database import generate_uuid, run_in_transaction, utcnow
from idp.exceptions import (
    InvalidClient,
    InvalidGrant,
    InvalidRedirectUri,
    InvalidRequest,
    UnsupportedGrantType,
)
from idp.oauth.pkce import UnsupportedMethod, verify_pkce
from idp.oauth.response import TokenResponse
from idp.oauth.schemas import AuthorizationCode, OAuthClient, RefreshToken, TokenRequest
from idp.oauth.tokens import issue_token_set
from idp.user.schemas import User


async def get_client(db: AsyncSession, client_id: str) -> Optional[OAuthClient]:
    return (
        await db.execute(select(OAuthClient).where(OAuthClient.client_id == client_id))
    ).scalar_one_or_none()


async def validate_client_redirect(
    db: AsyncSession, client_id: str, redirect_uri: str
) -> OAuthClient:
    client = await get_client(db, client_id)
    if not client:
        raise InvalidClient()
    if not client.is_valid_redirect_uri(redirect_uri):
        raise InvalidRedirectUri()
    return client


async def create_authorization_code(
    db: AsyncSession,
    client_id: str,
    user_id: str,
    redirect_uri: str,
    code_challenge: str,
    code_challenge_method: str,
    scope: Optional[str] = None,
    nonce: Optional[str] = None,
) -> str:
    """
    Persist a single-use authorization code bound to the client, redirect URI and
    PKCE challenge. Returns the code.
    """
    code = generate_uuid()
    db.add(
        AuthorizationCode(
            code=code,
            client_id=client_id,
            user_id=user_id,
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            scope=scope or DEFAULT_SCOPE,
            nonce=nonce,
            expires_at=AuthorizationCode.expiry(),
        )
    )
    await db.flush()
    return code


def build_redirect_url(redirect_uri: str, params: dict) -> str:
    """
    Append query parameters to a redirect URI, keeping any it already has.
    """
    parsed = urlparse(redirect_uri)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    query.extend((key, value) for key, value in params.items() if value is not None)
    return urlunparse(parsed._replace(query=urlencode(query)))


async def _issue_tokens(
    db: AsyncSession, user: User, client_id: str, scope: str, nonce: Optional[str] = None
) -> TokenResponse:
    token_set = issue_token_set(user, client_id, scope, nonce=nonce)
    db.add(
        RefreshToken(
            token=token_set.refresh_token,
            user_id=user.user_id,
            client_id=client_id,
            expires_at=RefreshToken.expiry(),
        )
    )
    await db.flush()
    return TokenResponse(
        access_token=token_set.access_token,
        token_type=token_set.token_type,
        expires_in=token_set.expires_in,
        refresh_token=token_set.refresh_token,
        id_token=token_set.id_token,
        scope=token_set.scope,
    )


async def exchange_authorization_code(
    code: str, code_verifier: str, client_id: str, redirect_uri: str
) -> TokenResponse:
    """
    Redeem an authorization code. The row is deleted by the same statement that
    reads it, so exactly one concurrent caller can see it; failed checks still
    commit the delete.
    """

    async def _redeem(db: AsyncSession) -> TokenResponse:
        auth_code = (
            await db.execute(
                delete(AuthorizationCode)
                .where(AuthorizationCode.code == code)
                .returning(AuthorizationCode)
            )
        ).scalar_one_or_none()
        if auth_code is None:
            raise InvalidGrant("Invalid authorization code")
        if auth_code.expires_at < utcnow():
            raise InvalidGrant("Authorization code expired")
        if auth_code.client_id != client_id or auth_code.redirect_uri != redirect_uri:
            raise InvalidGrant("Client or redirect URI mismatch")
        try:
            verified = verify_pkce(
                code_verifier, auth_code.code_challenge, auth_code.code_challenge_method
            )
        except UnsupportedMethod:
            verified = False
        if not verified:
            raise InvalidGrant("PKCE verification failed")
        user = await db.get(User, auth_code.user_id)
        if not user:
            raise InvalidGrant("User not found")
        return await _issue_tokens(db, user, client_id, auth_code.scope, nonce=auth_code.nonce)

    try:
        return await run_in_transaction(_redeem, commit_on=(InvalidGrant,))
    except InvalidGrant as exc:
        logger.warning(f"Authorization code redemption failed for client {client_id}: {exc}")
        raise


async def refresh_access_token(refresh_token: str, client_id: str) -> TokenResponse:
    """
    Rotate a refresh token: the presented token is consumed and a new triple issued.
    """

    async def _rotate(db: AsyncSession) -> TokenResponse:
        stored = (
            await db.execute(
                delete(RefreshToken)
                .where(RefreshToken.token == refresh_token)
                .returning(RefreshToken)
            )
        ).scalar_one_or_none()
        if stored is None:
            raise InvalidGrant("Invalid refresh token")
        if stored.client_id != client_id:
            raise InvalidGrant("Client mismatch")
        if stored.expires_at < utcnow():
            raise InvalidGrant("Refresh token expired")
        user = await db.get(User, stored.user_id)
        if not user:
            raise InvalidGrant("User not found")
        return await _issue_tokens(db, user, client_id, DEFAULT_SCOPE)

    try:
        return await run_in_transaction(_rotate, commit_on=(InvalidGrant,))
    except InvalidGrant as exc:
        logger.warning(f"Refresh token rotation failed for client {client_id}: {exc}")
        raise


async def handle_token_request(args: TokenRequest) -> TokenResponse:
    """
    Dispatch a token endpoint request on its grant type.
    """
    if args.grant_type == "authorization_code":
        if not all([args.code, args.code_verifier, args.client_id, args.redirect_uri]):
            raise InvalidRequest("Missing required parameters")
        return await exchange_authorization_code(
            args.code, args.code_verifier, args.client_id, args.redirect_uri
        )
    if args.grant_type == "refresh_token":
        if not args.refresh_token or not args.client_id:
            raise InvalidRequest("Missing required parameters")
        return await refresh_access_token(args.refresh_token, args.client_id)
    raise UnsupportedGrantType(args.grant_type)


async def revoke_refresh_token(db: AsyncSession, refresh_token: Optional[str]) -> None:
    if not refresh_token:
        return
    await db.execute(delete(RefreshToken).where(RefreshToken.token == refresh_token))
