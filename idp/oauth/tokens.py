"""
Access, ID and refresh token issuance plus local access-token verification.
"""

import secrets
import time
from typing import Optional
import jwt
from pydantic import BaseModel
from idp.config import settings
from idp.constants import (
    ACCESS_TOKEN_EXPIRY_SECONDS,
    ID_TOKEN_EXPIRY_SECONDS,
    JWT_ALGORITHM,
    TOKEN_TYPE,
)


class InvalidToken(Exception):
    """
    Token failed signature, issuer, expiry or structural checks.
    """


class AccessTokenClaims(BaseModel):
    sub: str
    aud: str
    scope: str


class TokenSet(BaseModel):
    access_token: str
    id_token: str
    refresh_token: str
    token_type: str = TOKEN_TYPE
    expires_in: int = ACCESS_TOKEN_EXPIRY_SECONDS
    scope: str


def _sign(payload: dict) -> str:
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def issue_access_token(user, client_id: str, scope: str) -> str:
    """
    Short-lived access token; carries no profile data.
    """
    issued_at = int(time.time())
    return _sign(
        {
            "sub": user.user_id,
            "aud": client_id,
            "scope": scope,
            "iss": settings.issuer,
            "iat": issued_at,
            "exp": issued_at + ACCESS_TOKEN_EXPIRY_SECONDS,
        }
    )


def issue_id_token(user, client_id: str, nonce: Optional[str] = None) -> str:
    issued_at = int(time.time())
    payload = {
        "sub": user.user_id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "aud": client_id,
        "iss": settings.issuer,
        "iat": issued_at,
        "exp": issued_at + ID_TOKEN_EXPIRY_SECONDS,
    }
    if nonce:
        payload["nonce"] = nonce
    return _sign(payload)


def issue_refresh_token() -> str:
    return secrets.token_hex(32)


def issue_token_set(user, client_id: str, scope: str, nonce: Optional[str] = None) -> TokenSet:
    return TokenSet(
        access_token=issue_access_token(user, client_id, scope),
        id_token=issue_id_token(user, client_id, nonce=nonce),
        refresh_token=issue_refresh_token(),
        scope=scope,
    )


def verify_access_token(token: str) -> AccessTokenClaims:
    """
    Verify a locally issued access token.

    Only HS256 is accepted, so unsigned ("alg": "none") and asymmetric tokens are
    rejected before the signature is looked at. ID tokens carry no scope claim and
    are rejected as well.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            issuer=settings.issuer,
            options={"verify_aud": False, "require": ["sub", "iss", "iat", "exp", "scope"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise InvalidToken("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidToken(f"Invalid token: {exc}") from exc
    aud = payload.get("aud")
    if isinstance(aud, list):
        aud = aud[0] if aud else None
    if not isinstance(aud, str) or not isinstance(payload["sub"], str):
        raise InvalidToken("Invalid token: malformed subject or audience")
    return AccessTokenClaims(sub=payload["sub"], aud=aud, scope=str(payload["scope"]))
