"""
Bearer token verification for resource APIs, accepting both locally issued access
tokens and tokens minted by a federated upstream provider.
"""

import re
import time
from typing import Optional
import jwt
from fastapi import Depends, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession
from idp.config import settings
from idp.database import get_db_session
from idp.exceptions import Forbidden, InvalidTokenError, Unauthorized
from idp.oauth.tokens import InvalidToken, verify_access_token
from idp.user.schemas import User
from idp.user.service import get_user_by_id, resolve_federated_bearer_user


class TokenVerificationResult(BaseModel):
    sub: str
    provider: str
    email: Optional[str] = None
    name: Optional[str] = None


class AuthenticatedUser(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user: User
    provider: str


def _is_federated_issuer(issuer: Optional[str]) -> bool:
    return bool(issuer) and re.match(settings.federated_issuer_pattern, issuer) is not None


def verify_multi_provider_token(token: str) -> TokenVerificationResult:
    """
    Route a bearer token on its (unverified) issuer.

    Federated tokens are only checked for expiry here, their signature is not
    verified against the upstream provider's keys.
    """
    try:
        unverified = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as exc:
        raise InvalidToken(f"Invalid token: {exc}") from exc

    if _is_federated_issuer(unverified.get("iss")):
        exp = unverified.get("exp")
        if not isinstance(exp, (int, float)) or exp < time.time():
            raise InvalidToken("Token expired")
        if not unverified.get("sub"):
            raise InvalidToken("Invalid token: missing subject")
        return TokenVerificationResult(
            sub=str(unverified["sub"]),
            provider="federated",
            email=unverified.get("email"),
            name=unverified.get("name"),
        )

    claims = verify_access_token(token)
    return TokenVerificationResult(sub=claims.sub, provider="local")


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if not header or not header.startswith("Bearer "):
        return None
    return header[len("Bearer ") :].strip() or None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> AuthenticatedUser:
    """
    Resolve the bearer token to a local user, syncing federated users on first sight.
    """
    token = bearer_token(request)
    if not token:
        raise Unauthorized("No token provided")
    try:
        result = verify_multi_provider_token(token)
    except InvalidToken as exc:
        raise InvalidTokenError(str(exc))

    if result.provider == "local":
        user = await get_user_by_id(db, result.sub)
        if not user:
            raise InvalidTokenError("User not found")
        return AuthenticatedUser(user=user, provider="local")

    user = await resolve_federated_bearer_user(
        db, provider="federated", provider_sub=result.sub, email=result.email, name=result.name
    )
    await db.commit()
    return AuthenticatedUser(user=user, provider="federated")


async def require_admin(current: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    if not current.user.is_admin:
        raise Forbidden()
    return current
