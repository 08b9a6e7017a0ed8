"""
Database models and request models for the OAuth2/OIDC endpoints.
"""

from datetime import timedelta
from typing import Optional, Self
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Text
from passlib.hash import argon2
from pydantic import BaseModel
from idp.constants import AUTH_CODE_EXPIRY_SECONDS, REFRESH_TOKEN_EXPIRY_DAYS
from idp.database import Base, generate_uuid, utcnow
from idp.exceptions import InvalidRequest
from idp.oauth.pkce import SUPPORTED_METHOD


class OAuthClient(Base):
    """
    A registered relying party. Public clients authenticate with PKCE only.
    """

    __tablename__ = "oauth_clients"

    client_id = Column(String, primary_key=True)
    client_secret = Column(String, nullable=False)
    name = Column(String, nullable=False)
    redirect_uris = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow)

    @classmethod
    def create(cls, client_id: str, client_secret: str, name: str, redirect_uris: list) -> Self:
        return cls(
            client_id=client_id,
            client_secret=argon2.hash(client_secret),
            name=name,
            redirect_uris=list(redirect_uris),
        )

    def verify_secret(self, secret: str) -> bool:
        try:
            return argon2.verify(secret, self.client_secret)
        except (ValueError, TypeError):
            return False

    def is_valid_redirect_uri(self, uri: str) -> bool:
        """Exact string match against the registered list, no prefix or pattern matching."""
        return uri in (self.redirect_uris or [])


class AuthorizationCode(Base):
    __tablename__ = "authorization_codes"

    code = Column(String, primary_key=True, default=generate_uuid)
    client_id = Column(
        String, ForeignKey("oauth_clients.client_id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    code_challenge = Column(String, nullable=False)
    code_challenge_method = Column(String, nullable=False)
    scope = Column(String, nullable=False)
    redirect_uri = Column(Text, nullable=False)
    nonce = Column(String, nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)

    @classmethod
    def expiry(cls):
        return utcnow() + timedelta(seconds=AUTH_CODE_EXPIRY_SECONDS)


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    token = Column(String, primary_key=True)
    user_id = Column(
        String, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id = Column(
        String, ForeignKey("oauth_clients.client_id", ondelete="CASCADE"), nullable=False
    )
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)

    @classmethod
    def expiry(cls):
        return utcnow() + timedelta(days=REFRESH_TOKEN_EXPIRY_DAYS)


class AuthorizeRequest(BaseModel):
    """
    Authorization request as received on /authorize (and forwarded to /login and
    the federation start leg). Everything is optional here; validate_parameters() enforces
    presence in the order errors are reported.
    """

    client_id: Optional[str] = None
    redirect_uri: Optional[str] = None
    response_type: Optional[str] = None
    scope: Optional[str] = None
    state: Optional[str] = None
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None
    nonce: Optional[str] = None
    prompt: Optional[str] = None

    def validate_parameters(self, require_response_type: bool = True) -> None:
        if not self.client_id or not self.redirect_uri:
            raise InvalidRequest("Missing required parameters")
        if require_response_type and self.response_type != "code":
            raise InvalidRequest("Missing required parameters")
        self.validate_pkce()

    def validate_pkce(self) -> None:
        if not self.code_challenge or self.code_challenge_method != SUPPORTED_METHOD:
            raise InvalidRequest("PKCE required")

    def forwarded_params(self) -> dict:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "code_challenge": self.code_challenge,
            "code_challenge_method": self.code_challenge_method,
            "state": self.state,
            "nonce": self.nonce,
        }
        return {key: value for key, value in params.items() if value is not None}


class LoginRequest(AuthorizeRequest):
    email: Optional[str] = None
    password: Optional[str] = None

    def validate_credentials_present(self) -> None:
        if not self.email or not self.password:
            raise InvalidRequest("Email and password are required")


class TokenRequest(BaseModel):
    grant_type: Optional[str] = None
    code: Optional[str] = None
    code_verifier: Optional[str] = None
    client_id: Optional[str] = None
    redirect_uri: Optional[str] = None
    refresh_token: Optional[str] = None


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None
