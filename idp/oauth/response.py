"""
Response models for the OAuth2/OIDC endpoints.
"""

from typing import List
from pydantic import BaseModel
from idp.constants import ACCESS_TOKEN_EXPIRY_SECONDS, TOKEN_TYPE


class TokenResponse(BaseModel):
    """Token endpoint success response (RFC 6749 section 5.1)."""

    access_token: str
    token_type: str = TOKEN_TYPE
    expires_in: int = ACCESS_TOKEN_EXPIRY_SECONDS
    refresh_token: str
    id_token: str
    scope: str


class LoginResponse(BaseModel):
    redirect_uri: str


class UserInfoResponse(BaseModel):
    sub: str
    email: str
    name: str


class LogoutResponse(BaseModel):
    success: bool = True


class DiscoveryDocument(BaseModel):
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str
    end_session_endpoint: str
    response_types_supported: List[str] = ["code"]
    grant_types_supported: List[str] = ["authorization_code", "refresh_token"]
    subject_types_supported: List[str] = ["public"]
    id_token_signing_alg_values_supported: List[str] = ["HS256"]
    scopes_supported: List[str] = ["openid", "profile", "email"]
    token_endpoint_auth_methods_supported: List[str] = ["none"]
    code_challenge_methods_supported: List[str] = ["S256"]

    @classmethod
    def for_issuer(cls, issuer: str) -> "DiscoveryDocument":
        return cls(
            issuer=issuer,
            authorization_endpoint=f"{issuer}/authorize",
            token_endpoint=f"{issuer}/token",
            userinfo_endpoint=f"{issuer}/userinfo",
            end_session_endpoint=f"{issuer}/logout",
        )
