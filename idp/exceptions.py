"""
OAuth error taxonomy and the FastAPI handlers that render it.
"""

from typing import Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger


class OAuthError(Exception):
    """
    Error surfaced to the caller as {"error": ..., "error_description": ...}.
    """

    def __init__(self, error: str, description: Optional[str] = None, status_code: int = 400):
        super().__init__(description or error)
        self.error = error
        self.description = description
        self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        return body


class InvalidRequest(OAuthError):
    def __init__(self, description: Optional[str] = None):
        super().__init__("invalid_request", description)


class InvalidClient(OAuthError):
    def __init__(self, description: Optional[str] = "Unknown client"):
        super().__init__("invalid_client", description)


class InvalidRedirectUri(OAuthError):
    def __init__(self, description: Optional[str] = "Redirect URI is not registered"):
        super().__init__("invalid_redirect_uri", description)


class InvalidGrant(OAuthError):
    """
    Terminal failure while redeeming a code or refresh token.
    """

    def __init__(self, description: str):
        super().__init__("invalid_grant", description)


class UnsupportedGrantType(OAuthError):
    def __init__(self, grant_type: Optional[str] = None):
        super().__init__("unsupported_grant_type", f"Unsupported grant type: {grant_type}")


class UnsupportedProvider(OAuthError):
    def __init__(self, provider: str):
        super().__init__("unsupported_provider", f"Unsupported provider: {provider}")


class InvalidCredentials(OAuthError):
    def __init__(self):
        super().__init__("invalid_credentials", "Invalid email or password", 401)


class InvalidTokenError(OAuthError):
    def __init__(self, description: Optional[str] = "Invalid or expired token"):
        super().__init__("invalid_token", description, 401)


class Unauthorized(OAuthError):
    def __init__(self, description: Optional[str] = "Authentication required"):
        super().__init__("unauthorized", description, 401)


class Forbidden(OAuthError):
    def __init__(self, description: Optional[str] = "Admin access required"):
        super().__init__("forbidden", description, 403)


class Conflict(OAuthError):
    def __init__(self, description: str):
        super().__init__("conflict", description, 409)


class MissingFederationState(OAuthError):
    def __init__(self):
        super().__init__("missing_federation_state", "Federation state missing or expired")


class UpstreamError(OAuthError):
    """
    Upstream identity provider failure (token exchange, userinfo, configuration).
    """

    def __init__(self, error: str, description: Optional[str] = None):
        super().__init__(error, description, 500)


async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}"
    )
    return JSONResponse(status_code=500, content={"error": "internal_error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OAuthError, oauth_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
