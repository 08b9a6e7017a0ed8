"""
Routes for the federated login bridge.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from idp.config import settings
from idp.constants import (
    FEDERATION_STATE_COOKIE,
    FEDERATION_STATE_EXPIRY_SECONDS,
    SESSION_COOKIE,
)
from idp.database import get_db_session
from idp.exceptions import InvalidRequest, MissingFederationState, OAuthError
from idp.federation.schemas import FederationState
from idp.federation.service import (
    build_authorize_url,
    complete_federated_login,
    exchange_upstream_code,
    fetch_upstream_userinfo,
    get_provider,
    open_state,
    seal_state,
)
from idp.oauth.pkce import generate_pkce_pair
from idp.oauth.schemas import AuthorizeRequest
from idp.oauth.service import validate_client_redirect
from idp.session.service import set_session_cookie

router = APIRouter()


def _clear_state_cookie(response: Response) -> None:
    response.delete_cookie(
        key=FEDERATION_STATE_COOKIE,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


@router.get("/{provider}/start")
async def federated_start(
    provider: str,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
):
    """
    Begin a federated login: validate the local request, then bounce to upstream.
    """
    upstream = get_provider(provider)
    try:
        args = AuthorizeRequest.model_validate(dict(request.query_params))
    except ValidationError:
        raise InvalidRequest("Invalid request parameters")
    args.validate_parameters(require_response_type=False)
    await validate_client_redirect(db, args.client_id, args.redirect_uri)

    verifier, challenge = generate_pkce_pair()
    sealed = seal_state(
        FederationState(
            client_id=args.client_id,
            redirect_uri=args.redirect_uri,
            code_challenge=args.code_challenge,
            code_challenge_method=args.code_challenge_method,
            state=args.state,
            scope=args.scope,
            nonce=args.nonce,
            pkce_verifier=verifier,
        )
    )
    response = RedirectResponse(url=build_authorize_url(upstream, challenge), status_code=302)
    response.set_cookie(
        key=FEDERATION_STATE_COOKIE,
        value=sealed,
        max_age=FEDERATION_STATE_EXPIRY_SECONDS,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )
    return response


@router.get("/{provider}/callback")
async def federated_callback(
    provider: str,
    request: Request,
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
):
    """
    Finish a federated login. The state cookie is cleared on every outcome.
    """
    try:
        upstream = get_provider(provider)
        if error:
            raise OAuthError(error, error_description or "Upstream authorization failed")
        if not code:
            raise OAuthError("missing_code", "Authorization code missing from provider")
        state = open_state(request.cookies.get(FEDERATION_STATE_COOKIE))
        if state is None:
            raise MissingFederationState()
        if not state.client_id or not state.redirect_uri:
            raise InvalidRequest("Federation state is incomplete")

        access_token = await exchange_upstream_code(upstream, code, state.pkce_verifier)
        userinfo = await fetch_upstream_userinfo(upstream, access_token)
        session_id, redirect_url = await complete_federated_login(
            upstream, state, userinfo, previous_session_id=request.cookies.get(SESSION_COOKIE)
        )
    except OAuthError as exc:
        response = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
        _clear_state_cookie(response)
        return response

    response = RedirectResponse(url=redirect_url, status_code=302)
    set_session_cookie(response, session_id)
    _clear_state_cookie(response)
    return response
