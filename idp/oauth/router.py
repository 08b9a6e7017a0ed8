"""
OAuth2/OIDC router: authorization, login, token, userinfo, logout and discovery.
"""

from typing import Type, TypeVar
from urllib.parse import urlencode
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from loguru import logger
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from idp.config import settings
from idp.constants import SESSION_COOKIE
from idp.database import get_db_session
from idp.exceptions import InvalidRequest, InvalidTokenError
from idp.federation.service import configured_providers
from idp.oauth.response import (
    DiscoveryDocument,
    LoginResponse,
    LogoutResponse,
    TokenResponse,
    UserInfoResponse,
)
from idp.oauth.schemas import AuthorizeRequest, LoginRequest, LogoutRequest, TokenRequest
from idp.oauth.service import (
    build_redirect_url,
    create_authorization_code,
    get_client,
    handle_token_request,
    revoke_refresh_token,
    validate_client_redirect,
)
from idp.oauth.templater import login_page
from idp.oauth.tokens import InvalidToken, verify_access_token
from idp.oauth.verification import bearer_token
from idp.session.service import (
    clear_session_cookie,
    create_session,
    delete_session,
    get_session,
    set_session_cookie,
)
from idp.user.service import authenticate, get_user_by_id

router = APIRouter()

ModelT = TypeVar("ModelT", bound=BaseModel)
NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


async def parse_body(request: Request, model: Type[ModelT]) -> ModelT:
    """
    Read a JSON or form-encoded body into the given request model.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            raise InvalidRequest("Malformed JSON body")
        if not isinstance(data, dict):
            raise InvalidRequest("Request body must be an object")
    else:
        data = dict(await request.form())
    try:
        return model.model_validate(data)
    except ValidationError:
        raise InvalidRequest("Invalid request parameters")


@router.get("/authorize")
async def authorize(request: Request, db: AsyncSession = Depends(get_db_session)):
    """
    OAuth2 authorization endpoint (authorization code flow, PKCE mandatory).
    """
    try:
        args = AuthorizeRequest.model_validate(dict(request.query_params))
    except ValidationError:
        raise InvalidRequest("Invalid request parameters")
    args.validate_parameters()
    await validate_client_redirect(db, args.client_id, args.redirect_uri)

    session = await get_session(db, request.cookies.get(SESSION_COOKIE))
    if session:
        code = await create_authorization_code(
            db,
            client_id=args.client_id,
            user_id=session.user_id,
            redirect_uri=args.redirect_uri,
            code_challenge=args.code_challenge,
            code_challenge_method=args.code_challenge_method,
            scope=args.scope,
            nonce=args.nonce,
        )
        await db.commit()
        return RedirectResponse(
            url=build_redirect_url(args.redirect_uri, {"code": code, "state": args.state}),
            status_code=302,
        )

    # Commits the lazy deletion of an expired session, if any.
    await db.commit()
    if args.prompt == "none":
        return RedirectResponse(
            url=build_redirect_url(
                args.redirect_uri, {"error": "login_required", "state": args.state}
            ),
            status_code=302,
        )
    return RedirectResponse(url=f"/login?{urlencode(args.forwarded_params())}", status_code=302)


@router.get("/login", response_class=HTMLResponse)
async def login_form(request: Request, db: AsyncSession = Depends(get_db_session)):
    """
    Render the login form; purely presentational, /login POST does all validation.
    """
    try:
        args = AuthorizeRequest.model_validate(dict(request.query_params))
    except ValidationError:
        args = AuthorizeRequest()
    app_name = ""
    if args.client_id:
        client = await get_client(db, args.client_id)
        if client:
            app_name = client.name
    return HTMLResponse(
        content=login_page(
            args.forwarded_params(),
            app_name=app_name,
            federated_providers=configured_providers(),
        )
    )


@router.post("/login", response_model=LoginResponse)
async def login(request: Request, db: AsyncSession = Depends(get_db_session)):
    """
    Authenticate with email and password, start a fresh session and issue a code.
    """
    args = await parse_body(request, LoginRequest)
    args.validate_credentials_present()
    args.validate_parameters(require_response_type=False)

    user = await authenticate(db, args.email, args.password)
    await validate_client_redirect(db, args.client_id, args.redirect_uri)

    # Never reuse a session id that existed before authentication.
    await delete_session(db, request.cookies.get(SESSION_COOKIE))
    session_id = await create_session(db, user.user_id)
    code = await create_authorization_code(
        db,
        client_id=args.client_id,
        user_id=user.user_id,
        redirect_uri=args.redirect_uri,
        code_challenge=args.code_challenge,
        code_challenge_method=args.code_challenge_method,
        scope=args.scope,
        nonce=args.nonce,
    )
    await db.commit()
    logger.info(f"User {user.user_id} logged in for client {args.client_id}")

    redirect_url = build_redirect_url(args.redirect_uri, {"code": code, "state": args.state})
    response = JSONResponse(content=LoginResponse(redirect_uri=redirect_url).model_dump())
    set_session_cookie(response, session_id)
    return response


@router.post("/token", response_model=TokenResponse)
async def token_endpoint(request: Request):
    """OAuth2 token endpoint."""
    args = await parse_body(request, TokenRequest)
    token_response = await handle_token_request(args)
    return JSONResponse(content=token_response.model_dump(), headers=NO_STORE)


@router.post("/token/refresh", response_model=TokenResponse)
async def token_refresh(request: Request):
    """Refresh-only alias of the token endpoint."""
    args = await parse_body(request, TokenRequest)
    args.grant_type = "refresh_token"
    token_response = await handle_token_request(args)
    return JSONResponse(content=token_response.model_dump(), headers=NO_STORE)


@router.get("/userinfo", response_model=UserInfoResponse)
async def userinfo(request: Request, db: AsyncSession = Depends(get_db_session)):
    """OpenID Connect UserInfo endpoint, locally issued access tokens only."""
    token = bearer_token(request)
    if not token:
        raise InvalidTokenError("Missing or invalid authorization header")
    try:
        claims = verify_access_token(token)
    except InvalidToken as exc:
        raise InvalidTokenError(str(exc))
    user = await get_user_by_id(db, claims.sub)
    if not user:
        raise InvalidTokenError("User not found")
    return UserInfoResponse(sub=user.user_id, email=user.email, name=user.name)


@router.post("/logout", response_model=LogoutResponse)
async def logout(request: Request, db: AsyncSession = Depends(get_db_session)):
    """
    End the IdP session and revoke the given refresh token, if any.
    """
    args = await parse_body(request, LogoutRequest)
    await delete_session(db, request.cookies.get(SESSION_COOKIE))
    await revoke_refresh_token(db, args.refresh_token)
    await db.commit()
    response = JSONResponse(content=LogoutResponse().model_dump())
    clear_session_cookie(response)
    return response


@router.get("/.well-known/openid-configuration", response_model=DiscoveryDocument)
async def discovery():
    return DiscoveryDocument.for_issuer(settings.issuer)
