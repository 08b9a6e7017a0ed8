"""
User lookup, local authentication, federated account linking and profile updates.
"""

from typing import List, Optional, Tuple
from loguru import logger
from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from idp.database import generate_uuid
from idp.exceptions import Conflict, InvalidCredentials, InvalidRequest, Unauthorized
from idp.federation.schemas import FederatedIdentity
from idp.oauth.schemas import RefreshToken
from idp.session.service import delete_user_sessions
from idp.user.schemas import (
    User,
    LocalPassword,
    FederatedOnly,
    ProfileUpdateRequest,
    is_valid_email,
    password_problem,
)


async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.get(User, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    return (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()


async def list_users(db: AsyncSession) -> List[User]:
    return list((await db.execute(select(User).order_by(User.created_at))).scalars().all())


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    """
    Check an email/password pair.

    Unknown email, wrong password and federated-only accounts all fail the same way.
    """
    user = await get_user_by_email(db, email)
    if not user or not user.credential.verify(password):
        logger.warning(f"Failed login attempt for {email}")
        raise InvalidCredentials()
    return user


async def create_local_user(
    db: AsyncSession, email: str, password: str, name: str, role: str = "user"
) -> User:
    user = User(user_id=generate_uuid(), email=email, name=name, role=role)
    user.credential = LocalPassword.from_plaintext(password)
    db.add(user)
    await db.flush()
    return user


async def _get_federated_user(db: AsyncSession, provider: str, provider_sub: str) -> Optional[User]:
    link = (
        await db.execute(
            select(FederatedIdentity).where(
                FederatedIdentity.provider == provider,
                FederatedIdentity.provider_sub == provider_sub,
            )
        )
    ).scalar_one_or_none()
    if not link:
        return None
    return await db.get(User, link.user_id)


async def _insert_federated_user(
    db: AsyncSession, provider: str, email: str, name: Optional[str]
) -> Optional[User]:
    """
    Insert a federated-only user (role "user"); None if the email was taken meanwhile.
    """
    user = User(
        user_id=generate_uuid(),
        email=email,
        name=name or email.split("@")[0],
        role="user",
    )
    user.credential = FederatedOnly()
    try:
        async with db.begin_nested():
            db.add(user)
    except IntegrityError:
        return None
    logger.info(f"Created federated user {user.user_id} via {provider}")
    return user


async def _link_identity(
    db: AsyncSession, user: User, provider: str, provider_sub: str, email: Optional[str]
) -> None:
    try:
        async with db.begin_nested():
            db.add(
                FederatedIdentity(
                    user_id=user.user_id,
                    provider=provider,
                    provider_sub=provider_sub,
                    email=email,
                )
            )
    except IntegrityError:
        logger.info(f"Federated identity for {provider} already linked concurrently")


async def find_or_create_federated_user(
    db: AsyncSession,
    provider: str,
    provider_sub: str,
    email: str,
    name: Optional[str] = None,
) -> User:
    """
    Resolve an identity reported by the upstream provider's own userinfo endpoint.

    An existing (provider, sub) link wins. Otherwise the user is matched by email,
    or created as federated-only, and the link is recorded.
    """
    user = await _get_federated_user(db, provider, provider_sub)
    if user:
        return user
    user = await get_user_by_email(db, email)
    if not user:
        user = await _insert_federated_user(db, provider, email, name)
        if not user:
            user = await get_user_by_email(db, email)
            if not user:
                raise RuntimeError(f"Federated user {email} vanished after a conflicting insert")
    await _link_identity(db, user, provider, provider_sub, email)
    return user


async def resolve_federated_bearer_user(
    db: AsyncSession,
    provider: str,
    provider_sub: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
) -> User:
    """
    Resolve the subject of an unverified federated bearer token.

    Only the (provider, sub) link is trusted. A claimed email never selects an
    existing account; when it is missing or belongs to someone else the new user
    gets a placeholder address instead.
    """
    user = await _get_federated_user(db, provider, provider_sub)
    if user:
        return user
    placeholder = f"{provider_sub}@federated.invalid"
    if not email or await get_user_by_email(db, email):
        email = placeholder
    user = await _insert_federated_user(db, provider, email, name)
    if not user:
        user = await _get_federated_user(db, provider, provider_sub)
        if user:
            return user
        if email != placeholder:
            user = await _insert_federated_user(db, provider, placeholder, name)
        if not user:
            user = await get_user_by_email(db, placeholder)
            if not user or user.has_local_password:
                raise RuntimeError(f"Could not create a federated user for {provider_sub}")
            return user
    await _link_identity(db, user, provider, provider_sub, user.email)
    return user


async def update_profile(
    db: AsyncSession,
    user: User,
    args: ProfileUpdateRequest,
    current_session_id: Optional[str] = None,
) -> Tuple[User, bool]:
    """
    Apply a profile update, returning the user and whether the password changed.
    """
    changed = False
    if args.name is not None and args.name != user.name:
        user.name = args.name
        changed = True

    if args.email is not None and args.email != user.email:
        if not is_valid_email(args.email):
            raise InvalidRequest("Invalid email address")
        existing = await get_user_by_email(db, args.email)
        if existing and existing.user_id != user.user_id:
            raise Conflict("Email is already in use")
        user.email = args.email
        changed = True

    password_changed = False
    if args.new_password is not None:
        if user.has_local_password:
            if not args.current_password:
                raise InvalidRequest("Current password is required")
            if not user.credential.verify(args.current_password):
                raise Unauthorized("Current password is incorrect")
        problem = password_problem(args.new_password)
        if problem:
            raise InvalidRequest(problem)
        user.credential = LocalPassword.from_plaintext(args.new_password)
        password_changed = True

    if not changed and not password_changed:
        raise InvalidRequest("No updates provided")

    if password_changed:
        await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user.user_id))
        removed = await delete_user_sessions(
            db, user.user_id, except_session_id=current_session_id
        )
        logger.info(f"Password changed for user {user.user_id}, ended {removed} other sessions")
    await db.flush()
    return user, password_changed
