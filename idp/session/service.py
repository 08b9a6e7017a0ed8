"""
Session store: create, look up (with lazy expiry) and delete IdP sessions.
"""

from datetime import timedelta
from typing import Optional
from fastapi import Response
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from idp.config import settings
from idp.constants import SESSION_COOKIE, SESSION_DURATION_SECONDS
from idp.database import generate_uuid, utcnow
from idp.session.schemas import UserSession, SessionInfo


async def create_session(db: AsyncSession, user_id: str) -> str:
    session_id = generate_uuid()
    db.add(
        UserSession(
            session_id=session_id,
            user_id=user_id,
            expires_at=utcnow() + timedelta(seconds=SESSION_DURATION_SECONDS),
        )
    )
    await db.flush()
    return session_id


async def get_session(db: AsyncSession, session_id: Optional[str]) -> Optional[SessionInfo]:
    """
    Return the live session, deleting it instead if it has expired.
    """
    if not session_id:
        return None
    session = await db.get(UserSession, session_id)
    if session is None:
        return None
    if session.is_expired():
        await db.delete(session)
        await db.flush()
        return None
    return SessionInfo(session_id=session.session_id, user_id=session.user_id)


async def delete_session(db: AsyncSession, session_id: Optional[str]) -> None:
    if not session_id:
        return
    await db.execute(delete(UserSession).where(UserSession.session_id == session_id))


async def delete_user_sessions(
    db: AsyncSession, user_id: str, except_session_id: Optional[str] = None
) -> int:
    query = delete(UserSession).where(UserSession.user_id == user_id)
    if except_session_id:
        query = query.where(UserSession.session_id != except_session_id)
    result = await db.execute(query)
    return result.rowcount or 0


def set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_id,
        max_age=SESSION_DURATION_SECONDS,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )
