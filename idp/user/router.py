"""
Profile and admin resource APIs, authenticated with bearer tokens.
"""

from typing import List
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from idp.constants import SESSION_COOKIE
from idp.database import get_db_session
from idp.oauth.verification import AuthenticatedUser, get_current_user, require_admin
from idp.user.response import ProfileUpdateResponse, UserResponse
from idp.user.schemas import ProfileUpdateRequest
from idp.user.service import list_users, update_profile

router = APIRouter()


@router.get("/profile", response_model=UserResponse)
async def get_profile(current: AuthenticatedUser = Depends(get_current_user)):
    return UserResponse.from_user(current.user)


@router.patch("/profile", response_model=ProfileUpdateResponse)
async def patch_profile(
    args: ProfileUpdateRequest,
    request: Request,
    current: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """
    Update name, email and/or password. Changing the password ends every other
    session of the user and revokes their refresh tokens.
    """
    user, password_changed = await update_profile(
        db, current.user, args, current_session_id=request.cookies.get(SESSION_COOKIE)
    )
    await db.commit()
    return ProfileUpdateResponse(
        user=UserResponse.from_user(user), password_changed=password_changed
    )


@router.get("/admin/users", response_model=List[UserResponse])
async def admin_list_users(
    _: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return [UserResponse.from_user(user) for user in await list_users(db)]
