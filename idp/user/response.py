"""
Response models for the profile and admin APIs.
"""

from typing import Optional
from pydantic import BaseModel


class UserResponse(BaseModel):
    """Public view of a user; never includes password data."""

    id: str
    email: str
    name: str
    role: str
    created_at: Optional[str] = None
    has_local_password: bool

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        return cls(
            id=user.user_id,
            email=user.email,
            name=user.name,
            role=user.role,
            created_at=user.created_at.isoformat() if user.created_at else None,
            has_local_password=user.has_local_password,
        )


class ProfileUpdateResponse(BaseModel):
    user: UserResponse
    password_changed: bool
