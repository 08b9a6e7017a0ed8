"""
User ORM model, its credential variant and profile request models.
"""

import re
from typing import Optional, Union
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import validates
from passlib.hash import argon2
from pydantic import BaseModel, ConfigDict, field_validator
from idp.constants import OAUTH_USER_NO_PASSWORD, MIN_PASSWORD_LENGTH, USER_ROLES
from idp.database import Base, generate_uuid, utcnow

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class LocalPassword(BaseModel):
    """
    Account that can sign in with an argon2-hashed password.
    """

    model_config = ConfigDict(frozen=True)

    password_hash: str

    @classmethod
    def from_plaintext(cls, password: str) -> "LocalPassword":
        return cls(password_hash=argon2.hash(password))

    def verify(self, password: str) -> bool:
        if not password:
            return False
        try:
            return argon2.verify(password, self.password_hash)
        except (ValueError, TypeError):
            return False


class FederatedOnly(BaseModel):
    """
    Account created through an upstream provider; no password ever matches.
    """

    model_config = ConfigDict(frozen=True)

    def verify(self, password: str) -> bool:
        return False


Credential = Union[LocalPassword, FederatedOnly]


class User(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="user")
    created_at = Column(DateTime, default=utcnow)

    @validates("role")
    def validate_role(self, _, role):
        if role not in USER_ROLES:
            raise ValueError(f"Invalid role: {role}")
        return role

    @property
    def credential(self) -> Credential:
        if not self.password_hash or self.password_hash == OAUTH_USER_NO_PASSWORD:
            return FederatedOnly()
        return LocalPassword(password_hash=self.password_hash)

    @credential.setter
    def credential(self, value: Credential):
        if isinstance(value, LocalPassword):
            self.password_hash = value.password_hash
        else:
            self.password_hash = OAUTH_USER_NO_PASSWORD

    @property
    def has_local_password(self) -> bool:
        return isinstance(self.credential, LocalPassword)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def is_valid_email(email: str) -> bool:
    return bool(email) and EMAIL_RE.match(email) is not None


def password_problem(password: str) -> Optional[str]:
    """
    Describe why a new password is too weak, or None when it is acceptable.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if not re.search(r"[A-Z]", password):
        return "Password must contain an uppercase letter"
    if not re.search(r"[a-z]", password):
        return "Password must contain a lowercase letter"
    if not re.search(r"\d", password):
        return "Password must contain a number"
    return None


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = None

    @field_validator("name", "email")
    @classmethod
    def strip_blank(cls, v):
        if v is not None:
            v = v.strip()
        return v or None

