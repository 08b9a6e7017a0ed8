"""
ORM model for browser sessions at the identity provider.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey
from pydantic import BaseModel
from idp.database import Base, generate_uuid, utcnow


class UserSession(Base):
    __tablename__ = "sessions"

    session_id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(
        String, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)

    def is_expired(self) -> bool:
        return self.expires_at < utcnow()


class SessionInfo(BaseModel):
    session_id: str
    user_id: str
