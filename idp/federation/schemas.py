"""
Federated identity links and the data carried across the upstream round trip.
"""

from typing import Optional
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from pydantic import BaseModel
from idp.database import Base, generate_uuid, utcnow


class FederatedIdentity(Base):
    """
    Links a local user to a subject at an upstream identity provider.
    """

    __tablename__ = "federated_identities"

    identity_id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(
        String, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider = Column(String, nullable=False)
    provider_sub = Column(String, nullable=False)
    email = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("provider", "provider_sub", name="constraint_federated_provider_sub"),
    )


class UpstreamProvider(BaseModel):
    name: str
    client_id: str
    client_secret: str
    authorize_url: str
    token_url: str
    userinfo_url: str
    scopes: str
    extra_authorize_params: dict = {}

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class FederationState(BaseModel):
    """
    The original local authorization request plus the upstream PKCE verifier,
    sealed into the federation_state cookie.
    """

    client_id: str
    redirect_uri: str
    code_challenge: str
    code_challenge_method: str
    state: Optional[str] = None
    scope: Optional[str] = None
    nonce: Optional[str] = None
    pkce_verifier: str


class UpstreamUserInfo(BaseModel):
    sub: str
    email: Optional[str] = None
    name: Optional[str] = None
