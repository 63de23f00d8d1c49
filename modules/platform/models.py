"""
Platform Module - Auth Identity Model
========================================
Identities owned by the auth subsystem. The rest of the app only ever sees
the id and email through a session; profiles hang off the same id.
"""

import uuid

from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
from config.database import Base


def new_identity_id() -> str:
    return str(uuid.uuid4())


class Identity(Base):
    __tablename__ = "auth_identities"

    id = Column(String(36), primary_key=True, default=new_identity_id)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=True)          # NULL for OAuth-only identities
    provider = Column(String(32), nullable=False, default="email")
    user_metadata = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_sign_in_at = Column(DateTime(timezone=True), nullable=True)

    def to_user(self) -> dict:
        """Public view of the identity, as carried by a session."""
        return {
            "id": self.id,
            "email": self.email,
            "provider": self.provider,
            "user_metadata": dict(self.user_metadata or {}),
        }
