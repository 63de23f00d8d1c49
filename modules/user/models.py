"""
User Module - Profile Model
==============================
One profile per auth identity. Role is an open string: "farmer" and
"consumer" are the recognised values.
"""

import enum

from sqlalchemy import Column, String, Text, Numeric, DateTime, Index
from sqlalchemy.sql import func
from config.database import Base


class Role(str, enum.Enum):
    FARMER = "farmer"
    CONSUMER = "consumer"


DEFAULT_ROLE = Role.CONSUMER.value


def normalize_role(value) -> str:
    """Lower-case and trim a role; blank falls back to the default."""
    role = str(value or "").strip().lower()
    return role or DEFAULT_ROLE


class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the auth identity
    id = Column(String(36), primary_key=True)

    full_name = Column(String, nullable=False, default="")
    role = Column(String(32), nullable=False, default=DEFAULT_ROLE, server_default=DEFAULT_ROLE)
    location = Column(String, nullable=False, default="")
    bio = Column(Text, nullable=True)
    rating = Column(Numeric(3, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_profiles_role", "role"),
    )

    def __repr__(self):
        return f"<Profile {self.id} {self.role}>"
