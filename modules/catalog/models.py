"""
Catalog Module - Models
========================
Produce listings owned by farmer profiles.
"""

from sqlalchemy import (
    Column, Integer, String, Text, Numeric, ForeignKey, DateTime,
    CheckConstraint, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class Produce(Base):
    __tablename__ = "produce"

    id = Column(Integer, primary_key=True, index=True)
    farmer_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Numeric(10, 2), nullable=False)
    image_url = Column(String, nullable=True)
    location = Column(String, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    farmer = relationship("Profile", foreign_keys=[farmer_id])

    __table_args__ = (
        CheckConstraint("price > 0", name="ck_produce_price"),
        Index("ix_produce_created", "created_at"),
    )

    def __repr__(self):
        return f"<Produce {self.name}>"
