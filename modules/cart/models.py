"""
Cart Module - Models
=====================
Cart entries with per-consumer uniqueness and quantity constraints.
"""

from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class CartItem(Base):
    __tablename__ = "cart"

    id = Column(Integer, primary_key=True)
    consumer_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    produce_id = Column(Integer, ForeignKey("produce.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    consumer = relationship("Profile", foreign_keys=[consumer_id])
    produce = relationship("Produce")

    __table_args__ = (
        UniqueConstraint("consumer_id", "produce_id", name="uq_cart_consumer_produce"),
        CheckConstraint("quantity >= 1", name="ck_cart_qty"),
    )
