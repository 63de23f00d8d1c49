"""
Order Module - Models
======================
One order row per cart line, with the price snapshot taken at checkout.
"""

import enum
from sqlalchemy import (
    Column, Integer, String, Numeric, ForeignKey, DateTime, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELED = "canceled"


STATUS_LABELS = {
    OrderStatus.PENDING.value: "Pending",
    OrderStatus.PROCESSING.value: "Processing",
    OrderStatus.SHIPPED.value: "Shipped",
    OrderStatus.DELIVERED.value: "Delivered",
    OrderStatus.CANCELED.value: "Canceled",
}

STATUS_COLORS = {
    OrderStatus.PENDING.value: "warning",
    OrderStatus.PROCESSING.value: "info",
    OrderStatus.SHIPPED.value: "primary",
    OrderStatus.DELIVERED.value: "success",
    OrderStatus.CANCELED.value: "danger",
}


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    consumer_id = Column(String(36), ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False, index=True)
    # RESTRICT: listings with order history cannot be removed
    produce_id = Column(Integer, ForeignKey("produce.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    status = Column(String, default=OrderStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    consumer = relationship("Profile", foreign_keys=[consumer_id])
    produce = relationship("Produce", foreign_keys=[produce_id])

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_qty"),
    )
