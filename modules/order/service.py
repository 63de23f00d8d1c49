"""
Order Module - Order History
===============================
Read-only order lists for the profile page: a consumer sees the orders they
placed, a farmer sees the orders placed against their own listings.
Orders are created by CartState.place_order; status changes happen
outside this application.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from common.exceptions import Farm2HomeError
from common.flash import NoticeBoard
from common.helpers import to_decimal
from modules.platform.client import PlatformClient
from modules.user.models import Role, normalize_role

logger = logging.getLogger("farm2home.order")


class OrderHistory:

    def __init__(self, client: PlatformClient, notices: NoticeBoard):
        self.client = client
        self.notices = notices
        self.orders: List[dict] = []
        self.is_loading = False

    @property
    def total_spent(self) -> Decimal:
        return sum((to_decimal(o.get("total_price")) for o in self.orders), Decimal("0"))

    async def load(self, profile: Optional[dict]):
        if not profile:
            self.orders = []
            return

        self.is_loading = True
        try:
            orders = self.client.table("orders")
            if normalize_role(profile.get("role")) == Role.FARMER.value:
                own = await self.client.table("produce").select(farmer_id=profile["id"])
                if not own:
                    self.orders = []
                    return
                self.orders = await orders.select(
                    join=("produce", "consumer"),
                    order_by="created_at",
                    descending=True,
                    produce_id__in=[p["id"] for p in own],
                )
            else:
                self.orders = await orders.select(
                    join=("produce",),
                    order_by="created_at",
                    descending=True,
                    consumer_id=profile["id"],
                )
        except Farm2HomeError as e:
            logger.error(f"Error fetching orders for {profile.get('id')}: {e.message}")
            self.notices.error("Error", "Failed to load orders")
        finally:
            self.is_loading = False

    async def load_by_ids(self, consumer_id: str, order_ids: List[int]):
        """The consumer's orders among the given ids (order confirmation page)."""
        if not order_ids:
            self.orders = []
            return
        try:
            self.orders = await self.client.table("orders").select(
                join=("produce",),
                order_by="id",
                consumer_id=consumer_id,
                id__in=order_ids,
            )
        except Farm2HomeError as e:
            logger.error(f"Error fetching orders {order_ids}: {e.message}")
            self.notices.error("Error", "Failed to load your order")
