"""
Cart Module - Cart State
==========================
The signed-in consumer's cart entries, derived totals, and order placement.

Local state is only changed after the matching remote call succeeded. Every
remote failure is logged, reported as a notice, and leaves the cart as it
was. Nothing is retried.
"""

import asyncio
import logging
from decimal import Decimal
from typing import List, Optional

from common.exceptions import Farm2HomeError
from common.flash import NoticeBoard
from common.helpers import to_decimal
from modules.auth.service import SessionState
from modules.order.models import OrderStatus
from modules.platform.client import PlatformClient

logger = logging.getLogger("farm2home.cart")

CART_JOIN = ("produce.farmer",)
MAX_QUANTITY = 999


def line_total(item: dict) -> Decimal:
    """price x quantity for one cart row; a missing joined price counts as 0."""
    produce = item.get("produce") or {}
    return to_decimal(produce.get("price")) * int(item.get("quantity") or 0)


class CartState:

    def __init__(self, client: PlatformClient, session: SessionState, notices: NoticeBoard):
        self.client = client
        self.session = session
        self.notices = notices
        self.items: List[dict] = []
        self.is_loading = False
        self.last_order_ids: List[int] = []
        session.add_identity_listener(self.handle_identity_change)

    # ==========================================
    # Derived values (recomputed on every read)
    # ==========================================

    @property
    def cart_count(self) -> int:
        return sum(int(item["quantity"]) for item in self.items)

    @property
    def total_price(self) -> Decimal:
        return sum((line_total(item) for item in self.items), Decimal("0"))

    def find_by_produce(self, produce_id: int) -> Optional[dict]:
        return next((item for item in self.items if item["produce_id"] == produce_id), None)

    def find(self, cart_item_id: int) -> Optional[dict]:
        return next((item for item in self.items if item["id"] == cart_item_id), None)

    # ==========================================
    # Loading
    # ==========================================

    async def handle_identity_change(self, user: Optional[dict]):
        await self.load()

    async def load(self):
        """Fetch the consumer's entries; signed out means an empty cart and no call."""
        if not self.session.is_authenticated:
            self.items = []
            return

        self.is_loading = True
        try:
            self.items = await self.client.table("cart").select(
                join=CART_JOIN,
                order_by="created_at",
                consumer_id=self.session.user_id,
            )
        except Farm2HomeError as e:
            logger.error(f"Error fetching cart: {e.message}")
            self.notices.error("Error", "Failed to load your cart")
        finally:
            self.is_loading = False

    # ==========================================
    # Mutations
    # ==========================================

    async def add_to_cart(self, produce: dict, quantity: int = 1) -> bool:
        if not self.session.is_authenticated:
            self.notices.push("Not logged in", "Please log in to add items to your cart", "warning")
            return False
        if quantity < 1:
            self.notices.error("Error", "Quantity must be at least 1")
            return False

        existing = self.find_by_produce(produce["id"])
        if quantity + (existing["quantity"] if existing else 0) > MAX_QUANTITY:
            self.notices.error("Error", f"You can order at most {MAX_QUANTITY} of one item")
            return False
        if existing:
            ok = await self.update_quantity(existing["id"], existing["quantity"] + quantity, announce=False)
        else:
            ok = await self._insert(produce, quantity)

        if ok:
            self.notices.push(
                "Added to cart", f"{quantity} × {produce.get('name', 'item')} added to your cart", "success",
            )
        return ok

    async def add_by_id(self, produce_id: int, quantity: int = 1) -> bool:
        """add_to_cart for callers that only hold a produce id (form posts)."""
        if not self.session.is_authenticated:
            self.notices.push("Not logged in", "Please log in to add items to your cart", "warning")
            return False
        try:
            produce = await self.client.table("produce").select_one(id=produce_id)
        except Farm2HomeError as e:
            logger.warning(f"Cannot add produce {produce_id} to cart: {e.message}")
            self.notices.error("Error", "This produce is no longer available")
            return False
        return await self.add_to_cart(produce, quantity)

    async def _insert(self, produce: dict, quantity: int) -> bool:
        self.is_loading = True
        try:
            row = await self.client.table("cart").insert(
                {
                    "consumer_id": self.session.user_id,
                    "produce_id": produce["id"],
                    "quantity": quantity,
                },
                join=CART_JOIN,
            )
            self.items = self.items + [row]
            return True
        except Farm2HomeError as e:
            logger.error(f"Error adding produce {produce.get('id')} to cart: {e.message}")
            self.notices.error("Error", "Failed to add item to cart")
            return False
        finally:
            self.is_loading = False

    async def update_quantity(self, cart_item_id: int, quantity: int, announce: bool = True) -> bool:
        """Set an entry's quantity; anything below 1 removes the entry."""
        if quantity < 1:
            return await self.remove_from_cart(cart_item_id)
        if quantity > MAX_QUANTITY:
            self.notices.error("Error", f"You can order at most {MAX_QUANTITY} of one item")
            return False

        self.is_loading = True
        try:
            await self.client.table("cart").update(
                {"quantity": quantity}, id=cart_item_id, consumer_id=self.session.user_id,
            )
            self.items = [
                dict(item, quantity=quantity) if item["id"] == cart_item_id else item
                for item in self.items
            ]
            if announce:
                self.notices.push("Cart updated", "Item quantity updated", "success")
            return True
        except Farm2HomeError as e:
            logger.error(f"Error updating cart item {cart_item_id}: {e.message}")
            self.notices.error("Error", "Failed to update item quantity")
            return False
        finally:
            self.is_loading = False

    async def remove_from_cart(self, cart_item_id: int) -> bool:
        self.is_loading = True
        try:
            await self.client.table("cart").delete(id=cart_item_id, consumer_id=self.session.user_id)
            self.items = [item for item in self.items if item["id"] != cart_item_id]
            self.notices.push("Item removed", "Item removed from your cart")
            return True
        except Farm2HomeError as e:
            logger.error(f"Error removing cart item {cart_item_id}: {e.message}")
            self.notices.error("Error", "Failed to remove item from cart")
            return False
        finally:
            self.is_loading = False

    async def clear_cart(self) -> bool:
        if not self.session.is_authenticated:
            return False

        self.is_loading = True
        try:
            await self.client.table("cart").delete(consumer_id=self.session.user_id)
            self.items = []
            return True
        except Farm2HomeError as e:
            logger.error(f"Error clearing cart: {e.message}")
            self.notices.error("Error", "Failed to clear cart")
            return False
        finally:
            self.is_loading = False

    # ==========================================
    # Checkout
    # ==========================================

    async def place_order(self) -> bool:
        """
        Create one pending order per cart entry, all inserts in flight at once.

        Reports all-or-nothing: any failed insert returns False and leaves the
        cart untouched, but inserts that already succeeded are not undone.
        """
        if not self.session.is_authenticated or not self.items:
            return False

        self.is_loading = True
        self.last_order_ids = []
        try:
            orders = self.client.table("orders")
            results = await asyncio.gather(
                *[
                    orders.insert({
                        "consumer_id": self.session.user_id,
                        "produce_id": item["produce_id"],
                        "quantity": item["quantity"],
                        "total_price": line_total(item),
                        "status": OrderStatus.PENDING.value,
                    })
                    for item in self.items
                ],
                return_exceptions=True,
            )
        finally:
            self.is_loading = False

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            created = len(results) - len(failures)
            logger.error(
                f"Order placement failed for {len(failures)} of {len(results)} items "
                f"({created} orders already created): {failures[0]}"
            )
            self.notices.error("Error", "Failed to place order")
            return False

        self.last_order_ids = [row["id"] for row in results]
        logger.info(f"Placed {len(results)} orders for {self.session.user_id}")
        await self.clear_cart()
        self.notices.push("Order placed!", "Your order has been placed successfully", "success")
        return True
