"""
Auth Module - Storefront Context
===================================
Everything one visitor's request works with: the platform client bound to
their session token, session state, cart, catalog, listings, order history
and the notice board they all report to.

Built per request from the auth cookie and closed afterwards; views receive
it explicitly instead of reaching for globals.
"""

import logging
from typing import Optional

from common.flash import NoticeBoard
from modules.auth.service import SessionState
from modules.cart.service import CartState
from modules.catalog.listing_service import ListingManager
from modules.catalog.service import ProduceCatalog
from modules.order.service import OrderHistory
from modules.platform.client import PlatformClient, create_client

logger = logging.getLogger("farm2home.context")


class StorefrontContext:

    def __init__(self, client: PlatformClient):
        self.client = client
        self.notices = NoticeBoard()
        self.session = SessionState(client, self.notices)
        self.cart = CartState(client, self.session, self.notices)
        self.catalog = ProduceCatalog(client, self.notices)
        self.listings = ListingManager(client, self.session, self.notices, self.catalog)
        self.orders = OrderHistory(client, self.notices)
        self._closed = False

    @classmethod
    async def open(
        cls,
        access_token: Optional[str] = None,
        client: Optional[PlatformClient] = None,
    ) -> "StorefrontContext":
        """Create a context, restore the session and load the visitor's cart."""
        ctx = cls(client or create_client(access_token))
        await ctx.session.initialize()
        await ctx.cart.load()
        return ctx

    @property
    def access_token(self) -> Optional[str]:
        return self.client.auth.access_token

    @property
    def user(self) -> Optional[dict]:
        return self.session.user

    @property
    def profile(self) -> Optional[dict]:
        return self.session.profile

    async def settle(self):
        """Wait for pending session-change handling (profile refetch, cart reload)."""
        await self.client.auth.wait_for_dispatch()

    async def close(self):
        if self._closed:
            return
        self._closed = True
        await self.settle()
        self.session.close()
