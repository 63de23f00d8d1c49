"""
Auth Module - Session State
=============================
Tracks the current identity and its cached profile for one storefront
context, and wraps the platform auth calls with loading-flag bookkeeping,
notices and cache invalidation.
"""

import logging
from typing import Awaitable, Callable, List, Optional

from common.exceptions import Farm2HomeError, ValidationError
from common.flash import NoticeBoard
from modules.platform.auth import AuthEvent, AuthSession, Subscription
from modules.platform.client import PlatformClient
from modules.user.models import normalize_role

logger = logging.getLogger("farm2home.session")

IdentityListener = Callable[[Optional[dict]], Awaitable[None]]


class SessionState:
    """Current identity + profile. Mutated only by auth events and the owner."""

    def __init__(self, client: PlatformClient, notices: NoticeBoard):
        self.client = client
        self.notices = notices
        self.user: Optional[dict] = None
        self.profile: Optional[dict] = None
        self.is_loading = True
        self._subscription: Optional[Subscription] = None
        self._listeners: List[IdentityListener] = []

    # ==========================================
    # Derived state
    # ==========================================

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def user_id(self) -> Optional[str]:
        return self.user["id"] if self.user else None

    @property
    def role(self) -> Optional[str]:
        if not self.profile:
            return None
        return normalize_role(self.profile.get("role"))

    # ==========================================
    # Lifecycle
    # ==========================================

    async def initialize(self):
        """Load the current session and profile, then follow session changes."""
        self.is_loading = True
        try:
            session = await self.client.auth.get_session()
            if session:
                self.user = session.user
                await self.fetch_profile(session.user_id)
            self._subscription = self.client.auth.on_auth_state_change(self._on_auth_event)
        finally:
            self.is_loading = False

    def close(self):
        if self._subscription:
            self._subscription.unsubscribe()
            self._subscription = None
        self._listeners.clear()

    def add_identity_listener(self, listener: IdentityListener):
        """Register a coroutine called with the new user (or None) after each change."""
        self._listeners.append(listener)

    async def _on_auth_event(self, event: AuthEvent, session: Optional[AuthSession]):
        # Runs as its own task, outside the auth client's call
        self.user = session.user if session else None
        if self.user:
            await self.fetch_profile(self.user["id"])
        else:
            self.profile = None
        logger.debug(f"Auth event {event.value}: user={self.user_id}")
        for listener in list(self._listeners):
            await listener(self.user)

    # ==========================================
    # Profile
    # ==========================================

    async def fetch_profile(self, user_id: str) -> Optional[dict]:
        try:
            rows = await self.client.table("profiles").select(id=user_id)
        except Farm2HomeError as e:
            logger.error(f"Error fetching profile {user_id}: {e.message}")
            return None
        if rows:
            self.profile = rows[0]
        return self.profile

    async def refresh_profile(self):
        if not self.user:
            return
        await self.fetch_profile(self.user["id"])

    async def update_profile(self, changes: dict) -> bool:
        """
        Persist a partial profile update for the signed-in owner.
        On success the changes are merged into the cached profile.
        """
        if not self.user:
            self.notices.error("Not logged in", "Please log in to update your profile")
            return False
        if "role" in changes:
            changes = dict(changes, role=normalize_role(changes["role"]))

        try:
            await self.client.table("profiles").update(changes, id=self.user["id"])
        except Farm2HomeError as e:
            logger.error(f"Error updating profile {self.user['id']}: {e.message}")
            self.notices.error("Update failed", "Could not update your profile")
            return False

        self.profile = {**(self.profile or {}), **changes}
        self.notices.push("Profile updated", "Your profile has been updated", "success")
        return True

    # ==========================================
    # Sign-in / sign-up / sign-out
    # ==========================================

    async def sign_in(self, email: str, password: str) -> bool:
        self.is_loading = True
        try:
            await self.client.auth.sign_in_with_password(email, password)
            self.notices.push("Welcome back!", "You have successfully logged in", "success")
            return True
        except Farm2HomeError as e:
            logger.info(f"Login failed for {email}: {e.message}")
            self.notices.error("Login failed", e.message)
            return False
        finally:
            self.is_loading = False

    async def sign_up(self, email: str, password: str, full_name: str, location: str, role: str = "consumer") -> bool:
        """Create the identity and its profile row in one step."""
        self.is_loading = True
        try:
            session = await self.client.auth.sign_up(
                email, password, {"full_name": full_name, "location": location},
            )
        except ValidationError:
            self.is_loading = False
            raise
        except Farm2HomeError as e:
            logger.info(f"Signup failed for {email}: {e.message}")
            self.notices.error("Signup failed", e.message)
            self.is_loading = False
            return False

        try:
            await self._create_profile(session, full_name=full_name, location=location, role=role)
        except Farm2HomeError as e:
            logger.error(f"Error creating profile for {email}: {e.message}")
            self.notices.error(
                "Profile creation failed",
                "Your account was created but we couldn't set up your profile.",
            )
            return False
        finally:
            self.is_loading = False

        self.notices.push("Account created!", "Your account has been created successfully", "success")
        return True

    async def sign_in_with_oauth(self, provider: str, redirect_to: str = "/") -> Optional[str]:
        try:
            return await self.client.auth.sign_in_with_oauth(provider, redirect_to)
        except Farm2HomeError as e:
            self.notices.error("Login failed", e.message)
            return None

    async def complete_oauth(self, provider: str, code: str, state: str) -> Optional[str]:
        """Finish an OAuth sign-in; first sign-in creates the profile. Returns the redirect target."""
        self.is_loading = True
        try:
            session, redirect_to = await self.client.auth.exchange_code_for_session(provider, code, state)
            existing = await self.client.table("profiles").select(id=session.user_id)
            if not existing:
                meta = session.user.get("user_metadata") or {}
                await self._create_profile(
                    session,
                    full_name=meta.get("full_name") or session.user["email"].split("@")[0],
                    location="",
                    role="consumer",
                )
            self.notices.push("Welcome!", "You have successfully logged in", "success")
            return redirect_to
        except Farm2HomeError as e:
            logger.warning(f"OAuth sign-in with {provider} failed: {e.message}")
            self.notices.error("Login failed", e.message)
            return None
        finally:
            self.is_loading = False

    async def sign_out(self):
        self.is_loading = True
        try:
            await self.client.auth.sign_out()
            self.user = None
            self.profile = None
            self.notices.push("Signed out", "You have been signed out")
        finally:
            self.is_loading = False

    async def _create_profile(self, session: AuthSession, full_name: str, location: str, role: str):
        profile = await self.client.table("profiles").insert({
            "id": session.user_id,
            "full_name": full_name,
            "location": location,
            "bio": "",
            "role": normalize_role(role),
        })
        if self.user_id == session.user_id:
            self.profile = profile
