"""
Platform Module - Auth Client
================================
Password and OAuth sign-in, sign-up, sign-out, and session-change
notifications.

Sessions are signed JWTs carried by the caller (cookie). Session-change
callbacks are never run inside the call that caused them: each delivery is
scheduled as its own task and runs on a later turn of the event loop, so a
callback may freely call back into this client.
"""

import asyncio
import enum
import inspect
import logging
import urllib.parse
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

import httpx
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from config.settings import OAUTH_PROVIDERS, BASE_URL, MIN_PASSWORD_LENGTH
from common.exceptions import AuthenticationError, DuplicateError, RemoteError, ValidationError
from common.helpers import now_utc
from common.security import hash_password, verify_password, create_token, decode_token
from modules.platform.models import Identity

logger = logging.getLogger("farm2home.auth")

OAUTH_STATE_MINUTES = 10


class AuthEvent(str, enum.Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


@dataclass
class AuthSession:
    access_token: str
    user: Dict[str, Any]
    expires_at: Optional[datetime] = None

    @property
    def user_id(self) -> str:
        return self.user["id"]


AuthCallback = Callable[[AuthEvent, Optional[AuthSession]], Optional[Awaitable[None]]]


class Subscription:
    def __init__(self, client: "AuthClient", callback: AuthCallback):
        self._client = client
        self.callback = callback

    def unsubscribe(self):
        self._client._subscriptions.discard(self)


def _session_for(identity: Identity) -> AuthSession:
    user = identity.to_user()
    token = create_token({
        "sub": user["id"],
        "email": user["email"],
        "provider": user["provider"],
        "user_metadata": user["user_metadata"],
    })
    payload = decode_token(token) or {}
    expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc) if "exp" in payload else None
    return AuthSession(access_token=token, user=user, expires_at=expires_at)


class AuthClient:

    def __init__(
        self,
        session_factory: Callable[[], Session],
        access_token: Optional[str] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._session_factory = session_factory
        self._session: Optional[AuthSession] = self._restore(access_token)
        self._subscriptions: Set[Subscription] = set()
        self._pending: Set[asyncio.Task] = set()
        self._http_transport = http_transport

    # ==========================================
    # Session
    # ==========================================

    async def get_session(self) -> Optional[AuthSession]:
        """Current session, or None when signed out or expired."""
        if self._session and self._session.expires_at and self._session.expires_at <= now_utc():
            self._session = None
        return self._session

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    # ==========================================
    # Password auth
    # ==========================================

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        email = (email or "").strip().lower()

        def work(db: Session) -> AuthSession:
            identity = db.query(Identity).filter(Identity.email == email).first()
            if not identity or not verify_password(password, identity.password_hash):
                raise AuthenticationError("Invalid login credentials")
            identity.last_sign_in_at = now_utc()
            db.commit()
            return _session_for(identity)

        session = await self._run(work)
        self._set_session(session, AuthEvent.SIGNED_IN)
        logger.info(f"Signed in {email}")
        return session

    async def sign_up(self, email: str, password: str, metadata: Optional[dict] = None) -> AuthSession:
        """Create a password identity and sign it in."""
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValidationError({"email": "Enter a valid email address"})
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError({"password": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"})

        def work(db: Session) -> AuthSession:
            identity = Identity(
                email=email,
                password_hash=hash_password(password),
                provider="email",
                user_metadata=dict(metadata or {}),
                last_sign_in_at=now_utc(),
            )
            db.add(identity)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise DuplicateError("User already registered")
            db.refresh(identity)
            return _session_for(identity)

        session = await self._run(work)
        self._set_session(session, AuthEvent.SIGNED_IN)
        logger.info(f"Registered {email}")
        return session

    async def sign_out(self):
        if self._session is None:
            return
        self._set_session(None, AuthEvent.SIGNED_OUT)

    # ==========================================
    # OAuth
    # ==========================================

    async def sign_in_with_oauth(self, provider: str, redirect_to: str = "/") -> str:
        """Return the provider authorize URL the browser should be sent to."""
        conf = self._provider(provider)
        state = create_token(
            {"provider": provider, "redirect_to": redirect_to},
            expires_minutes=OAUTH_STATE_MINUTES,
        )
        params = {
            "client_id": conf["client_id"],
            "redirect_uri": self.oauth_callback_url(provider),
            "response_type": "code",
            "scope": conf["scope"],
            "state": state,
        }
        return f"{conf['authorize_url']}?{urllib.parse.urlencode(params)}"

    async def exchange_code_for_session(self, provider: str, code: str, state: str) -> Tuple[AuthSession, str]:
        """
        Complete the OAuth round trip: trade the code for provider tokens,
        read the user's email, find or create the identity, sign it in.

        Returns:
            (session, redirect_to)
        """
        conf = self._provider(provider)
        payload = decode_token(state or "")
        if not payload or payload.get("provider") != provider:
            raise AuthenticationError("OAuth state is invalid or expired")

        try:
            async with httpx.AsyncClient(transport=self._http_transport, timeout=15) as http:
                token_resp = await http.post(conf["token_url"], data={
                    "code": code,
                    "client_id": conf["client_id"],
                    "client_secret": conf["client_secret"],
                    "redirect_uri": self.oauth_callback_url(provider),
                    "grant_type": "authorization_code",
                })
                token_resp.raise_for_status()
                provider_token = token_resp.json().get("access_token")
                if not provider_token:
                    raise AuthenticationError("Provider did not return an access token")

                info_resp = await http.get(
                    conf["userinfo_url"],
                    headers={"Authorization": f"Bearer {provider_token}"},
                )
                info_resp.raise_for_status()
                info = info_resp.json()
        except httpx.HTTPError as e:
            logger.error(f"OAuth exchange with {provider} failed: {e}")
            raise AuthenticationError(f"Could not sign in with {provider}")

        email = (info.get("email") or "").strip().lower()
        if not email:
            raise AuthenticationError(f"{provider} did not share an email address")
        metadata = {"full_name": info.get("name") or "", "avatar_url": info.get("picture") or ""}

        def work(db: Session) -> AuthSession:
            identity = db.query(Identity).filter(Identity.email == email).first()
            if identity is None:
                identity = Identity(email=email, provider=provider, user_metadata=metadata)
                db.add(identity)
            identity.last_sign_in_at = now_utc()
            db.commit()
            db.refresh(identity)
            return _session_for(identity)

        session = await self._run(work)
        self._set_session(session, AuthEvent.SIGNED_IN)
        logger.info(f"Signed in {email} via {provider}")
        return session, payload.get("redirect_to") or "/"

    @staticmethod
    def oauth_callback_url(provider: str) -> str:
        return f"{BASE_URL}/auth/oauth/{provider}/callback"

    # ==========================================
    # Notifications
    # ==========================================

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        subscription = Subscription(self, callback)
        self._subscriptions.add(subscription)
        return subscription

    async def wait_for_dispatch(self):
        """Wait until every scheduled session-change delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ==========================================
    # Private helpers
    # ==========================================

    def _restore(self, access_token: Optional[str]) -> Optional[AuthSession]:
        if not access_token:
            return None
        payload = decode_token(access_token)
        if not payload or not payload.get("sub"):
            return None
        user = {
            "id": payload["sub"],
            "email": payload.get("email", ""),
            "provider": payload.get("provider", "email"),
            "user_metadata": payload.get("user_metadata") or {},
        }
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc) if "exp" in payload else None
        return AuthSession(access_token=access_token, user=user, expires_at=expires_at)

    def _provider(self, provider: str) -> dict:
        conf = OAUTH_PROVIDERS.get(provider)
        if not conf or not conf.get("client_id"):
            raise AuthenticationError(f"Sign-in with '{provider}' is not enabled")
        return conf

    def _set_session(self, session: Optional[AuthSession], event: AuthEvent):
        self._session = session
        loop = asyncio.get_running_loop()
        for subscription in list(self._subscriptions):
            task = loop.create_task(self._deliver(subscription.callback, event, session))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, callback: AuthCallback, event: AuthEvent, session: Optional[AuthSession]):
        try:
            result = callback(event, session)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Auth state callback failed for {event.value}")

    async def _run(self, work: Callable[[Session], Any]) -> Any:
        def call():
            db = self._session_factory()
            try:
                return work(db)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Auth storage error: {e}")
                raise RemoteError("Authentication service is unavailable")
            finally:
                db.close()

        return await run_in_threadpool(call)
