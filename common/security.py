"""
Farm2Home - Security Utilities
==================================
JWT session tokens, password hashing, and CSRF protection.
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Request, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext

from config.settings import (
    SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, CSRF_ENABLED,
)
from common.helpers import now_utc

logger = logging.getLogger("farm2home.security")

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# ==========================================
# Passwords
# ==========================================

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


# ==========================================
# JWT Tokens
# ==========================================

def create_token(data: dict, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    """Create a signed session token."""
    to_encode = data.copy()
    to_encode["exp"] = now_utc() + timedelta(minutes=expires_minutes)
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode a JWT token. Returns payload or None."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


# ==========================================
# Cookie Helpers
# ==========================================

def get_cookie_kwargs() -> dict:
    """Standard cookie settings for auth tokens."""
    from config.settings import COOKIE_SECURE, COOKIE_SAMESITE
    return dict(
        httponly=True,
        secure=COOKIE_SECURE,
        samesite=COOKIE_SAMESITE,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


# ==========================================
# CSRF
# ==========================================

def new_csrf_token() -> str:
    """Generate a new random CSRF token."""
    return secrets.token_urlsafe(32)


def csrf_check(request: Request, form_token: Optional[str] = None):
    """
    Verify CSRF token from cookie matches the one in header or form.
    Raises HTTPException(403) on mismatch.
    """
    if not CSRF_ENABLED:
        return

    cookie_token = request.cookies.get("csrf_token")
    header_token = request.headers.get("X-CSRF-Token")
    token = header_token or form_token

    if not cookie_token or not token or cookie_token != token:
        logger.warning(f"CSRF rejected for {request.url.path}")
        raise HTTPException(403, "CSRF token missing or invalid")
