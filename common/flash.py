"""
Flash Messages & Notices
==========================
State containers push transient notices onto a NoticeBoard; routes move
them into a cookie so they survive one redirect, then they are cleared.

Usage in routes:
    flash(request, "Item removed", "success")
    return RedirectResponse("/cart", status_code=303)

Usage in templates (auto-available via Jinja2 globals):
    {% for msg in get_flashed_messages(request) %}
        <div class="alert alert-{{ msg.category }}">{{ msg.text }}</div>
    {% endfor %}
"""

import json
import urllib.parse
from dataclasses import dataclass, asdict
from typing import List
from fastapi import Request, Response


FLASH_COOKIE = "_flash"


@dataclass
class Notice:
    title: str
    description: str = ""
    category: str = "info"  # info | success | warning | danger

    @property
    def text(self) -> str:
        if self.description:
            return f"{self.title}: {self.description}"
        return self.title


class NoticeBoard:
    """Collects user-facing notices raised while handling one request."""

    def __init__(self):
        self.items: List[Notice] = []

    def push(self, title: str, description: str = "", category: str = "info") -> Notice:
        notice = Notice(title=title, description=description, category=category)
        self.items.append(notice)
        return notice

    def error(self, title: str, description: str = "") -> Notice:
        return self.push(title, description, "danger")

    def drain(self) -> List[Notice]:
        items, self.items = self.items, []
        return items

    def __len__(self):
        return len(self.items)


def flash(request: Request, message: str, category: str = "info"):
    """Queue a flash message to be shown after the next redirect."""
    existing = _get_raw_messages(request)
    existing.append({"text": message, "category": category})
    # Store in request.state so middleware can set the cookie
    request.state._flash_messages = existing


def flash_notices(request: Request, board: NoticeBoard):
    """Move every pending notice from the board into the flash queue."""
    for notice in board.drain():
        flash(request, notice.text, notice.category)


def get_flashed_messages(request: Request) -> List[dict]:
    """Read flash messages from the incoming cookie (consumed on read)."""
    cookie_val = request.cookies.get(FLASH_COOKIE, "")
    if not cookie_val:
        return []
    try:
        decoded = urllib.parse.unquote(cookie_val)
        return json.loads(decoded)
    except (json.JSONDecodeError, ValueError):
        return []


def notices_as_dicts(board: NoticeBoard) -> List[dict]:
    """Notices raised during this request, for rendering without a redirect."""
    return [dict(asdict(n), text=n.text) for n in board.drain()]


def _get_raw_messages(request: Request) -> list:
    """Get pending flash messages queued during this request."""
    if hasattr(request.state, "_flash_messages"):
        return request.state._flash_messages
    return []


def set_flash_cookie(response: Response, messages: list):
    """Set the flash cookie on a response."""
    if messages:
        encoded = urllib.parse.quote(json.dumps(messages, ensure_ascii=False))
        response.set_cookie(FLASH_COOKIE, encoded, httponly=True, samesite="lax", max_age=60)
    else:
        response.delete_cookie(FLASH_COOKIE)


def clear_flash_cookie(response: Response):
    """Clear the flash cookie (called after messages are displayed)."""
    response.delete_cookie(FLASH_COOKIE)
