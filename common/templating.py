"""
Farm2Home - Template Configuration
======================================
Jinja2 templates setup with custom filters and global functions.
"""

from fastapi import Request
from fastapi.templating import Jinja2Templates

from config.settings import TEMPLATE_DIR, ALL_LOCATIONS
from common.flash import get_flashed_messages, notices_as_dicts
from common.helpers import format_price, format_date, city_of
from common.security import new_csrf_token
from modules.order.models import STATUS_LABELS, STATUS_COLORS

# Initialize templates
templates = Jinja2Templates(directory=TEMPLATE_DIR)


# ==========================================
# Register Filters & Globals
# ==========================================

# Filters (usage in template: {{ value | price }})
templates.env.filters["price"] = format_price
templates.env.filters["date"] = format_date
templates.env.filters["city"] = city_of

templates.env.globals["get_flashed_messages"] = get_flashed_messages
templates.env.globals["ALL_LOCATIONS"] = ALL_LOCATIONS
templates.env.globals["STATUS_LABELS"] = STATUS_LABELS
templates.env.globals["STATUS_COLORS"] = STATUS_COLORS


def render_page(request: Request, ctx, template: str, status_code: int = 200, **extra):
    """
    Render a storefront page with the shared layout context: current user,
    profile, cart badge, CSRF token, and notices raised during this request.
    """
    csrf = request.cookies.get("csrf_token") or new_csrf_token()
    context = {
        "request": request,
        "user": ctx.user if ctx else None,
        "profile": ctx.profile if ctx else None,
        "role": ctx.session.role if ctx else None,
        "cart_count": ctx.cart.cart_count if ctx else 0,
        "csrf_token": csrf,
        "notices": notices_as_dicts(ctx.notices) if ctx else [],
    }
    context.update(extra)
    response = templates.TemplateResponse(request, template, context, status_code=status_code)
    response.set_cookie("csrf_token", csrf, httponly=True, samesite="lax")
    return response
