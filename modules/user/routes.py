"""
Profile Routes
================
Profile view (tabs: listings / orders) and profile edit.
"""

from fastapi import APIRouter, Request, Depends, Form
from fastapi.responses import HTMLResponse, RedirectResponse

from common.exceptions import ValidationError
from common.forms import validate_form
from common.security import csrf_check
from common.templating import render_page
from modules.auth.context import StorefrontContext
from modules.auth.deps import require_login
from modules.user.models import Role
from modules.user.schemas import ProfileUpdateForm

router = APIRouter(tags=["profile"])

PROFILE_TABS = ("listings", "orders")


async def _profile_page(request: Request, ctx: StorefrontContext, tab: str, errors: dict, status_code: int = 200):
    is_farmer = ctx.session.role == Role.FARMER.value
    if tab not in PROFILE_TABS or (tab == "listings" and not is_farmer):
        tab = "listings" if is_farmer else "orders"

    if is_farmer:
        await ctx.listings.load_own()
    await ctx.orders.load(ctx.profile)

    return render_page(
        request, ctx, "shop/profile.html", status_code=status_code,
        tab=tab,
        is_farmer=is_farmer,
        listings=ctx.listings.listings,
        orders=ctx.orders.orders,
        total_spent=ctx.orders.total_spent,
        errors=errors,
    )


# ==========================================
# 👤 Profile
# ==========================================

@router.get("/profile", response_class=HTMLResponse)
async def profile_page(
    request: Request,
    tab: str = "",
    ctx: StorefrontContext = Depends(require_login),
):
    return await _profile_page(request, ctx, tab, errors={})


@router.post("/profile")
async def profile_update(
    request: Request,
    full_name: str = Form(""),
    location: str = Form(""),
    bio: str = Form(""),
    csrf_token: str = Form(""),
    ctx: StorefrontContext = Depends(require_login),
):
    """Partial update of the signed-in user's own profile."""
    csrf_check(request, csrf_token)
    try:
        form = validate_form(ProfileUpdateForm, {"full_name": full_name, "location": location, "bio": bio})
    except ValidationError as e:
        return await _profile_page(request, ctx, "", errors=e.errors, status_code=400)

    await ctx.session.update_profile(form.model_dump())
    return RedirectResponse("/profile", status_code=303)
