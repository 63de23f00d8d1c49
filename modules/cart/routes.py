"""
Cart & Order Routes
=====================
Cart view, item add/update/remove (form + API), checkout, order confirmation.
"""

from typing import Dict, Any

from fastapi import APIRouter, Request, Depends, Form
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, RedirectResponse, JSONResponse

from common.helpers import safe_int
from common.security import csrf_check
from common.templating import render_page
from modules.auth.context import StorefrontContext
from modules.auth.deps import get_context, require_login
from modules.cart.service import line_total

router = APIRouter(tags=["cart"])


def _back(request: Request, default: str = "/cart") -> RedirectResponse:
    """Redirect to the referring page (same site only)."""
    referer = request.headers.get("referer", "")
    base = str(request.base_url)
    target = referer[len(base) - 1:] if referer.startswith(base) else default
    return RedirectResponse(target or default, status_code=303)


def _cart_payload(ctx: StorefrontContext) -> dict:
    return jsonable_encoder({
        "items": ctx.cart.items,
        "cart_count": ctx.cart.cart_count,
        "total_price": ctx.cart.total_price,
        "notices": [n.text for n in ctx.notices.drain()],
    })


# ==========================================
# 🛒 View Cart
# ==========================================

@router.get("/cart", response_class=HTMLResponse)
async def view_cart(request: Request, ctx: StorefrontContext = Depends(require_login)):
    return render_page(
        request, ctx, "shop/cart.html",
        items=ctx.cart.items,
        total_price=ctx.cart.total_price,
        line_total=line_total,
    )


# ==========================================
# ➕➖ Update Cart (Form-based)
# ==========================================

@router.post("/cart/add")
async def add_to_cart_form(
    request: Request,
    produce_id: int = Form(...),
    quantity: int = Form(1),
    csrf_token: str = Form(""),
    ctx: StorefrontContext = Depends(get_context),
):
    csrf_check(request, csrf_token)
    await ctx.cart.add_by_id(produce_id, quantity)
    if not ctx.session.is_authenticated:
        return RedirectResponse("/auth/login?next=/browse", status_code=303)
    return _back(request, "/browse")


@router.post("/cart/update")
async def update_cart_form(
    request: Request,
    cart_item_id: int = Form(...),
    action: str = Form("set"),
    quantity: str = Form(""),
    csrf_token: str = Form(""),
    ctx: StorefrontContext = Depends(require_login),
):
    csrf_check(request, csrf_token)
    item = ctx.cart.find(cart_item_id)
    if item is None:
        return RedirectResponse("/cart", status_code=303)

    if action == "increase":
        new_qty = item["quantity"] + 1
    elif action == "decrease":
        new_qty = item["quantity"] - 1
    else:
        new_qty = safe_int(quantity)
        if new_qty is None:
            new_qty = item["quantity"]
    await ctx.cart.update_quantity(cart_item_id, new_qty)
    return RedirectResponse("/cart", status_code=303)


@router.post("/cart/remove")
async def remove_from_cart_form(
    request: Request,
    cart_item_id: int = Form(...),
    csrf_token: str = Form(""),
    ctx: StorefrontContext = Depends(require_login),
):
    csrf_check(request, csrf_token)
    await ctx.cart.remove_from_cart(cart_item_id)
    return RedirectResponse("/cart", status_code=303)


@router.post("/cart/clear")
async def clear_cart_form(
    request: Request,
    csrf_token: str = Form(""),
    ctx: StorefrontContext = Depends(require_login),
):
    csrf_check(request, csrf_token)
    if await ctx.cart.clear_cart():
        ctx.notices.push("Cart cleared", "All items have been removed from your cart")
    return RedirectResponse("/cart", status_code=303)


# ==========================================
# ✅ Checkout
# ==========================================

@router.post("/cart/checkout")
async def checkout(
    request: Request,
    csrf_token: str = Form(""),
    ctx: StorefrontContext = Depends(require_login),
):
    csrf_check(request, csrf_token)
    if not ctx.cart.items:
        ctx.notices.push("Your cart is empty", "Add some produce before checking out", "warning")
        return RedirectResponse("/cart", status_code=303)

    if not await ctx.cart.place_order():
        return RedirectResponse("/cart", status_code=303)

    ids = ",".join(str(i) for i in ctx.cart.last_order_ids)
    return RedirectResponse(f"/order-confirmation?ids={ids}", status_code=303)


@router.get("/order-confirmation", response_class=HTMLResponse)
async def order_confirmation(
    request: Request,
    ids: str = "",
    ctx: StorefrontContext = Depends(require_login),
):
    order_ids = [i for i in (safe_int(part) for part in ids.split(",")) if i is not None]
    await ctx.orders.load_by_ids(ctx.session.user_id, order_ids)
    return render_page(request, ctx, "shop/order_confirmation.html", orders=ctx.orders.orders)


# ==========================================
# 🔌 Cart API (AJAX)
# ==========================================

@router.get("/api/cart")
async def api_cart(ctx: StorefrontContext = Depends(require_login)):
    return JSONResponse(_cart_payload(ctx))


@router.post("/api/cart/add")
async def api_add_to_cart(
    data: Dict[str, Any],
    request: Request,
    ctx: StorefrontContext = Depends(get_context),
):
    csrf_check(request, request.headers.get("X-CSRF-Token"))
    produce_id = safe_int(data.get("produce_id"))
    quantity = safe_int(data.get("quantity"))
    if produce_id is None:
        return JSONResponse({"detail": "produce_id is required"}, status_code=422)

    ok = await ctx.cart.add_by_id(produce_id, 1 if quantity is None else quantity)
    status_code = 200 if ok else (401 if not ctx.session.is_authenticated else 400)
    return JSONResponse(dict(_cart_payload(ctx), status="success" if ok else "error"), status_code=status_code)


@router.post("/api/cart/update")
async def api_update_cart(
    data: Dict[str, Any],
    request: Request,
    ctx: StorefrontContext = Depends(require_login),
):
    csrf_check(request, request.headers.get("X-CSRF-Token"))
    cart_item_id = safe_int(data.get("cart_item_id"))
    quantity = safe_int(data.get("quantity"))
    if cart_item_id is None or quantity is None:
        return JSONResponse({"detail": "cart_item_id and quantity are required"}, status_code=422)

    ok = await ctx.cart.update_quantity(cart_item_id, quantity)
    return JSONResponse(dict(_cart_payload(ctx), status="success" if ok else "error"),
                        status_code=200 if ok else 400)
