"""
Catalog Routes
================
Browse/search page, produce JSON API, and the farmer's sell / edit /
delete listing actions.
"""

from typing import Optional

from fastapi import APIRouter, Request, Depends, Form, File, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, RedirectResponse, JSONResponse

from common.exceptions import ValidationError
from common.security import csrf_check
from common.templating import render_page
from common.upload import read_upload
from modules.auth.context import StorefrontContext
from modules.auth.deps import get_context, require_role

router = APIRouter(tags=["catalog"])


async def _load_catalog(ctx: StorefrontContext, q: str, location: Optional[str]):
    await ctx.catalog.load()
    ctx.catalog.search_query = q
    if location is None:
        ctx.catalog.seed_location_filter(ctx.profile)
    else:
        ctx.catalog.location_filter = location


# ==========================================
# 🥕 Browse & Search
# ==========================================

@router.get("/browse", response_class=HTMLResponse)
async def browse(
    request: Request,
    q: str = "",
    location: Optional[str] = None,
    ctx: StorefrontContext = Depends(get_context),
):
    await _load_catalog(ctx, q, location)
    return render_page(request, ctx, "shop/browse.html", catalog=ctx.catalog)


@router.get("/api/produce")
async def api_produce(
    q: str = "",
    location: Optional[str] = None,
    ctx: StorefrontContext = Depends(get_context),
):
    await _load_catalog(ctx, q, location)
    return JSONResponse(jsonable_encoder({
        "produces": ctx.catalog.filtered_produces,
        "total": len(ctx.catalog.produces),
        "search_query": ctx.catalog.search_query,
        "location_filter": ctx.catalog.location_filter,
        "available_locations": ctx.catalog.available_locations,
    }))


# ==========================================
# 🧺 Sell (create listing)
# ==========================================

@router.get("/sell", response_class=HTMLResponse)
async def sell_page(request: Request, ctx: StorefrontContext = Depends(require_role("farmer"))):
    form = {"location": (ctx.profile or {}).get("location", "")}
    return render_page(request, ctx, "shop/produce_form.html", form=form, errors={}, produce=None)


@router.post("/sell")
async def sell_submit(
    request: Request,
    name: str = Form(""),
    description: str = Form(""),
    price: str = Form(""),
    location: str = Form(""),
    image: Optional[UploadFile] = File(None),
    csrf_token: str = Form(""),
    ctx: StorefrontContext = Depends(require_role("farmer")),
):
    csrf_check(request, csrf_token)
    data = {"name": name, "description": description, "price": price, "location": location}
    try:
        prepared = await read_upload(image)
        row = await ctx.listings.save(data, image=prepared)
    except ValidationError as e:
        return render_page(request, ctx, "shop/produce_form.html", status_code=400,
                           form=data, errors=e.errors, produce=None)
    if row is None:
        return render_page(request, ctx, "shop/produce_form.html", status_code=400,
                           form=data, errors={}, produce=None)
    return RedirectResponse("/profile?tab=listings", status_code=303)


# ==========================================
# ✏️ Edit / Delete listing
# ==========================================

@router.get("/produce/{produce_id}/edit", response_class=HTMLResponse)
async def edit_page(
    request: Request,
    produce_id: int,
    ctx: StorefrontContext = Depends(require_role("farmer")),
):
    await ctx.listings.load_own()
    produce = ctx.listings.get(produce_id)
    if produce is None:
        return RedirectResponse("/profile?tab=listings", status_code=303)
    return render_page(request, ctx, "shop/produce_form.html", form=produce, errors={}, produce=produce)


@router.post("/produce/{produce_id}/edit")
async def edit_submit(
    request: Request,
    produce_id: int,
    name: str = Form(""),
    description: str = Form(""),
    price: str = Form(""),
    location: str = Form(""),
    image: Optional[UploadFile] = File(None),
    csrf_token: str = Form(""),
    ctx: StorefrontContext = Depends(require_role("farmer")),
):
    csrf_check(request, csrf_token)
    await ctx.listings.load_own()
    produce = ctx.listings.get(produce_id)
    data = {"name": name, "description": description, "price": price, "location": location}
    try:
        prepared = await read_upload(image)
        row = await ctx.listings.save(data, image=prepared, produce_id=produce_id)
    except ValidationError as e:
        return render_page(request, ctx, "shop/produce_form.html", status_code=400,
                           form=data, errors=e.errors, produce=produce)
    if row is None:
        return render_page(request, ctx, "shop/produce_form.html", status_code=400,
                           form=data, errors={}, produce=produce)
    return RedirectResponse("/profile?tab=listings", status_code=303)


@router.post("/produce/{produce_id}/delete")
async def delete_listing(
    request: Request,
    produce_id: int,
    csrf_token: str = Form(""),
    ctx: StorefrontContext = Depends(require_role("farmer")),
):
    csrf_check(request, csrf_token)
    await ctx.listings.delete(produce_id)
    return RedirectResponse("/profile?tab=listings", status_code=303)
