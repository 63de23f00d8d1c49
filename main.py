"""
Farm2Home - Application Entry Point
=====================================
FastAPI app initialization, middleware, and router registration.
"""

import logging
import os
import urllib.parse
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Depends
from fastapi.responses import HTMLResponse, RedirectResponse, FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from config.database import Base, engine, get_db
from common.exceptions import StorageError
from common.flash import flash_notices, set_flash_cookie, clear_flash_cookie, FLASH_COOKIE
from common.security import get_cookie_kwargs
from common.templating import render_page
from modules.auth.context import StorefrontContext
from modules.auth.deps import get_context
from modules.platform.storage import StorageClient

logger = logging.getLogger("farm2home.app")


# ==========================================
# Import ALL models so Base can see them
# ==========================================
from modules.platform.models import Identity  # noqa: F401
from modules.user.models import Profile  # noqa: F401
from modules.catalog.models import Produce  # noqa: F401
from modules.cart.models import CartItem  # noqa: F401
from modules.order.models import Order  # noqa: F401

# ==========================================
# Import routers
# ==========================================
from modules.auth.routes import router as auth_router
from modules.catalog.routes import router as catalog_router
from modules.cart.routes import router as cart_router
from modules.user.routes import router as profile_router


# ==========================================
# Exception handler: 401 → login, 403 → home, 404 → page
# ==========================================

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Redirect 401 to login (keeping the return path), 403 role mismatch to home, render 404."""
    is_html = "text/html" in request.headers.get("accept", "")
    if exc.status_code == 401 and is_html:
        if request.method == "POST":
            # Form posts return to the page the form was on
            referer = urllib.parse.urlparse(request.headers.get("referer", "/"))
            next_url = referer.path or "/"
            if referer.query:
                next_url += "?" + referer.query
        else:
            next_url = str(request.url.path)
            if request.url.query:
                next_url += "?" + str(request.url.query)
        return RedirectResponse(f"/auth/login?next={urllib.parse.quote(next_url, safe='')}", status_code=302)
    if exc.status_code == 403 and exc.detail == "role_required" and is_html:
        return RedirectResponse("/", status_code=302)
    if exc.status_code == 404 and is_html:
        ctx = await StorefrontContext.open(request.cookies.get(settings.AUTH_COOKIE))
        try:
            return render_page(request, ctx, "shop/404.html", status_code=404)
        finally:
            await ctx.close()
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@asynccontextmanager
async def lifespan(app):
    # Auto-create any missing tables (safe for existing tables)
    Base.metadata.create_all(bind=engine)
    os.makedirs(settings.STORAGE_DIR, exist_ok=True)
    logger.info("Farm2Home started")
    yield
    logger.info("Farm2Home stopped")


# ==========================================
# Create App
# ==========================================
app = FastAPI(
    title="Farm2Home",
    description="Organic produce marketplace",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.mount("/static", StaticFiles(directory=settings.STATIC_DIR), name="static")
app.add_exception_handler(StarletteHTTPException, http_exception_handler)


# ==========================================
# Middleware: session cookie + notices → flash
# ==========================================
@app.middleware("http")
async def storefront_sync(request: Request, call_next):
    """
    After the handler: write the context's session token to the auth cookie,
    move undisplayed notices into flash messages, clear displayed ones.
    """
    response = await call_next(request)

    ctx = getattr(request.state, "storefront", None)
    if ctx is not None:
        flash_notices(request, ctx.notices)
        token = ctx.access_token
        if token != request.cookies.get(settings.AUTH_COOKIE):
            if token:
                response.set_cookie(settings.AUTH_COOKIE, token, **get_cookie_kwargs())
            else:
                response.delete_cookie(settings.AUTH_COOKIE)

    if getattr(request.state, "_flash_messages", None):
        set_flash_cookie(response, request.state._flash_messages)
    elif request.method == "GET" and request.cookies.get(FLASH_COOKIE):
        # Flash messages were displayed on this GET, clear the cookie
        clear_flash_cookie(response)
    return response


# ==========================================
# Register Routers
# ==========================================
app.include_router(auth_router)
app.include_router(catalog_router)
app.include_router(cart_router)
app.include_router(profile_router)


# ==========================================
# Health check
# ==========================================
@app.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse({"status": "error", "database": "unreachable"}, status_code=503)
    return {"status": "ok", "version": "1.0.0"}


# ==========================================
# Pages: Home, Pricing
# ==========================================
@app.get("/", response_class=HTMLResponse)
async def home_page(request: Request, ctx: StorefrontContext = Depends(get_context)):
    await ctx.catalog.load()
    return render_page(request, ctx, "shop/index.html", featured=ctx.catalog.produces[:6])


@app.get("/pricing", response_class=HTMLResponse)
async def pricing_page(request: Request, ctx: StorefrontContext = Depends(get_context)):
    return render_page(request, ctx, "shop/pricing.html")


# ==========================================
# Public object storage
# ==========================================
_storage = StorageClient()


@app.get("/storage/{bucket}/{path:path}")
async def storage_object(bucket: str, path: str):
    try:
        target = _storage.object_path(bucket, path)
    except StorageError:
        raise StarletteHTTPException(status_code=404)
    if not os.path.isfile(target):
        raise StarletteHTTPException(status_code=404)
    return FileResponse(target)
