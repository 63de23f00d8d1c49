"""
Auth Module - Routes
=====================
Login, signup, OAuth redirect + callback, logout.

The auth cookie itself is written by the storefront middleware in main.py
from the context's session token, so handlers only talk to SessionState.
"""

from fastapi import APIRouter, Request, Depends, Form
from fastapi.responses import RedirectResponse, HTMLResponse

from common.exceptions import ValidationError
from common.forms import validate_form
from common.security import csrf_check
from common.templating import render_page
from modules.auth.context import StorefrontContext
from modules.auth.deps import get_context
from modules.auth.schemas import LoginForm, SignupForm

router = APIRouter(prefix="/auth", tags=["auth"])


def _safe_next_url(url: str) -> str:
    """Only allow relative paths as redirect targets (prevent open redirect)."""
    if not url or not url.startswith("/") or url.startswith("//"):
        return "/"
    return url


# ==========================================
# 🔑 Login
# ==========================================

@router.get("/login", response_class=HTMLResponse)
async def login_page(
    request: Request,
    next: str = "",
    ctx: StorefrontContext = Depends(get_context),
):
    """Show login page (redirect if already logged in)."""
    if ctx.session.is_authenticated:
        return RedirectResponse(_safe_next_url(next), status_code=302)
    return render_page(request, ctx, "auth/login.html", next_url=next, email="", errors={})


@router.post("/login")
async def login_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next: str = Form(""),
    csrf_token: str = Form(""),
    ctx: StorefrontContext = Depends(get_context),
):
    csrf_check(request, csrf_token)
    try:
        form = validate_form(LoginForm, {"email": email, "password": password})
    except ValidationError as e:
        return render_page(request, ctx, "auth/login.html", status_code=400,
                           next_url=next, email=email, errors=e.errors)

    ok = await ctx.session.sign_in(form.email, form.password)
    await ctx.settle()
    if not ok:
        return render_page(request, ctx, "auth/login.html", status_code=400,
                           next_url=next, email=email, errors={})
    return RedirectResponse(_safe_next_url(next), status_code=303)


# ==========================================
# 📝 Signup
# ==========================================

@router.get("/signup", response_class=HTMLResponse)
async def signup_page(request: Request, ctx: StorefrontContext = Depends(get_context)):
    if ctx.session.is_authenticated:
        return RedirectResponse("/profile", status_code=302)
    return render_page(request, ctx, "auth/signup.html", form={"role": "consumer"}, errors={})


@router.post("/signup")
async def signup_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    confirm_password: str = Form(""),
    full_name: str = Form(""),
    location: str = Form(""),
    role: str = Form("consumer"),
    csrf_token: str = Form(""),
    ctx: StorefrontContext = Depends(get_context),
):
    csrf_check(request, csrf_token)
    data = {
        "email": email, "password": password, "confirm_password": confirm_password,
        "full_name": full_name, "location": location, "role": role,
    }
    echo = {k: v for k, v in data.items() if "password" not in k}
    try:
        form = validate_form(SignupForm, data)
        ok = await ctx.session.sign_up(form.email, form.password, form.full_name, form.location, form.role)
    except ValidationError as e:
        return render_page(request, ctx, "auth/signup.html", status_code=400, form=echo, errors=e.errors)

    await ctx.settle()
    if not ok:
        return render_page(request, ctx, "auth/signup.html", status_code=400, form=echo, errors={})
    return RedirectResponse("/profile", status_code=303)


# ==========================================
# 🌐 OAuth
# ==========================================

@router.get("/oauth/{provider}")
async def oauth_start(
    provider: str,
    next: str = "/",
    ctx: StorefrontContext = Depends(get_context),
):
    url = await ctx.session.sign_in_with_oauth(provider, _safe_next_url(next))
    if not url:
        return RedirectResponse("/auth/login", status_code=303)
    return RedirectResponse(url, status_code=302)


@router.get("/oauth/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: str = "",
    state: str = "",
    ctx: StorefrontContext = Depends(get_context),
):
    redirect_to = await ctx.session.complete_oauth(provider, code, state)
    await ctx.settle()
    if not redirect_to:
        return RedirectResponse("/auth/login", status_code=303)
    return RedirectResponse(_safe_next_url(redirect_to), status_code=303)


# ==========================================
# 🚪 Logout
# ==========================================

@router.get("/logout")
async def logout(ctx: StorefrontContext = Depends(get_context)):
    await ctx.session.sign_out()
    await ctx.settle()
    return RedirectResponse("/", status_code=303)
