"""
Auth Module - Dependencies
===========================
FastAPI dependencies that build the storefront context for a request and
gate routes on authentication and role.
"""

from fastapi import Request, Depends, HTTPException, status

from config.settings import AUTH_COOKIE
from modules.auth.context import StorefrontContext
from modules.user.models import normalize_role


async def get_context(request: Request):
    """
    Build the visitor's context from the auth cookie. The middleware in
    main.py syncs the cookie and leftover notices after the handler runs.
    """
    ctx = await StorefrontContext.open(request.cookies.get(AUTH_COOKIE))
    request.state.storefront = ctx
    try:
        yield ctx
    finally:
        await ctx.close()


def require_login(ctx: StorefrontContext = Depends(get_context)) -> StorefrontContext:
    """Any signed-in visitor. Raises 401 (redirected to login for browsers)."""
    if not ctx.session.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="login_required")
    return ctx


def require_role(role: str):
    """
    Factory: a dependency that only lets one role through.
    Other signed-in roles get 403 (redirected home for browsers).

    Usage:
      ctx=Depends(require_role("farmer"))
    """
    wanted = normalize_role(role)

    def dependency(ctx: StorefrontContext = Depends(require_login)) -> StorefrontContext:
        if ctx.session.role != wanted:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="role_required")
        return ctx

    return dependency
