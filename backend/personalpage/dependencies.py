"""
PersonalPage Backend — Request Dependencies
=============================================

What:  FastAPI dependencies that resolve the AppContext, the caller's
       session and account, and enforce the CSRF header.
Who:   Declared with Depends() by route handlers.

Dependency Graph:
    get_context ─┬─▶ get_session_handle ─▶ get_current_account ─▶ require_account
                 └──────────────────────────────────────────────▶ require_csrf

    require_account raises 401 when nobody is logged in; require_csrf raises
    403 when the X-CSRF-Token header does not match the session's token.
"""

from typing import Optional

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from personalpage.context import AppContext
from personalpage.database import get_db_session
from personalpage.exceptions import UnauthorizedError
from personalpage.models.account import Account
from personalpage.sessions import SessionRecord

CSRF_HEADER = "X-CSRF-Token"


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_session_handle(
    request: Request,
    ctx: AppContext = Depends(get_context),
) -> Optional[str]:
    """The opaque session handle from the cookie, or None."""
    return request.cookies.get(ctx.settings.session_cookie_name) or None


async def get_current_account(
    handle: Optional[str] = Depends(get_session_handle),
    ctx: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> Optional[Account]:
    """The logged-in account, or None for anonymous callers."""
    return await ctx.gate.identify(db, handle)


async def require_account(
    account: Optional[Account] = Depends(get_current_account),
) -> Account:
    if account is None:
        raise UnauthorizedError()
    return account


def require_csrf(
    request: Request,
    handle: Optional[str] = Depends(get_session_handle),
    ctx: AppContext = Depends(get_context),
) -> Optional[SessionRecord]:
    """
    Enforce the CSRF header on a mutating, session-bound route.

    Declared after require_account so an anonymous caller gets 401 first.
    Returns None when CSRF_PROTECT is off.
    """
    if not ctx.settings.csrf_protect:
        return None
    return ctx.gate.require_csrf(handle, request.headers.get(CSRF_HEADER))


# ── Cookie Helpers ────────────────────────────────────────────────────────

def set_session_cookie(response: Response, ctx: AppContext, record: SessionRecord) -> None:
    settings = ctx.settings
    response.set_cookie(
        key=settings.session_cookie_name,
        value=record.handle,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        path="/",
    )


def clear_session_cookie(response: Response, ctx: AppContext) -> None:
    settings = ctx.settings
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
    )


def csrf_for_client(ctx: AppContext, record: Optional[SessionRecord]) -> Optional[str]:
    """Token to hand back in response bodies (None when CSRF is disabled)."""
    if record is None or not ctx.settings.csrf_protect:
        return None
    return record.csrf_token
