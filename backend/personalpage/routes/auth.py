"""
PersonalPage Backend — Account Routes
=======================================

What:  POST /register, POST /login, POST /logout and GET /me.
How:   Thin handlers: read the body, call IdentityGate (and AvatarService
       for an avatar attached at registration), set or clear the cookie.
Who:   Called by the site's login and signup forms.

Request Bodies:
    /register accepts multipart/form-data (username, password, optional
    `avatar` file), urlencoded forms, or JSON {username, password}.
    /login accepts JSON {username, password}.

Cookie:
    The session handle is set as an HttpOnly cookie; the CSRF token goes in
    the body as `csrfToken` and must be echoed in X-CSRF-Token.
"""

import logging
from typing import Any, Optional, Tuple

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from personalpage.context import AppContext
from personalpage.database import get_db_session
from personalpage.dependencies import (
    clear_session_cookie,
    csrf_for_client,
    get_context,
    get_current_account,
    get_session_handle,
    require_account,
    require_csrf,
    set_session_cookie,
)
from personalpage.exceptions import PersonalPageError, ValidationError
from personalpage.models.account import Account
from personalpage.schemas.account import AccountResponse, AuthResponse, LoginRequest, MeResponse
from personalpage.schemas.common import ErrorResponse, SuccessResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Accounts"])


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


async def _read_registration(request: Request) -> Tuple[Optional[str], Optional[str], Optional[UploadFile]]:
    """Pull username, password and an optional avatar out of a form or JSON body."""
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError(message="Request body is not valid JSON.")
        if not isinstance(body, dict):
            raise ValidationError(message="Request body must be a JSON object.")
        return _text(body.get("username")), _text(body.get("password")), None

    form = await request.form()
    avatar = form.get("avatar")
    # Browsers send an empty part with no filename when no file was chosen
    if not isinstance(avatar, UploadFile) or not avatar.filename:
        avatar = None
    return _text(form.get("username")), _text(form.get("password")), avatar


@router.post(
    "/register",
    status_code=201,
    response_model=AuthResponse,
    responses={
        400: {"description": "Missing username/password or bad avatar", "model": ErrorResponse},
        409: {"description": "Username already taken", "model": ErrorResponse},
        415: {"description": "Avatar is not a PNG or JPEG", "model": ErrorResponse},
    },
    summary="Create an account and log in",
)
async def register(
    request: Request,
    response: Response,
    handle: Optional[str] = Depends(get_session_handle),
    ctx: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> AuthResponse:
    """
    Processing Steps:
        1. Validate the avatar, if any, before touching the database
        2. Create the account and its session
        3. Ingest the avatar; on failure the new session is dropped and the
           transaction rolls back, so no half-registered account remains
    """
    username, password, avatar = await _read_registration(request)

    avatar_content: Optional[bytes] = None
    if avatar is not None:
        avatar_content = await ctx.avatars.read_upload(avatar)
        ctx.avatars.validate(avatar.filename, avatar_content, avatar.content_type)

    account, record = await ctx.gate.register(db, username, password)

    avatar_url = account.avatar
    if avatar is not None and avatar_content is not None:
        try:
            avatar_url = await ctx.avatars.ingest(
                db, account.id, avatar.filename, avatar_content, avatar.content_type
            )
        except PersonalPageError:
            ctx.gate.logout(record.handle)
            raise

    ctx.gate.logout(handle)
    set_session_cookie(response, ctx, record)
    return AuthResponse(
        user=AccountResponse(id=account.id, username=account.username, avatar=avatar_url),
        csrf_token=csrf_for_client(ctx, record),
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={
        400: {"description": "Missing username or password", "model": ErrorResponse},
        401: {"description": "Invalid username or password", "model": ErrorResponse},
    },
    summary="Log in with username and password",
)
async def login(
    body: LoginRequest,
    response: Response,
    handle: Optional[str] = Depends(get_session_handle),
    ctx: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> AuthResponse:
    """A successful login always issues a new handle and a new CSRF token."""
    account, record = await ctx.gate.login(
        db, body.username, body.password, previous_handle=handle
    )
    set_session_cookie(response, ctx, record)
    return AuthResponse(
        user=AccountResponse.model_validate(account),
        csrf_token=csrf_for_client(ctx, record),
    )


@router.post(
    "/logout",
    response_model=SuccessResponse,
    responses={
        401: {"description": "Not logged in", "model": ErrorResponse},
        403: {"description": "Missing or invalid CSRF token", "model": ErrorResponse},
    },
    summary="End the current session",
)
async def logout(
    response: Response,
    account: Account = Depends(require_account),
    _csrf=Depends(require_csrf),
    handle: Optional[str] = Depends(get_session_handle),
    ctx: AppContext = Depends(get_context),
) -> SuccessResponse:
    ctx.gate.logout(handle)
    clear_session_cookie(response, ctx)
    logger.info("Account %d logged out", account.id)
    return SuccessResponse(success=True)


@router.get("/me", response_model=MeResponse, summary="Who is logged in")
async def me(
    account: Optional[Account] = Depends(get_current_account),
    handle: Optional[str] = Depends(get_session_handle),
    ctx: AppContext = Depends(get_context),
) -> MeResponse:
    """
    Current account, read fresh from the database.

    Also returns the session's CSRF token so a reloaded page can recover it.
    """
    if account is None:
        return MeResponse(logged_in=False)
    return MeResponse(
        logged_in=True,
        user=AccountResponse.model_validate(account),
        csrf_token=csrf_for_client(ctx, ctx.sessions.get(handle)),
    )
