"""
PersonalPage Backend — Comment Routes
=======================================

What:  POST /comment, GET /comments, DELETE /comment/{id}.
Who:   Called by the comment feed on the site's home page.

Delete semantics:
    `{"success": false}` with HTTP 200 for both a missing comment and a
    comment written by someone else, so the response does not reveal
    which comment ids exist.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from personalpage.context import AppContext
from personalpage.database import get_db_session
from personalpage.dependencies import get_context, require_account, require_csrf
from personalpage.models.account import Account
from personalpage.schemas.comment import (
    CommentCreateRequest,
    CommentCreateResponse,
    CommentListResponse,
)
from personalpage.schemas.common import ErrorResponse, SuccessResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Comments"])


@router.post(
    "/comment",
    status_code=201,
    response_model=CommentCreateResponse,
    responses={
        400: {"description": "Empty or overlong comment", "model": ErrorResponse},
        401: {"description": "Not logged in", "model": ErrorResponse},
        403: {"description": "Missing or invalid CSRF token", "model": ErrorResponse},
    },
    summary="Post a comment",
)
async def create_comment(
    body: CommentCreateRequest,
    account: Account = Depends(require_account),
    _csrf=Depends(require_csrf),
    ctx: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> CommentCreateResponse:
    comment = await ctx.comments.create(db, account.id, body.content)
    return CommentCreateResponse(comment=comment)


@router.get(
    "/comments",
    response_model=CommentListResponse,
    summary="List all comments, newest first",
)
async def list_comments(
    ctx: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> CommentListResponse:
    comments = await ctx.comments.list(db)
    return CommentListResponse(comments=comments)


@router.delete(
    "/comment/{comment_id}",
    response_model=SuccessResponse,
    responses={
        401: {"description": "Not logged in", "model": ErrorResponse},
        403: {"description": "Missing or invalid CSRF token", "model": ErrorResponse},
    },
    summary="Delete one of your own comments",
)
async def delete_comment(
    comment_id: int,
    account: Account = Depends(require_account),
    _csrf=Depends(require_csrf),
    ctx: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    deleted = await ctx.comments.delete(db, account.id, comment_id)
    return SuccessResponse(success=deleted)
