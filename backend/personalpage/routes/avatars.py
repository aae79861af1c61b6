"""
PersonalPage Backend — Avatar Routes
======================================

What:  POST /upload-avatar (replace the caller's avatar) and
       GET /uploads/{path} (serve avatars kept by LocalAvatarStore).
Who:   Called by the profile widget and by <img> tags on the comment feed.

Security Checks (this route):
    - Session + CSRF required for uploads
    - Extension, declared type and size validated by AvatarService
    - Served paths are resolved and must stay inside STORAGE_ROOT
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from personalpage.context import AppContext
from personalpage.database import get_db_session
from personalpage.dependencies import get_context, require_account, require_csrf
from personalpage.exceptions import NotFoundError, ValidationError
from personalpage.models.account import Account
from personalpage.schemas.account import AvatarUploadResponse
from personalpage.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Avatars"])


@router.post(
    "/upload-avatar",
    response_model=AvatarUploadResponse,
    responses={
        400: {"description": "No file, empty file, or file too large", "model": ErrorResponse},
        401: {"description": "Not logged in", "model": ErrorResponse},
        403: {"description": "Missing or invalid CSRF token", "model": ErrorResponse},
        415: {"description": "Not a PNG or JPEG", "model": ErrorResponse},
        502: {"description": "Image host unavailable", "model": ErrorResponse},
    },
    summary="Upload a new avatar",
    description="Accepts one PNG or JPEG in the multipart field `avatar` (max 5MB by default).",
)
async def upload_avatar(
    account: Account = Depends(require_account),
    _csrf=Depends(require_csrf),
    avatar: Optional[UploadFile] = File(default=None, description="PNG or JPEG image"),
    ctx: AppContext = Depends(get_context),
    db: AsyncSession = Depends(get_db_session),
) -> AvatarUploadResponse:
    if avatar is None or not avatar.filename:
        raise ValidationError(message="No file was uploaded.", field="avatar")

    content = await ctx.avatars.read_upload(avatar)

    logger.info(
        "Avatar upload from account %d: filename=%s, size=%d bytes",
        account.id,
        avatar.filename,
        len(content),
    )

    url = await ctx.avatars.ingest(
        db=db,
        account_id=account.id,
        filename=avatar.filename,
        content=content,
        content_type=avatar.content_type,
    )
    return AvatarUploadResponse(avatar_url=url)


@router.get(
    "/uploads/{file_path:path}",
    summary="Serve a stored avatar",
    responses={
        200: {"description": "Image file"},
        404: {"description": "File not found", "model": ErrorResponse},
    },
)
async def serve_upload(
    file_path: str,
    ctx: AppContext = Depends(get_context),
) -> FileResponse:
    if "\x00" in file_path:
        raise ValidationError(message="Invalid file path")

    storage_root = Path(ctx.settings.storage_root).resolve()
    try:
        full_path = (storage_root / file_path).resolve()
    except (ValueError, OSError):
        raise ValidationError(message="Invalid file path")

    # Resolving first defeats ../ segments and symlinks pointing outside
    if not full_path.is_relative_to(storage_root):
        raise ValidationError(message="Invalid file path")

    if not full_path.is_file():
        raise NotFoundError(resource="file", resource_id=file_path)

    # media_type is guessed from the extension
    return FileResponse(
        path=str(full_path),
        headers={"Cache-Control": "public, max-age=86400"},
    )
