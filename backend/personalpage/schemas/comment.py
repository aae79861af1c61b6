"""
PersonalPage Backend — Comment Schemas
========================================

What:  API contract for the comment feed.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class CommentCreateRequest(BaseModel):
    """Body of POST /comment. Emptiness is checked by CommentLedger."""
    content: Optional[str] = Field(default=None, description="Comment text")


class CommentResponse(BaseModel):
    """
    One feed entry joined with its author's display fields.

    Mirrors the row shape the frontend has always consumed:
    id, content, user_id, username, avatar.
    """
    id: int
    content: str
    user_id: int
    username: str
    avatar: Optional[str] = None

    model_config = {"from_attributes": True}


class CommentCreateResponse(BaseModel):
    """Returned by POST /comment with HTTP 201."""
    success: bool = True
    comment: CommentResponse


class CommentListResponse(BaseModel):
    """Returned by GET /comments, newest first."""
    success: bool = True
    comments: List[CommentResponse] = Field(default_factory=list)
