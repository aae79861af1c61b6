"""
PersonalPage Backend — Comment Ledger
=======================================

What:  Append, list and owner-scoped delete for the comment feed.
How:   One SQL statement per operation; author display fields come from a
       join on `users`, never from the session.
Who:   Called by the comment routes.

Ordering:
    Feed is ORDER BY comments.id DESC (newest first). Ids are generated by
    the database, so they increase with insertion order.
"""

import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from personalpage.exceptions import DatabaseError, UnauthorizedError, ValidationError
from personalpage.models.account import Account
from personalpage.models.comment import Comment
from personalpage.schemas.comment import CommentResponse

logger = logging.getLogger(__name__)

# comments.id is a 32-bit INTEGER column
MAX_COMMENT_ID = 2_147_483_647


def _feed_query():
    return select(
        Comment.id,
        Comment.content,
        Comment.user_id,
        Account.username,
        Account.avatar,
    ).join(Account, Comment.user_id == Account.id)


class CommentLedger:
    """
    Business logic for the comment feed.

    Error Handling Strategy:
        Input problems raise ValidationError; store failures are wrapped
        in DatabaseError so SQL details never reach the client.
    """

    def __init__(self, max_length: int = 2000):
        self.max_length = max_length

    def _clean_text(self, text: Optional[str]) -> str:
        value = (text or "").strip()
        if not value:
            raise ValidationError(message="Comment text is required.", field="content")
        if len(value) > self.max_length:
            raise ValidationError(
                message=f"Comment must be at most {self.max_length} characters.",
                field="content",
                context={"max_length": self.max_length},
            )
        return value

    async def create(
        self,
        db: AsyncSession,
        account_id: int,
        text: Optional[str],
    ) -> CommentResponse:
        """
        Append a comment by `account_id`.

        Returns:
            The new comment joined with its author's username and avatar.
        """
        content = self._clean_text(text)

        try:
            author = await db.get(Account, account_id)
            if author is None:
                raise UnauthorizedError()

            comment = Comment(user_id=account_id, content=content)
            db.add(comment)
            await db.flush()  # assigns id
        except UnauthorizedError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error creating comment: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not save your comment. Please try again.",
                context={"error_type": type(e).__name__},
            )

        logger.info("Comment %d created by account %d", comment.id, account_id)
        return CommentResponse(
            id=comment.id,
            content=comment.content,
            user_id=author.id,
            username=author.username,
            avatar=author.avatar,
        )

    async def list(self, db: AsyncSession) -> List[CommentResponse]:
        """All comments, newest first. No pagination."""
        try:
            result = await db.execute(_feed_query().order_by(Comment.id.desc()))
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error("Database error listing comments: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve comments. Please try again.",
                context={"error_type": type(e).__name__},
            )

        return [CommentResponse.model_validate(row) for row in rows]

    async def delete(self, db: AsyncSession, account_id: int, comment_id: int) -> bool:
        """
        Delete a comment if, and only if, `account_id` wrote it.

        Returns:
            True when a row was removed. False when the comment does not
            exist OR belongs to someone else; the two cases are not told
            apart.
        """
        if not 1 <= comment_id <= MAX_COMMENT_ID:
            logger.info(
                "Delete of comment %d by account %d is out of range", comment_id, account_id
            )
            return False

        try:
            result = await db.execute(
                delete(Comment).where(
                    Comment.id == comment_id,
                    Comment.user_id == account_id,
                )
            )
        except SQLAlchemyError as e:
            logger.error("Database error deleting comment %d: %s", comment_id, str(e))
            raise DatabaseError(
                message="Could not delete the comment. Please try again.",
                context={"comment_id": comment_id},
            )

        deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.info("Comment %d deleted by account %d", comment_id, account_id)
        else:
            logger.info(
                "Delete of comment %d by account %d matched nothing", comment_id, account_id
            )
        return deleted
