"""
PersonalPage Backend — Comment SQLAlchemy Model
=================================================

What:  ORM model for the `comments` table (the comment feed).

Query Patterns:
    - Feed: SELECT ... JOIN users ORDER BY comments.id DESC
      → Uses the primary key index
    - Owner-scoped delete: DELETE ... WHERE id = :id AND user_id = :uid
      → Primary key lookup, user_id filter on the single row
"""

from sqlalchemy import ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from personalpage.database import Base


class Comment(Base):
    """
    One entry in the comment feed.

    Lifecycle:
        1. Created by an authenticated account
        2. Never updated
        3. Deleted only by its author
    """

    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="Author account id",
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Comment body, non-empty",
    )

    __table_args__ = (
        Index("idx_comments_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, user_id={self.user_id})>"
