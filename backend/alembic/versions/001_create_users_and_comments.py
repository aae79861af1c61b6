"""Create users and comments tables

Revision ID: 001
Revises: None
Create Date: 2026-10-17 00:00:00.000000+00:00

What:  Creates `users` (accounts) and `comments` (the feed).
How:   Portable column types only, so the same revision runs on PostgreSQL
       and SQLite.

Rollback: downgrade() drops both tables (destructive, all data lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "username",
            sa.String(64),
            nullable=False,
            comment="Login name, unique across all accounts",
        ),
        sa.Column(
            "password",
            sa.String(255),
            nullable=False,
            comment="bcrypt hash of the account password",
        ),
        sa.Column(
            "avatar",
            sa.String(512),
            nullable=True,
            comment="Avatar URL (remote host) or /uploads path (local disk)",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False, comment="Author account id"),
        sa.Column("content", sa.Text(), nullable=False, comment="Comment body, non-empty"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_comments_user_id_users",
            ondelete="CASCADE",
        ),
    )

    # Owner-scoped deletes and "comments by user" lookups filter on user_id
    op.create_index("idx_comments_user_id", "comments", ["user_id"])


def downgrade() -> None:
    """
    WARNING: destructive. In production, prefer a forward migration that
    archives data first.
    """
    op.drop_index("idx_comments_user_id", table_name="comments")
    op.drop_table("comments")
    op.drop_table("users")
