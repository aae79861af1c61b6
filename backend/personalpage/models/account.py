"""
PersonalPage Backend — Account SQLAlchemy Model
=================================================

What:  ORM model for the `users` table.
Who:   Used by IdentityGate (register/login/identify) and AvatarService
       (avatar reference updates).

Table Design:
    - id:        Integer surrogate key generated by the database
    - username:  Unique, enforced by the database (race-safe)
    - password:  bcrypt hash, never plaintext
    - avatar:    URL or /uploads path of the current avatar, nullable
"""

from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from personalpage.database import Base


class Account(Base):
    """
    A registered site user.

    Lifecycle:
        1. Created by registration (avatar may be set right after)
        2. avatar replaced by each successful avatar upload
        3. Never deleted
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    username: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Login name, unique across all accounts",
    )

    # Column keeps the historical name `password`; it only ever holds a bcrypt hash
    password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="bcrypt hash of the account password",
    )

    avatar: Mapped[Optional[str]] = mapped_column(
        String(512),
        nullable=True,
        default=None,
        comment="Avatar URL (remote host) or /uploads path (local disk)",
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, username='{self.username}')>"
