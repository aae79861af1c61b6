"""
PersonalPage Backend — Identity Gate (Credentials & Sessions)
===============================================================

What:  Registration, login, identity lookup, CSRF verification and logout.
How:   Credentials live in the `users` table as bcrypt hashes; sessions
       live in the AppContext's SessionStore, keyed by an opaque handle.
Who:   Called by the auth routes and by the identity dependencies that
       guard every session-bound endpoint.

Flow (POST /login):
    ┌──────────┐    ┌──────────────┐    ┌───────────────┐    ┌──────────────┐
    │  Route   │───▶│ Load account │───▶│ bcrypt verify │───▶│ New session  │
    └──────────┘    │ by username  │    │ (threadpool)  │    │ + CSRF token │
                    └──────────────┘    └───────────────┘    └──────────────┘

Password Handling:
    bcrypt with a per-password random salt. Hashing and verification
    take tens to hundreds of milliseconds, so both run in Starlette's
    threadpool instead of on the event loop.
"""

import logging
from typing import Optional, Tuple

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from personalpage.exceptions import (
    ConflictError,
    DatabaseError,
    ForbiddenError,
    UnauthorizedError,
    ValidationError,
)
from personalpage.models.account import Account
from personalpage.sessions import SessionRecord, SessionStore, tokens_match

logger = logging.getLogger(__name__)

USERNAME_MAX_LENGTH = 64
# bcrypt only looks at the first 72 bytes; longer inputs are refused outright
PASSWORD_MAX_BYTES = 72


# ══════════════════════════════════════════════════════════════════════════
# Password Hashing
# ══════════════════════════════════════════════════════════════════════════

def hash_password(plain_password: str, rounds: int = 12) -> str:
    """Derive a salted one-way bcrypt hash for storage."""
    password = plain_password.encode("utf-8")
    return bcrypt.hashpw(password, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Check a candidate password against a stored hash. Never raises."""
    password = (plain_password or "").encode("utf-8")
    hashed = (password_hash or "").encode("utf-8")
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password, hashed)
    except ValueError:
        # Malformed hash in the table (e.g. a legacy plaintext row)
        return False


# ══════════════════════════════════════════════════════════════════════════
# Input Validation
# ══════════════════════════════════════════════════════════════════════════

def _clean_username(username: Optional[str]) -> str:
    value = (username or "").strip()
    if not value:
        raise ValidationError(message="Username is required.", field="username")
    if len(value) > USERNAME_MAX_LENGTH:
        raise ValidationError(
            message=f"Username must be at most {USERNAME_MAX_LENGTH} characters.",
            field="username",
        )
    return value


def _clean_password(password: Optional[str]) -> str:
    if not password or not password.strip():
        raise ValidationError(message="Password is required.", field="password")
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValidationError(
            message=f"Password must be at most {PASSWORD_MAX_BYTES} bytes.",
            field="password",
        )
    return password


# ══════════════════════════════════════════════════════════════════════════
# Identity Gate
# ══════════════════════════════════════════════════════════════════════════

class IdentityGate:
    """
    Establishes and checks "who is the caller".

    Responsibilities:
        - register(): create account + establish session
        - login(): verify credentials + establish a fresh session
        - identify(): session handle → Account (read-only)
        - require_csrf(): compare the supplied token with the session's
        - logout(): destroy the session
    """

    def __init__(self, sessions: SessionStore, bcrypt_rounds: int = 12):
        self.sessions = sessions
        self.bcrypt_rounds = bcrypt_rounds

    async def register(
        self,
        db: AsyncSession,
        username: Optional[str],
        password: Optional[str],
    ) -> Tuple[Account, SessionRecord]:
        """
        Create an account and log it in.

        Raises:
            ValidationError: username or password missing
            ConflictError: username already exists (pre-check or constraint race)
            DatabaseError: any other store failure
        """
        username = _clean_username(username)
        password = _clean_password(password)

        try:
            existing = await db.execute(
                select(Account.id).where(Account.username == username)
            )
            if existing.scalar_one_or_none() is not None:
                raise ConflictError(context={"field": "username"})

            password_hash = await run_in_threadpool(
                hash_password, password, self.bcrypt_rounds
            )
            account = Account(username=username, password=password_hash)
            db.add(account)
            await db.flush()  # assigns id; the unique constraint fires here on a race

        except ConflictError:
            logger.info("Registration rejected: username '%s' already taken", username)
            raise
        except IntegrityError:
            logger.info("Registration lost a race on username '%s'", username)
            raise ConflictError(context={"field": "username"})
        except SQLAlchemyError as e:
            logger.error("Database error during registration: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not create the account. Please try again.",
                context={"error_type": type(e).__name__},
            )

        record = self.sessions.create(account.id)
        logger.info("Account %d registered", account.id)
        return account, record

    async def login(
        self,
        db: AsyncSession,
        username: Optional[str],
        password: Optional[str],
        previous_handle: Optional[str] = None,
    ) -> Tuple[Account, SessionRecord]:
        """
        Verify credentials and establish a new session.

        Any session the caller already holds is destroyed first, so the
        handle and the CSRF token are both replaced on every login.

        Raises:
            ValidationError: username or password missing
            UnauthorizedError: unknown username or wrong password (same message)
        """
        username = _clean_username(username)
        if not password:
            raise ValidationError(message="Password is required.", field="password")

        try:
            result = await db.execute(select(Account).where(Account.username == username))
            account = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error during login: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not log in. Please try again.")

        if account is None or not await run_in_threadpool(
            verify_password, password, account.password
        ):
            logger.info("Failed login attempt for username '%s'", username)
            raise UnauthorizedError(message="Invalid username or password.")

        self.sessions.destroy(previous_handle)
        record = self.sessions.create(account.id)
        logger.info("Account %d logged in", account.id)
        return account, record

    async def identify(self, db: AsyncSession, handle: Optional[str]) -> Optional[Account]:
        """
        Resolve a session handle to its account, or None.

        The account row is always re-read so avatar changes are visible
        immediately. A session whose account vanished is discarded.
        """
        record = self.sessions.get(handle)
        if record is None:
            return None

        try:
            account = await db.get(Account, record.account_id)
        except SQLAlchemyError as e:
            logger.error("Database error during identify: %s", str(e))
            raise DatabaseError(message="Could not load your account. Please try again.")

        if account is None:
            self.sessions.destroy(handle)
            return None
        return account

    def require_csrf(self, handle: Optional[str], supplied_token: Optional[str]) -> SessionRecord:
        """
        Check that the caller echoed the session's CSRF token exactly.

        Raises:
            ForbiddenError: token absent, or different from the stored one
        """
        record = self.sessions.get(handle)
        if record is None or not tokens_match(record.csrf_token, supplied_token):
            raise ForbiddenError(message="Missing or invalid CSRF token.")
        return record

    def logout(self, handle: Optional[str]) -> None:
        """Destroy the session behind `handle` (no-op if already gone)."""
        self.sessions.destroy(handle)
