"""
PersonalPage Backend — Server-Side Session Store
==================================================

What:  Maps an opaque session handle (sent in a cookie) to an account id
       and the session's CSRF token.
How:   `SessionStore` is the interface; `InMemorySessionStore` keeps records
       in a dict with a TTL and lazy expiry.
Who:   Owned by the AppContext; used by IdentityGate and the identity
       dependencies.

Session State Machine:
    absent ──(register / login)──▶ established
    established ──(logout / TTL expiry / cookie deleted)──▶ absent

    A session stores only the account id. Display fields such as username
    and avatar are always re-read from the database.

Production Upgrade Path:
    The in-memory store is per-process. For several uvicorn workers, swap in
    a Redis-backed SessionStore with the same interface (SETEX on create,
    GET on lookup, DEL on destroy).
"""

import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class SessionRecord:
    """One established session."""
    handle: str
    account_id: int
    csrf_token: str
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def new_token() -> str:
    """Random URL-safe token used for both session handles and CSRF tokens."""
    return secrets.token_urlsafe(32)


def tokens_match(expected: Optional[str], supplied: Optional[str]) -> bool:
    """Constant-time comparison; an absent value on either side never matches."""
    if not expected or not supplied:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


class SessionStore(ABC):
    """
    Interface for session persistence.

    Contract:
        - create() always issues a fresh handle and a fresh CSRF token
        - get() never returns an expired record
        - destroy() is idempotent
    """

    @abstractmethod
    def create(self, account_id: int) -> SessionRecord:
        ...

    @abstractmethod
    def get(self, handle: Optional[str]) -> Optional[SessionRecord]:
        ...

    @abstractmethod
    def destroy(self, handle: Optional[str]) -> None:
        ...


class InMemorySessionStore(SessionStore):
    """
    Process-local session store with a fixed time-to-live.

    Expired records are dropped when looked up, and a full sweep runs every
    `sweep_every` creations so abandoned sessions do not accumulate.
    """

    def __init__(
        self,
        ttl_seconds: int,
        clock: Callable[[], float] = time.time,
        sweep_every: int = 500,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sweep_every = sweep_every
        self._created_since_sweep = 0
        self._records: Dict[str, SessionRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def create(self, account_id: int) -> SessionRecord:
        now = self._clock()
        record = SessionRecord(
            handle=new_token(),
            account_id=account_id,
            csrf_token=new_token(),
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        self._records[record.handle] = record

        self._created_since_sweep += 1
        if self._created_since_sweep >= self._sweep_every:
            self.sweep()

        logger.debug("Session established for account %d", account_id)
        return record

    def get(self, handle: Optional[str]) -> Optional[SessionRecord]:
        if not handle:
            return None
        record = self._records.get(handle)
        if record is None:
            return None
        if record.is_expired(self._clock()):
            del self._records[handle]
            return None
        return record

    def destroy(self, handle: Optional[str]) -> None:
        if handle:
            self._records.pop(handle, None)

    def sweep(self) -> int:
        """Drop every expired record. Returns how many were removed."""
        now = self._clock()
        expired = [h for h, r in self._records.items() if r.is_expired(now)]
        for handle in expired:
            del self._records[handle]
        self._created_since_sweep = 0
        if expired:
            logger.debug("Swept %d expired sessions", len(expired))
        return len(expired)
