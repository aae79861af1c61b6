"""
PersonalPage Backend — Application Context
============================================

What:  Every long-lived resource the app needs, built once and passed around
       explicitly: settings, engine, session factory, session store, avatar
       store and the services wired on top of them.
How:   `build_context(settings)` constructs it; the FastAPI lifespan stores
       it on `app.state.context` and calls `aclose()` on shutdown.
Who:   Read by `personalpage.dependencies` and `personalpage.database`.

Testing:
    Tests call `build_context()` with their own Settings and a stub
    TextGenerator, then pass the result to `create_app(context=...)`.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from personalpage.config import Settings
from personalpage.database import build_engine, build_session_factory
from personalpage.services.auth_service import IdentityGate
from personalpage.services.avatar_service import AvatarService
from personalpage.services.avatar_store import AvatarStore, build_avatar_store
from personalpage.services.comment_service import CommentLedger
from personalpage.services.oracle_service import OracleService
from personalpage.services.text_generation import TextGenerator, build_text_generator
from personalpage.sessions import InMemorySessionStore, SessionStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    sessions: SessionStore
    gate: IdentityGate
    avatars: AvatarService
    comments: CommentLedger
    oracle: OracleService

    async def aclose(self) -> None:
        """Release network clients and pooled connections."""
        await self.oracle.aclose()
        await self.avatars.store.aclose()
        await self.engine.dispose()
        logger.info("Application context closed")


def build_context(
    settings: Settings,
    *,
    engine: Optional[AsyncEngine] = None,
    generator: Optional[TextGenerator] = None,
    avatar_store: Optional[AvatarStore] = None,
) -> AppContext:
    """
    Assemble an AppContext from settings.

    Args:
        engine: Prebuilt engine (tests share one in-memory SQLite engine).
        generator: TextGenerator to use instead of the ORACLE_PROVIDER one.
        avatar_store: AvatarStore to use instead of the AVATAR_BACKEND one.
    """
    engine = engine or build_engine(settings)
    sessions = InMemorySessionStore(ttl_seconds=settings.session_ttl_seconds)

    oracle = OracleService(
        generator=generator or build_text_generator(settings),
        retry_max_attempts=settings.retry_max_attempts,
        retry_min_wait=settings.retry_min_wait,
        retry_max_wait=settings.retry_max_wait,
        cb_failure_threshold=settings.cb_failure_threshold,
        cb_recovery_timeout=settings.cb_recovery_timeout,
    )

    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
        sessions=sessions,
        gate=IdentityGate(sessions, bcrypt_rounds=settings.bcrypt_rounds),
        avatars=AvatarService(
            store=avatar_store or build_avatar_store(settings),
            max_file_size=settings.max_file_size,
        ),
        comments=CommentLedger(max_length=settings.comment_max_length),
        oracle=oracle,
    )
