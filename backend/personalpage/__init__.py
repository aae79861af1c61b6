"""
PersonalPage Backend — Application Package Initializer
=======================================================

What: Marks the `personalpage` directory as a Python package.
Who:  Imported by uvicorn (`personalpage.main:app`), Alembic, and pytest.

Architecture Note:
    The backend keeps the same layered shape for every feature:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, cookies, status codes
    ├─────────────────────────────────────┤
    │   Dependencies (Identity Gate)      │  ← session lookup, CSRF check
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← accounts, avatars, comments, oracle
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Every long-lived resource (engine, session store, avatar store, oracle
    client) is owned by a single `AppContext` built at startup, see
    `personalpage.context`.
"""

__version__ = "1.0.0"
