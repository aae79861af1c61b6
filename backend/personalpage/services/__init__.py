# Services package init
"""
PersonalPage Backend — Services Layer
=======================================

What:  Business rules between the routes (HTTP) and the database.
How:   Services are built once by build_context() and reached from routes
       through the AppContext.

Service Inventory:
    - auth_service.py:     IdentityGate (register, login, identify, CSRF, logout)
    - avatar_service.py:   AvatarService (validate an upload, store it, record the URL)
    - avatar_store.py:     LocalAvatarStore and ImageHostAvatarStore
    - comment_service.py:  CommentLedger (create, list newest first, owner-only delete)
    - oracle_service.py:   OracleService (persona prompt, retries, circuit breaker)
    - text_generation.py:  Gemini and hosted-HTTP TextGenerator adapters
"""
