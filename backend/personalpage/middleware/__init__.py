# Middleware package init
"""
PersonalPage Backend — Middleware Package
===========================================

Middleware Chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Rate Limit: rejects abusive /login, /register and /gpt-alt traffic
       before any other work
    2. Request ID: correlation id for logs and error envelopes
    3. Logging: one access line per request, with the id from step 2
    4. GZip / CORS: Starlette's stock middleware
"""
