# Routes package init
"""
PersonalPage Backend — API Routes Package
===========================================

Route Inventory:
    - auth.py:      POST /register, POST /login, POST /logout, GET /me
    - avatars.py:   POST /upload-avatar, GET /uploads/{path}
    - comments.py:  POST /comment, GET /comments, DELETE /comment/{id}
    - oracle.py:    POST /gpt-alt
    - health.py:    GET  /health

Routes are thin: they read the request, call a service from the
AppContext, and shape the response. Business rules live in services/.
"""
