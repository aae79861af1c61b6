# Schemas package init
"""
PersonalPage Backend — Pydantic Request/Response Schemas
==========================================================

    - account.py:  register/login/me/avatar payloads
    - comment.py:  comment feed payloads
    - oracle.py:   /gpt-alt payloads
    - common.py:   error envelope, plain success flag, health report
"""
