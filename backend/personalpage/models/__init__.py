# Models package init
"""
PersonalPage Backend — ORM Models
===================================

    - account.py:  Account  → `users` table
    - comment.py:  Comment  → `comments` table
"""
