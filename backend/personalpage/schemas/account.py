"""
PersonalPage Backend — Account & Session Schemas
==================================================

What:  API contract for registration, login, identity and avatar uploads.

Naming:
    Field names are snake_case in Python. The handful of keys the frontend
    reads in camelCase (csrfToken, loggedIn, avatarUrl) use a
    serialization alias; FastAPI serializes response models by alias.
"""

from typing import Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class LoginRequest(BaseModel):
    """
    Body of POST /login.

    Fields are optional at the schema level so that a missing value is
    reported by the service as a 400 `invalid_input`, not a 422.
    """
    username: Optional[str] = Field(default=None, description="Account username")
    password: Optional[str] = Field(default=None, description="Account password")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class AccountResponse(BaseModel):
    """Public view of an account. The password hash is never exposed."""
    id: int = Field(description="Account id")
    username: str = Field(description="Account username")
    avatar: Optional[str] = Field(default=None, description="Avatar URL or /uploads path")

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    """
    Returned by POST /register and POST /login.

    The session handle itself travels in the HttpOnly cookie; only the
    CSRF token is returned in the body so the frontend can echo it back.
    """
    success: bool = True
    user: AccountResponse
    csrf_token: Optional[str] = Field(
        default=None,
        serialization_alias="csrfToken",
        description="Token to send back in X-CSRF-Token (null when CSRF is disabled)",
    )


class MeResponse(BaseModel):
    """Returned by GET /me."""
    logged_in: bool = Field(serialization_alias="loggedIn")
    user: Optional[AccountResponse] = None
    csrf_token: Optional[str] = Field(default=None, serialization_alias="csrfToken")


class AvatarUploadResponse(BaseModel):
    """Returned by POST /upload-avatar."""
    success: bool = True
    avatar_url: str = Field(serialization_alias="avatarUrl", description="Stored avatar location")
