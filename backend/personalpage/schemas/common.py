"""
PersonalPage Backend — Shared Schemas
=======================================

What:  Error envelope, bare success flag, and the health report.
"""

from typing import Optional

from pydantic import BaseModel, Field


class SuccessResponse(BaseModel):
    """
    Bare `{success}` payload.

    Used by DELETE /comment/{id}, where success=false covers both
    "no such comment" and "not your comment".
    """
    success: bool


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "success": false,
            "error": "conflict",
            "message": "That username is already taken.",
            "details": {"field": "username"},
            "request_id": "1f2e3d4c"
        }
    """
    success: bool = Field(default=False)
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Returned by GET /health for monitoring and load balancer probes."""
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    oracle: str = Field(description="Oracle circuit state: available, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
