"""
PersonalPage Backend — Custom Exception Hierarchy
===================================================

What:  Application-specific exceptions for every error the API can report.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return a JSON envelope with the matching HTTP status code.
Who:   Raised by services and dependencies; caught by global handlers.

Exception Hierarchy:
    PersonalPageError (base)
    ├── ValidationError            → 400 Bad Request (missing/empty input)
    │   └── UnsupportedMediaError  → 415 Unsupported Media Type
    ├── UnauthorizedError          → 401 Unauthorized (no session, bad credentials)
    ├── ForbiddenError             → 403 Forbidden (CSRF mismatch)
    ├── NotFoundError              → 404 Not Found
    ├── ConflictError              → 409 Conflict (duplicate username)
    ├── RateLimitExceededError     → 429 Too Many Requests
    ├── FileStorageError           → 500 Internal Server Error
    ├── DatabaseError              → 500 Internal Server Error
    ├── UpstreamUnavailableError   → 502 Bad Gateway (image host / model provider)
    │   └── OracleBusyError        → provider reported a transient busy state
    └── CircuitBreakerOpenError    → oracle short-circuit (never reaches a handler)
"""

from typing import Any, Dict, Optional


class PersonalPageError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only for client-fixable errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PersonalPageError):
    """
    Raised when client input is missing, empty, or out of range.

    Example response:
        {
            "success": false,
            "error": "invalid_input",
            "message": "Username is required.",
            "details": {"field": "username"}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class UnsupportedMediaError(ValidationError):
    """Raised when an upload is not one of the accepted image types."""

    def __init__(
        self,
        message: str = "Only JPG and PNG images are supported.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, field="avatar", context=context)


class UnauthorizedError(PersonalPageError):
    """
    Raised when the caller has no valid session, or login credentials
    do not match. Always mapped to 401.
    """

    def __init__(
        self,
        message: str = "You must be logged in to do that.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(PersonalPageError):
    """Raised when the caller is identified but not allowed (CSRF token mismatch)."""

    def __init__(
        self,
        message: str = "This action is not allowed.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(PersonalPageError):
    """Raised when a requested resource does not exist."""

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(PersonalPageError):
    """
    Raised when a write would violate a uniqueness rule.

    When:  Registering a username that already exists, including the case
           where two registrations race and the database constraint fires.
    """

    def __init__(
        self,
        message: str = "That username is already taken.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(PersonalPageError):
    """
    Raised when writing an avatar to local disk fails.

    The client gets a generic message; the OS error stays in the server log.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(PersonalPageError):
    """
    Raised when database operations fail unexpectedly.

    Security Note:
        The message returned to the client is always generic.
        SQL and constraint names are logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UpstreamUnavailableError(PersonalPageError):
    """
    Raised when a third-party service (image host, text-generation
    provider) cannot be reached or answers with something unusable.

    The oracle converts this into a fallback reply; avatar uploads surface
    it as a soft `success: false` payload with status 502.
    """

    def __init__(
        self,
        message: str = "An upstream service is temporarily unavailable.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class OracleBusyError(UpstreamUnavailableError):
    """The text-generation provider reported that it is loading or overloaded."""

    def __init__(
        self,
        message: str = "The text-generation provider is busy.",
        retry_after: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after is not None:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(PersonalPageError):
    """
    Raised when the oracle's circuit breaker is OPEN.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for recovery_time seconds)
        → After recovery_time → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"The oracle is temporarily unavailable due to repeated failures. "
            f"It will be retried in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class RateLimitExceededError(PersonalPageError):
    """Raised when a client exceeds the per-IP request rate limit."""

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
