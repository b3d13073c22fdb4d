"""
E-Permitted Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for each error category.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers (registered in main.py) map them to HTTP status
       codes and the `{success: false, error, ...}` envelope.
Who:   Raised by services, security helpers and middleware.

Exception Hierarchy:
    EPermittedError (base)
    ├── ValidationError            → 400 Bad Request
    ├── AuthenticationError        → 401 Unauthorized
    ├── AuthorizationError         → 403 Forbidden
    ├── NotFoundError              → 404 Not Found
    ├── ConflictError              → 409 Conflict
    │   └── ReferenceConflictError → 409 (reference collision retries exhausted)
    ├── RateLimitExceededError     → 429 Too Many Requests
    ├── LLMServiceError            → 503 Service Unavailable
    ├── CircuitBreakerOpenError    → 503 Service Unavailable
    ├── DatabaseError              → 500 Internal Server Error
    └── ReferenceAllocationError   → 500 Internal Server Error

`context` is logged server-side and never returned for 5xx responses.
"""

from typing import Any, Dict, List, Optional


class EPermittedError(Exception):
    """
    Base exception for all E-Permitted application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only for 4xx details)
        code:     Machine-readable error code used in the response envelope
    """

    code = "internal_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(EPermittedError):
    """
    Raised when client input fails validation or a business rule.

    Example response:
        {
            "success": false,
            "error": "Validation error",
            "code": "validation_error",
            "details": [{"field": "email", "message": "Invalid email format"}]
        }
    """

    code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, str]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field
        self.errors = errors or ([{"field": field, "message": message}] if field else [])


class AuthenticationError(EPermittedError):
    """
    Raised when a request cannot be tied to an active user.

    The message is the category the client sees: "No token provided",
    "Invalid token format", "Token expired", "Invalid token",
    "User not found or inactive", "Invalid credentials", "Account is inactive".
    """

    code = "authentication_error"

    def __init__(
        self,
        message: str = "Authentication required",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
        if code:
            self.code = code


class AuthorizationError(EPermittedError):
    """Raised when an authenticated user's role lacks the required permission."""

    code = "authorization_error"

    def __init__(
        self,
        message: str = "Insufficient permissions",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(EPermittedError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows; the service layer converts
    that None into this exception.
    """

    code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource.capitalize()} not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource


class ConflictError(EPermittedError):
    """Raised when a write would violate a uniqueness rule (duplicate email, code)."""

    code = "conflict"

    def __init__(
        self,
        message: str = "Resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ReferenceConflictError(ConflictError):
    """
    Raised when an inserted application reference collides with an existing one.

    The intake workflow retries allocation on this error; it only reaches the
    client once the configured number of attempts is exhausted.
    """

    code = "reference_conflict"

    def __init__(self, reference: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["reference"] = reference
        super().__init__(
            message="Could not allocate a unique application reference. Please try again.",
            context=ctx,
        )
        self.reference = reference


class ReferenceAllocationError(EPermittedError):
    """
    Raised when the reference sequence for a (prefix, year) pair is exhausted.

    References carry a 5-digit sequence; allocation refuses to go past 99999
    rather than producing a wider, non-conforming reference.
    """

    code = "reference_allocation_error"

    def __init__(
        self,
        message: str = "Application reference sequence exhausted",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LLMServiceError(EPermittedError):
    """
    Raised when the LLM (Gemini) service fails after all retries.

    Inside the analysis queue this is recorded on the application; it never
    reaches the submitting caller.
    """

    code = "llm_service_error"

    def __init__(
        self,
        message: str = "AI analysis service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(EPermittedError):
    """
    Raised when the circuit breaker is in OPEN state.

    State machine:
        CLOSED → (threshold failures) → OPEN → (recovery timeout) → HALF_OPEN
        HALF_OPEN → success → CLOSED, failure → OPEN
    """

    code = "service_unavailable"

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI service is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class DatabaseError(EPermittedError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; the SQL error is
    logged server-side only.
    """

    code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(EPermittedError):
    """Raised when a client exceeds the per-IP request rate limit."""

    code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Too many requests from this IP. Please wait {retry_after} seconds "
            f"before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
