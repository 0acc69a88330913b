"""
PawLenx Backend — Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for every failure the services classify.
How:   Each exception carries a user-safe message and an optional context dict.
       Global exception handlers (registered in main.py) turn them into the
       `{"error": message}` envelope with the right status code.
Who:   Raised by services, the document store and dependencies.

Exception Hierarchy:
    PawLenxError (base)
    ├── ValidationError               → 400 Bad Request
    │   └── UnsupportedTypeError      → 400 Bad Request
    ├── PayloadTooLargeError          → 413 Payload Too Large
    ├── ConflictError                 → 409 Conflict
    │   ├── DuplicateAccountError     → 400 Bad Request
    │   └── StaleWriteError           → 409 Conflict (CAS lost)
    ├── UnauthorizedError             → 401 Unauthorized
    ├── ForbiddenError                → 403 Forbidden
    │   └── InvalidTokenError         → 403 Forbidden
    ├── NotFoundError                 → 404 Not Found
    ├── FileStorageError              → 500 Internal Server Error
    ├── RemoteStoreError              → 500 Internal Server Error
    │   ├── RemoteStoreAuthError
    │   ├── RemoteStoreRateLimitError
    │   ├── RemoteStoreNotFoundError
    │   └── RemoteStoreUnavailableError   (retryable)
    │       ├── RemoteStoreTimeoutError   (retryable)
    │       └── CircuitBreakerOpenError
    └── RateLimitExceededError        → 429 Too Many Requests
"""

from typing import Any, Dict, Optional


class PawLenxError(Exception):
    """
    Base exception for all PawLenx application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PawLenxError):
    """
    Raised when client input fails validation.

    When:    Blank signup fields, missing application PDF, bad pet fields.
    HTTP:    400 Bad Request
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


class UnsupportedTypeError(ValidationError):
    """An uploaded part's content type is not on the accepted list."""

    def __init__(
        self,
        content_type: Optional[str],
        allowed: Optional[list] = None,
        field: Optional[str] = None,
    ):
        allowed = allowed or []
        if allowed == ["application/pdf"]:
            message = "Only PDF files are accepted"
        else:
            message = (
                f"File type '{content_type or 'unknown'}' is not supported. "
                f"Allowed types: {', '.join(allowed)}"
            )
        super().__init__(
            message=message,
            field=field,
            context={"content_type": content_type, "allowed": allowed},
        )
        self.content_type = content_type


class PayloadTooLargeError(PawLenxError):
    """
    Raised when an uploaded part exceeds the configured size ceiling.

    HTTP:    413 Payload Too Large
    """

    def __init__(
        self,
        max_size: int,
        actual_size: Optional[int] = None,
        field: Optional[str] = None,
    ):
        max_mb = max_size / (1024 * 1024)
        super().__init__(
            message=f"File too large. Max size is {max_mb:.0f}MB.",
            context={"max_size": max_size, "actual_size": actual_size, "field": field},
        )
        self.max_size = max_size


class ConflictError(PawLenxError):
    """
    Raised when a write collides with existing state.

    HTTP:    409 Conflict
    """

    def __init__(
        self,
        message: str = "The resource was modified by another request",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DuplicateAccountError(ConflictError):
    """
    Signup for an identity whose profile already exists.

    HTTP:    400 Bad Request (the signup form treats it as invalid input)
    """

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="An account with this name and password already exists",
            context=context,
        )


class StaleWriteError(ConflictError):
    """
    A compare-and-swap write lost: the document changed since it was read,
    or a create found the document already present.

    Callers re-read and retry; PetRegistry does so automatically.
    """

    def __init__(self, path: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["path"] = path
        super().__init__(
            message="The record was changed by another request. Please try again.",
            context=ctx,
        )
        self.path = path


class UnauthorizedError(PawLenxError):
    """
    Bad credentials or a missing bearer token.

    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Invalid name or password",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(PawLenxError):
    """
    HTTP:    403 Forbidden
    """

    def __init__(
        self,
        message: str = "You do not have access to this resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvalidTokenError(ForbiddenError):
    """
    A session token failed verification.

    Expired and tampered tokens are deliberately indistinguishable; the
    underlying reason is kept in context for the server log only.
    """

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="Invalid or expired token", context=context)


class NotFoundError(PawLenxError):
    """
    Raised when a requested record does not exist.

    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource.capitalize()} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class FileStorageError(PawLenxError):
    """
    Raised when local staging fails.

    When:    Disk full, permission denied, rename failed.
    HTTP:    500 Internal Server Error (the primary copy cannot be guaranteed)
    """

    def __init__(
        self,
        message: str = "Failed to store the uploaded files. Please try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RemoteStoreError(PawLenxError):
    """
    Base for failures talking to the remote document host.

    HTTP:    500 Internal Server Error for operations that need durability;
             the ingestion pipeline catches these and degrades instead.
    """

    retryable = False

    def __init__(
        self,
        message: str = "The remote document store is unavailable. Please try again later.",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class RemoteStoreAuthError(RemoteStoreError):
    """The host rejected our credentials (401, or 403 without rate limiting)."""

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="The remote document store rejected the server's credentials.",
            context=context,
        )


class RemoteStoreRateLimitError(RemoteStoreError):
    """The host's API rate limit is exhausted."""

    def __init__(self, retry_after: Optional[int] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="The remote document store is rate limiting requests. Please try again later.",
            retry_after=retry_after,
            context=context,
        )


class RemoteStoreNotFoundError(RemoteStoreError):
    """The repository, branch or parent path does not exist on the host."""

    def __init__(self, path: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["path"] = path
        super().__init__(
            message="The remote document store is misconfigured.",
            context=ctx,
        )


class RemoteStoreUnavailableError(RemoteStoreError):
    """5xx or transport failure. Safe to retry."""

    retryable = True


class RemoteStoreTimeoutError(RemoteStoreUnavailableError):
    """A remote call exceeded the configured timeout. Safe to retry."""

    def __init__(self, timeout: float, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["timeout_seconds"] = timeout
        super().__init__(
            message="The remote document store timed out. Please try again later.",
            context=ctx,
        )


class CircuitBreakerOpenError(RemoteStoreUnavailableError):
    """
    Raised when the store's circuit breaker is OPEN.

    After cb_failure_threshold consecutive failures every remote call fails
    immediately until cb_recovery_timeout seconds have passed.
    """

    retryable = False

    def __init__(self, recovery_time: int = 60, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(
            message=(
                "The remote document store is temporarily unavailable due to repeated "
                f"failures. Retrying in approximately {recovery_time} seconds."
            ),
            retry_after=recovery_time,
            context=ctx,
        )
        self.recovery_time = recovery_time


class RateLimitExceededError(PawLenxError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Too many requests. Please wait {retry_after} seconds before retrying."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
