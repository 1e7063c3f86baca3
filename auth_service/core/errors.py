"""
Error taxonomy for the passwordless authentication flow.

Every failure that crosses the service boundary is one of these kinds.
Messages are deliberately generic so that responses never reveal whether
an account exists.
"""

from typing import Optional


class AuthError(Exception):
    """
    Base class for auth failures mapped to HTTP responses.

    Each subclass defines a stable error_code, an HTTP status_code and the
    user-visible message.
    """

    status_code: int = 400
    error_code: str = "auth_error"
    public_message: str = "Authentication failed"

    def __init__(self, message: Optional[str] = None, *, retry_after: Optional[int] = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.retry_after = retry_after


class RateLimited(AuthError):
    """Too many code requests from this IP in the current window (429)."""
    status_code = 429
    error_code = "rate_limited"
    public_message = "Too many verification requests. Please try again later."


class NotFound(AuthError):
    """No unused, unexpired code exists for the subject (401)."""
    status_code = 401
    error_code = "invalid_code"
    public_message = "Invalid or expired code"


class Incorrect(AuthError):
    """Submitted code does not match; retryable up to the attempt ceiling (401)."""
    status_code = 401
    error_code = "invalid_code"
    public_message = "Invalid or expired code"


class AttemptsExceeded(AuthError):
    """The code is locked after too many wrong submissions (401)."""
    status_code = 401
    error_code = "attempts_exceeded"
    public_message = "Too many attempts. Please request a new code."


class Invalid(AuthError):
    """Refresh secret unknown, revoked or expired (401)."""
    status_code = 401
    error_code = "invalid_token"
    public_message = "Invalid or expired token"


class DeliveryFailed(AuthError):
    """The messaging transport could not deliver the code (503)."""
    status_code = 503
    error_code = "delivery_failed"
    public_message = "Could not deliver the verification code. Please try again."


class Forbidden(AuthError):
    """Policy denial; never says which check failed (403)."""
    status_code = 403
    error_code = "forbidden"
    public_message = "Account not permitted"


class Unauthorized(AuthError):
    """Subject is not eligible for the admin console (403)."""
    status_code = 403
    error_code = "unauthorized"
    public_message = "This account is not authorized for admin access"


class ServiceUnavailable(AuthError):
    """Persistence failed; nothing partial was committed (503)."""
    status_code = 503
    error_code = "service_unavailable"
    public_message = "Service temporarily unavailable. Please try again."
