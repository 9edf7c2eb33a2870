"""
Domain errors for the phone verification flow.

Services raise these; exception_handlers.py turns them into HTTP responses.
`public_message` is the only text that reaches the client.
"""
import math
from datetime import datetime
from typing import Optional


class AuthError(Exception):
    status_code = 500
    code = "internal"
    public_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None, public_message: Optional[str] = None):
        super().__init__(message or self.public_message)
        if public_message is not None:
            self.public_message = public_message


class InvalidPhoneFormat(AuthError):
    status_code = 400
    code = "invalid_phone"
    public_message = "Enter a valid US phone number"


class InvalidInput(AuthError):
    status_code = 400
    code = "invalid_input"
    public_message = "Invalid input"


class RateLimited(AuthError):
    status_code = 429
    code = "rate_limited"
    public_message = "Too many attempts. Please try again later."

    def __init__(
        self,
        reset_at: datetime,
        now: datetime,
        limit: int = 0,
        message: Optional[str] = None,
        public_message: Optional[str] = None,
    ):
        super().__init__(message, public_message)
        self.reset_at = reset_at
        self.limit = limit
        self.retry_after_seconds = max(0, math.ceil((reset_at - now).total_seconds()))


class ProviderUnavailable(AuthError):
    status_code = 503
    code = "provider_unavailable"
    public_message = "Unable to send verification code"


class ProviderError(AuthError):
    status_code = 502
    code = "provider_error"
    public_message = "Unable to send verification code"


class InvalidCode(AuthError):
    status_code = 400
    code = "invalid_code"
    public_message = "Invalid verification code"


class NotFound(AuthError):
    status_code = 404
    code = "not_found"
    public_message = "No account found for that phone"


class StoreUnavailable(AuthError):
    """Backing store failure. The limiter turns this into a denial."""

    status_code = 503
    code = "store_unavailable"
    public_message = "Service temporarily unavailable. Please try again later."
