from .user import User
from .rate_limit_window import RateLimitWindowRow
from .verification_attempt import VerificationAttemptRow

__all__ = [
    "User",
    "RateLimitWindowRow",
    "VerificationAttemptRow",
]
