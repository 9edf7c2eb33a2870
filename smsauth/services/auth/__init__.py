"""
Auth services package for phone verification and rate limiting
"""
from .otp_provider import CheckOutcome, VerificationProvider
from .twilio_verify import TwilioVerifyProvider
from .stub_provider import StubVerificationProvider
from .rate_limit import RateLimiter, RateLimitKey, RateLimitPolicy, RateLimitResult, PolicyTable
from .window_store import InMemoryWindowStore, SQLAlchemyWindowStore, RedisWindowStore
from .attempt_log import InMemoryAttemptLog, SQLAlchemyAttemptLog
from .audit import AuditService
from .otp_factory import create_verification_provider

__all__ = [
    "CheckOutcome",
    "VerificationProvider",
    "TwilioVerifyProvider",
    "StubVerificationProvider",
    "RateLimiter",
    "RateLimitKey",
    "RateLimitPolicy",
    "RateLimitResult",
    "PolicyTable",
    "InMemoryWindowStore",
    "SQLAlchemyWindowStore",
    "RedisWindowStore",
    "InMemoryAttemptLog",
    "SQLAlchemyAttemptLog",
    "AuditService",
    "create_verification_provider",
]
