"""
Fixed-window rate limiting for phone verification.

Limits (defaults, configurable via settings):
- send-code: 5 / 15 min per IP, 3 / hour per phone
- verify (fixed counting): 5 / 15 min per phone and per IP
- register-verify-success: 3 / hour per phone

Each externally visible action is checked against an IP-scoped and a
phone-scoped policy and is denied if either denies. `RateLimiter.check` is
the only mutation entry point; callers never increment on their own.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Tuple

from ...core.clock import Clock, system_clock
from ...core.config import settings
from ...core.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

SCOPE_IP = "ip"
SCOPE_PHONE = "phone"

PURPOSE_SEND_CODE = "send-code"
PURPOSE_VERIFY = "verify"
PURPOSE_REGISTER_SEND = "register-send"
PURPOSE_REGISTER_VERIFY_SUCCESS = "register-verify-success"


@dataclass(frozen=True)
class RateLimitKey:
    purpose: str
    scope: str
    identifier: str

    @property
    def storage_key(self) -> str:
        return f"{self.purpose}:{self.scope}:{self.identifier}"


@dataclass(frozen=True)
class RateLimitPolicy:
    max_attempts: int
    window: timedelta

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.window <= timedelta(0):
            raise ValueError("window must be positive")

    @classmethod
    def per_seconds(cls, max_attempts: int, seconds: int) -> "RateLimitPolicy":
        return cls(max_attempts=max_attempts, window=timedelta(seconds=seconds))


@dataclass
class RateLimitWindow:
    count: int
    window_start: datetime
    window_expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.window_expires_at

    def is_stale(self, now: datetime) -> bool:
        """At least one full window past expiry."""
        return now >= self.window_expires_at + (self.window_expires_at - self.window_start)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime
    limit: int
    key: Optional[RateLimitKey] = None
    degraded: bool = False  # denied because the store failed

    def retry_after_seconds(self, now: datetime) -> int:
        return max(0, math.ceil((self.reset_at - now).total_seconds()))


def apply_hit(window: Optional[RateLimitWindow], policy: RateLimitPolicy, now: datetime) -> Tuple[RateLimitWindow, bool]:
    """
    Fixed-window transition shared by every store.

    Returns the new window and whether the request was admitted. A capped
    window is returned unchanged.
    """
    if window is None or window.is_expired(now):
        return RateLimitWindow(count=1, window_start=now, window_expires_at=now + policy.window), True

    if window.count >= policy.max_attempts:
        return window, False

    return RateLimitWindow(
        count=window.count + 1,
        window_start=window.window_start,
        window_expires_at=window.window_expires_at,
    ), True


def result_for(window: RateLimitWindow, admitted: bool, policy: RateLimitPolicy, key: RateLimitKey) -> RateLimitResult:
    if not admitted:
        remaining = 0
    else:
        remaining = max(0, policy.max_attempts - window.count)
    return RateLimitResult(
        allowed=admitted,
        remaining=remaining,
        reset_at=window.window_expires_at,
        limit=policy.max_attempts,
        key=key,
    )


class RateLimiter:
    """Admit/deny decisions over a pluggable WindowStore. Fails closed."""

    def __init__(self, store, clock: Clock = system_clock):
        self.store = store
        self.clock = clock

    def check(self, key: RateLimitKey, policy: RateLimitPolicy) -> RateLimitResult:
        now = self.clock.now()
        try:
            result = self.store.hit(key, policy, now)
        except StoreUnavailable as e:
            logger.error(f"[RateLimit] Store unavailable for {key.purpose}:{key.scope}, denying: {e}")
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=now + policy.window,
                limit=policy.max_attempts,
                key=key,
                degraded=True,
            )

        if not result.allowed:
            logger.info(
                f"[RateLimit] Denied {key.purpose}:{key.scope} "
                f"(limit={policy.max_attempts}, reset_at={result.reset_at.isoformat()})"
            )
        return result

    def check_all(self, checks: Iterable[Tuple[RateLimitKey, RateLimitPolicy]]) -> RateLimitResult:
        """
        Evaluate policies in order and stop at the first denial.

        Later keys are not consumed once an earlier one denies.
        """
        result = None
        for key, policy in checks:
            result = self.check(key, policy)
            if not result.allowed:
                return result
        if result is None:
            raise ValueError("check_all requires at least one policy")
        return result

    def peek(self, key: RateLimitKey, policy: RateLimitPolicy) -> RateLimitResult:
        """Current state without consuming a slot. Fails closed like check."""
        now = self.clock.now()
        try:
            window = self.store.get(key)
        except StoreUnavailable as e:
            logger.error(f"[RateLimit] Store unavailable for {key.purpose}:{key.scope} peek: {e}")
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=now + policy.window,
                limit=policy.max_attempts,
                key=key,
                degraded=True,
            )
        if window is None or window.is_expired(now):
            return RateLimitResult(
                allowed=True,
                remaining=policy.max_attempts,
                reset_at=now + policy.window,
                limit=policy.max_attempts,
                key=key,
            )
        remaining = max(0, policy.max_attempts - window.count)
        return RateLimitResult(
            allowed=remaining > 0,
            remaining=remaining,
            reset_at=window.window_expires_at,
            limit=policy.max_attempts,
            key=key,
        )


@dataclass(frozen=True)
class LockoutPolicy:
    """Trailing-window lockout: max_attempts failures within window lock for lockout."""

    max_attempts: int
    window: timedelta
    lockout: timedelta


@dataclass(frozen=True)
class PolicyTable:
    send_ip: RateLimitPolicy
    send_phone: RateLimitPolicy
    verify: RateLimitPolicy
    verify_lockout: LockoutPolicy
    register_verify_success: RateLimitPolicy

    @classmethod
    def from_settings(cls, s=settings) -> "PolicyTable":
        return cls(
            send_ip=RateLimitPolicy.per_seconds(s.RATE_LIMIT_SEND_IP_MAX, s.RATE_LIMIT_SEND_IP_WINDOW_SECONDS),
            send_phone=RateLimitPolicy.per_seconds(s.RATE_LIMIT_SEND_PHONE_MAX, s.RATE_LIMIT_SEND_PHONE_WINDOW_SECONDS),
            verify=RateLimitPolicy.per_seconds(s.RATE_LIMIT_VERIFY_MAX, s.RATE_LIMIT_VERIFY_WINDOW_SECONDS),
            verify_lockout=LockoutPolicy(
                max_attempts=s.RATE_LIMIT_VERIFY_MAX,
                window=timedelta(seconds=s.RATE_LIMIT_VERIFY_WINDOW_SECONDS),
                lockout=timedelta(seconds=s.RATE_LIMIT_VERIFY_LOCKOUT_SECONDS),
            ),
            register_verify_success=RateLimitPolicy.per_seconds(
                s.RATE_LIMIT_REGISTER_SUCCESS_MAX, s.RATE_LIMIT_REGISTER_SUCCESS_WINDOW_SECONDS
            ),
        )
