"""
Phone verification coordinator: send-code and check-code flows.

Every step that can refuse a request (normalization, rate limits, lockout)
runs before the provider is called, so a malformed or throttled request
never costs an SMS. Rate-limit slots are consumed before the provider call;
a slow or failing provider does not refund them.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ..core.clock import Clock, system_clock
from ..core.exceptions import (
    InvalidCode,
    InvalidInput,
    NotFound,
    ProviderError,
    ProviderUnavailable,
    RateLimited,
    StoreUnavailable,
)
from ..utils.phone import get_phone_last4, normalize_phone
from .auth.attempt_log import AttemptLog, VerificationAttempt
from .auth.audit import AuditService
from .auth.otp_provider import CheckOutcome, VerificationProvider
from .auth.rate_limit import (
    PURPOSE_REGISTER_SEND,
    PURPOSE_REGISTER_VERIFY_SUCCESS,
    PURPOSE_SEND_CODE,
    PURPOSE_VERIFY,
    SCOPE_IP,
    SCOPE_PHONE,
    PolicyTable,
    RateLimiter,
    RateLimitKey,
    RateLimitResult,
)
from .auth.verification_session import VerificationSessionRegistry
from .user_lookup import UserLookup

logger = logging.getLogger(__name__)

PURPOSE_LOGIN = "login"
PURPOSE_REGISTER = "register"
PURPOSES = (PURPOSE_LOGIN, PURPOSE_REGISTER)

VERIFY_COUNTING_TRAILING = "trailing"
VERIFY_COUNTING_FIXED = "fixed"

CODE_PATTERN = re.compile(r"^\d{4,10}$")


@dataclass(frozen=True)
class CodeRequestResult:
    phone: str
    sent: bool
    remaining: int
    reset_at: datetime


@dataclass(frozen=True)
class VerificationResult:
    phone: str
    subject_id: Optional[str] = None
    already_verified: bool = False


class VerificationCoordinator:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        attempt_log: AttemptLog,
        provider: VerificationProvider,
        user_lookup: UserLookup,
        sessions: VerificationSessionRegistry,
        policies: PolicyTable,
        clock: Clock = system_clock,
        verify_counting: str = VERIFY_COUNTING_TRAILING,
        conceal_unknown_phone: bool = True,
    ):
        if verify_counting not in (VERIFY_COUNTING_TRAILING, VERIFY_COUNTING_FIXED):
            raise ValueError(f"Unknown verify counting mode: {verify_counting}")
        self.rate_limiter = rate_limiter
        self.attempt_log = attempt_log
        self.provider = provider
        self.user_lookup = user_lookup
        self.sessions = sessions
        self.policies = policies
        self.clock = clock
        self.verify_counting = verify_counting
        self.conceal_unknown_phone = conceal_unknown_phone

    @staticmethod
    def _check_purpose(purpose: str):
        if purpose not in PURPOSES:
            raise InvalidInput(f"Unknown verification purpose: {purpose}")

    def _rate_limited(self, result: RateLimitResult, event_type: str, phone: str, ip: str, purpose: str, request_id: Optional[str]) -> RateLimited:
        now = self.clock.now()
        error = RateLimited(reset_at=result.reset_at, now=now, limit=result.limit)
        AuditService.log_rate_limited(
            event_type,
            phone_last4=get_phone_last4(phone),
            ip=ip,
            purpose=purpose,
            scope=result.key.scope if result.key else None,
            retry_after_seconds=error.retry_after_seconds,
            degraded=result.degraded,
            request_id=request_id,
        )
        return error

    async def request_code(self, phone: str, ip: str, purpose: str = PURPOSE_LOGIN, request_id: Optional[str] = None) -> CodeRequestResult:
        """
        Send a verification code to a phone number.

        Args:
            phone: Raw phone input (normalized here)
            ip: Client origin (IP literal or fallback fingerprint)
            purpose: "login" or "register"
            request_id: Request ID for audit correlation

        Returns:
            CodeRequestResult; `sent` is False only when a login code was
            suppressed for an unknown phone

        Raises:
            InvalidPhoneFormat, RateLimited, NotFound, ProviderUnavailable, ProviderError
        """
        self._check_purpose(purpose)
        normalized = normalize_phone(phone)
        phone_last4 = get_phone_last4(normalized)

        send_purpose = PURPOSE_SEND_CODE if purpose == PURPOSE_LOGIN else PURPOSE_REGISTER_SEND
        result = self.rate_limiter.check_all([
            (RateLimitKey(send_purpose, SCOPE_IP, ip), self.policies.send_ip),
            (RateLimitKey(send_purpose, SCOPE_PHONE, normalized), self.policies.send_phone),
        ])
        if not result.allowed:
            raise self._rate_limited(result, "otp_start_rate_limited", normalized, ip, purpose, request_id)

        AuditService.log_code_requested(phone_last4, ip, purpose, request_id=request_id)

        if purpose == PURPOSE_LOGIN and self.user_lookup.find_subject_by_phone(normalized) is None:
            if self.conceal_unknown_phone:
                AuditService.log_code_suppressed(phone_last4, ip, purpose, reason="no_account", request_id=request_id)
                return CodeRequestResult(phone=normalized, sent=False, remaining=result.remaining, reset_at=result.reset_at)
            raise NotFound(f"No account for phone ending {phone_last4}")

        try:
            await self.provider.send_code(normalized)
        except (ProviderUnavailable, ProviderError) as e:
            logger.error(f"[OTP] Failed to send code to {phone_last4}: {type(e).__name__}: {e}")
            AuditService.log_provider_error("otp_start_failed", phone_last4, ip, purpose, error=type(e).__name__, request_id=request_id)
            raise

        self.sessions.mark_code_sent(normalized, purpose, self.clock.now())
        AuditService.log_code_sent(phone_last4, ip, purpose, provider=self.provider.name, request_id=request_id)
        logger.info(f"[OTP] Code sent to {phone_last4} ({purpose})")
        return CodeRequestResult(phone=normalized, sent=True, remaining=result.remaining, reset_at=result.reset_at)

    def rate_limit_status(self, ip: str, phone: Optional[str] = None) -> List[RateLimitResult]:
        """Current login send-code (and fixed-mode verify) counters, nothing consumed."""
        checks = [(RateLimitKey(PURPOSE_SEND_CODE, SCOPE_IP, ip), self.policies.send_ip)]
        if self.verify_counting == VERIFY_COUNTING_FIXED:
            checks.append((RateLimitKey(PURPOSE_VERIFY, SCOPE_IP, ip), self.policies.verify))
        if phone:
            normalized = normalize_phone(phone)
            checks.append((RateLimitKey(PURPOSE_SEND_CODE, SCOPE_PHONE, normalized), self.policies.send_phone))
            if self.verify_counting == VERIFY_COUNTING_FIXED:
                checks.append((RateLimitKey(PURPOSE_VERIFY, SCOPE_PHONE, normalized), self.policies.verify))
        return [self.rate_limiter.peek(key, policy) for key, policy in checks]

    def _record_attempt(self, attempt: VerificationAttempt):
        try:
            self.attempt_log.record(attempt)
        except StoreUnavailable as e:
            # Lockout checks read the same store, so they fail closed while it is down
            logger.error(f"[OTP] Could not record verification attempt for {get_phone_last4(attempt.phone)}: {e}")

    def _enforce_verify_limits(self, phone: str, ip: str, purpose: str, request_id: Optional[str]):
        if self.verify_counting == VERIFY_COUNTING_FIXED:
            result = self.rate_limiter.check_all([
                (RateLimitKey(PURPOSE_VERIFY, SCOPE_IP, ip), self.policies.verify),
                (RateLimitKey(PURPOSE_VERIFY, SCOPE_PHONE, phone), self.policies.verify),
            ])
            if not result.allowed:
                raise self._rate_limited(result, "otp_verify_rate_limited", phone, ip, purpose, request_id)
            return

        policy = self.policies.verify_lockout
        now = self.clock.now()
        try:
            status = self.attempt_log.lockout_status(phone, ip, policy, now)
        except StoreUnavailable as e:
            logger.error(f"[OTP] Attempt log unavailable, denying verify for {get_phone_last4(phone)}: {e}")
            degraded = RateLimitResult(allowed=False, remaining=0, reset_at=now + policy.window, limit=policy.max_attempts, degraded=True)
            raise self._rate_limited(degraded, "otp_verify_rate_limited", phone, ip, purpose, request_id)

        if not status.locked:
            return

        # Each attempt while locked is a failure of its own and restarts the lockout
        self._record_attempt(VerificationAttempt(
            phone=phone,
            ip_address=ip,
            success=False,
            created_at=now,
            purpose=purpose,
            lock_scope=status.scope,
        ))
        locked_until = now + policy.lockout
        AuditService.log_verify_blocked(get_phone_last4(phone), ip, purpose, scope=status.scope, locked_until=locked_until, request_id=request_id)
        raise RateLimited(reset_at=locked_until, now=now, limit=policy.max_attempts)

    async def check_code(self, phone: str, code: str, ip: str, purpose: str = PURPOSE_LOGIN, request_id: Optional[str] = None) -> VerificationResult:
        """
        Check a verification code.

        Returns:
            VerificationResult with the subject id for login. A repeat of the
            code that already verified this session returns
            already_verified=True; the caller decides whether to honor it.

        Raises:
            InvalidPhoneFormat, InvalidInput, RateLimited, InvalidCode, NotFound,
            ProviderUnavailable, ProviderError
        """
        self._check_purpose(purpose)
        normalized = normalize_phone(phone)
        phone_last4 = get_phone_last4(normalized)

        code = (code or "").strip()
        if not CODE_PATTERN.match(code):
            raise InvalidInput("Verification code must be 4-10 digits")

        now = self.clock.now()
        session = self.sessions.matches_verified_code(normalized, purpose, code, now)
        if session is not None:
            self._record_attempt(VerificationAttempt(
                phone=normalized, ip_address=ip, success=True, created_at=now, purpose=purpose, replay=True,
            ))
            AuditService.log_verify_success(phone_last4, ip, purpose, subject_id=session.subject_id, already_verified=True, request_id=request_id)
            return VerificationResult(phone=normalized, subject_id=session.subject_id, already_verified=True)

        self._enforce_verify_limits(normalized, ip, purpose, request_id)

        try:
            outcome = await self.provider.check_code(normalized, code)
        except (ProviderUnavailable, ProviderError) as e:
            logger.error(f"[OTP] Error verifying code for {phone_last4}: {type(e).__name__}: {e}")
            AuditService.log_provider_error("otp_verify_failed", phone_last4, ip, purpose, error=type(e).__name__, request_id=request_id)
            raise

        now = self.clock.now()
        approved = outcome == CheckOutcome.APPROVED
        self._record_attempt(VerificationAttempt(
            phone=normalized, ip_address=ip, success=approved, created_at=now, purpose=purpose,
        ))

        if not approved:
            AuditService.log_verify_fail(phone_last4, ip, purpose, error="invalid_code", request_id=request_id)
            raise InvalidCode(f"Code rejected for {phone_last4}")

        subject_id = None
        if purpose == PURPOSE_LOGIN:
            subject_id = self.user_lookup.find_subject_by_phone(normalized)
            if subject_id is None:
                AuditService.log_verify_fail(phone_last4, ip, purpose, error="no_account", request_id=request_id)
                if self.conceal_unknown_phone:
                    raise InvalidCode(f"No account for {phone_last4}")
                raise NotFound(f"No account for phone ending {phone_last4}")
        else:
            result = self.rate_limiter.check(
                RateLimitKey(PURPOSE_REGISTER_VERIFY_SUCCESS, SCOPE_PHONE, normalized),
                self.policies.register_verify_success,
            )
            if not result.allowed:
                raise self._rate_limited(result, "otp_verify_rate_limited", normalized, ip, purpose, request_id)

        self.sessions.mark_verified(normalized, purpose, code, now, subject_id=subject_id)
        AuditService.log_verify_success(phone_last4, ip, purpose, subject_id=subject_id, request_id=request_id)
        logger.info(f"[OTP] Verification successful for {phone_last4} ({purpose})")
        return VerificationResult(phone=normalized, subject_id=subject_id)
