"""
Structured audit logging service for authentication events
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from ...core.config import settings

logger = logging.getLogger(__name__)


class AuditService:
    """
    Structured audit logging for phone verification.

    Never logs codes or full phone numbers.
    """

    @staticmethod
    def _log_audit_event(
        event_type: str,
        request_id: Optional[str] = None,
        phone_last4: Optional[str] = None,
        ip: Optional[str] = None,
        purpose: Optional[str] = None,
        outcome: Optional[str] = None,
        error: Optional[str] = None,
        **kwargs,
    ):
        audit_data = {
            "event_type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "outcome": outcome,
            "env": settings.ENV,
        }

        if request_id:
            audit_data["request_id"] = request_id
        if phone_last4:
            audit_data["phone_last4"] = phone_last4
        if ip:
            audit_data["ip"] = ip
        if purpose:
            audit_data["purpose"] = purpose
        if error:
            audit_data["error"] = error

        audit_data.update(kwargs)

        logger.info(f"[Auth][Audit] {json.dumps(audit_data, default=str)}")

    @staticmethod
    def log_code_requested(phone_last4: str, ip: str, purpose: str, request_id: Optional[str] = None):
        AuditService._log_audit_event(
            "otp_start_requested", request_id, phone_last4, ip, purpose, outcome="requested"
        )

    @staticmethod
    def log_code_sent(phone_last4: str, ip: str, purpose: str, provider: str, request_id: Optional[str] = None):
        AuditService._log_audit_event(
            "otp_start_sent", request_id, phone_last4, ip, purpose, outcome="success", provider=provider
        )

    @staticmethod
    def log_code_suppressed(phone_last4: str, ip: str, purpose: str, reason: str, request_id: Optional[str] = None):
        """Send skipped on purpose (e.g. no account for a login phone)."""
        AuditService._log_audit_event(
            "otp_start_suppressed", request_id, phone_last4, ip, purpose, outcome="suppressed", reason=reason
        )

    @staticmethod
    def log_rate_limited(
        event_type: str,
        phone_last4: Optional[str],
        ip: str,
        purpose: str,
        scope: Optional[str],
        retry_after_seconds: int,
        degraded: bool = False,
        request_id: Optional[str] = None,
    ):
        AuditService._log_audit_event(
            event_type,
            request_id,
            phone_last4,
            ip,
            purpose,
            outcome="rate_limited",
            scope=scope,
            retry_after_seconds=retry_after_seconds,
            degraded=degraded,
        )

    @staticmethod
    def log_verify_blocked(phone_last4: str, ip: str, purpose: str, scope: str, locked_until: datetime, request_id: Optional[str] = None):
        AuditService._log_audit_event(
            "otp_blocked", request_id, phone_last4, ip, purpose, outcome="blocked", scope=scope, locked_until=locked_until
        )

    @staticmethod
    def log_verify_success(
        phone_last4: str,
        ip: str,
        purpose: str,
        subject_id: Optional[str] = None,
        already_verified: bool = False,
        request_id: Optional[str] = None,
    ):
        AuditService._log_audit_event(
            "otp_verify_success",
            request_id,
            phone_last4,
            ip,
            purpose,
            outcome="success",
            subject_id=subject_id,
            already_verified=already_verified,
        )

    @staticmethod
    def log_verify_fail(phone_last4: str, ip: str, purpose: str, error: str, request_id: Optional[str] = None):
        AuditService._log_audit_event(
            "otp_verify_fail", request_id, phone_last4, ip, purpose, outcome="fail", error=error
        )

    @staticmethod
    def log_provider_error(event_type: str, phone_last4: str, ip: str, purpose: str, error: str, request_id: Optional[str] = None):
        AuditService._log_audit_event(
            event_type, request_id, phone_last4, ip, purpose, outcome="provider_error", error=error
        )
