"""
Stub verification provider for dev/staging environments
"""
import logging
from typing import List

from ...core.config import settings
from ...utils.phone import get_phone_last4
from .otp_provider import CheckOutcome, VerificationProvider

logger = logging.getLogger(__name__)


class StubVerificationProvider(VerificationProvider):
    """
    Stub provider for development/staging.

    Sends nothing. Accepts code '000000' for allowlisted phones, or for any
    phone when no allowlist is configured.
    """

    STUB_CODE = "000000"

    def __init__(self, allowlist: str = None):
        if settings.is_production:
            raise ValueError("Stub verification provider cannot be used in production")

        allowlist_str = settings.OTP_DEV_ALLOWLIST if allowlist is None else allowlist
        self.allowlist: List[str] = [p.strip() for p in allowlist_str.split(",") if p.strip()]
        self.sent: List[str] = []

        logger.info(f"[OTP][Stub] Stub provider enabled for environment: {settings.ENV}")
        if not self.allowlist:
            logger.warning("[OTP][Stub] No allowlist configured - stub provider will accept any phone")

    async def send_code(self, phone: str) -> None:
        if self.allowlist and phone not in self.allowlist:
            logger.warning(f"[OTP][Stub] Phone ending {get_phone_last4(phone)} not in allowlist, sending anyway")
        self.sent.append(phone)
        logger.info(f"[OTP][Stub] Code for {get_phone_last4(phone)}: {self.STUB_CODE}")

    async def check_code(self, phone: str, code: str) -> CheckOutcome:
        if self.allowlist and phone not in self.allowlist:
            logger.warning(f"[OTP][Stub] Verification failed: {get_phone_last4(phone)} not in allowlist")
            return CheckOutcome.DENIED

        if (code or "").strip() == self.STUB_CODE:
            logger.info(f"[OTP][Stub] Verification successful for {get_phone_last4(phone)}")
            return CheckOutcome.APPROVED

        logger.warning(f"[OTP][Stub] Verification failed for {get_phone_last4(phone)}: code mismatch")
        return CheckOutcome.DENIED
