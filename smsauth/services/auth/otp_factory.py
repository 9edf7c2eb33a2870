"""
Verification provider factory
"""
import logging

from ...core.config import settings
from .otp_provider import VerificationProvider
from .stub_provider import StubVerificationProvider
from .twilio_verify import TwilioVerifyProvider

logger = logging.getLogger(__name__)


def create_verification_provider(provider_type: str = None) -> VerificationProvider:
    """
    Build the provider named by OTP_PROVIDER.

    Raises:
        ValueError: Unknown provider, or the provider is not configured
    """
    provider_type = (provider_type or settings.OTP_PROVIDER).lower()

    if provider_type == "twilio_verify":
        try:
            provider = TwilioVerifyProvider()
        except ValueError as e:
            logger.error(f"[OTP] Failed to initialize Twilio Verify: {e}")
            raise
        logger.info("[OTP] Using Twilio Verify provider")
        return provider

    if provider_type == "stub":
        provider = StubVerificationProvider()
        logger.info("[OTP] Using stub provider")
        return provider

    raise ValueError(f"Unknown OTP provider: {provider_type}. Must be one of: twilio_verify, stub")
