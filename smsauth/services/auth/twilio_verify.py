"""
Twilio Verify provider implementation
"""
import asyncio
import logging

from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from ...core.config import settings
from ...core.exceptions import ProviderError, ProviderUnavailable
from ...utils.phone import get_phone_last4
from .otp_provider import CheckOutcome, VerificationProvider

logger = logging.getLogger(__name__)


def _is_transient(e: TwilioRestException) -> bool:
    return e.status is None or e.status >= 500 or e.status == 429


class TwilioVerifyProvider(VerificationProvider):
    """
    Twilio Verify provider.

    Twilio generates the code, enforces its TTL and single use, so nothing
    secret is stored locally.
    """

    def __init__(self, client: Client = None):
        if client is None:
            if not settings.TWILIO_ACCOUNT_SID or not settings.TWILIO_AUTH_TOKEN:
                raise ValueError("Twilio credentials not configured")

            # Explicit timeout so a hung request can't hold a worker thread
            http_client = TwilioHttpClient(timeout=settings.TWILIO_TIMEOUT_SECONDS)
            client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, http_client=http_client)

        if not settings.TWILIO_VERIFY_SERVICE_SID:
            raise ValueError("TWILIO_VERIFY_SERVICE_SID not configured")

        self.client = client
        self.service_sid = settings.TWILIO_VERIFY_SERVICE_SID
        self.timeout_seconds = settings.TWILIO_TIMEOUT_SECONDS

    def _service(self):
        return self.client.verify.v2.services(self.service_sid)

    async def send_code(self, phone: str) -> None:
        phone_last4 = get_phone_last4(phone)

        def _send_verification():
            """Synchronous Twilio API call - runs in executor thread"""
            return self._service().verifications.create(to=phone, channel="sms")

        try:
            verification = await asyncio.wait_for(
                asyncio.to_thread(_send_verification),
                timeout=self.timeout_seconds + 5,  # buffer for executor overhead
            )
        except asyncio.TimeoutError as e:
            logger.error(f"[OTP][TwilioVerify] Timeout sending verification to {phone_last4} (>{self.timeout_seconds}s)")
            raise ProviderUnavailable("Twilio send timed out") from e
        except TwilioRestException as e:
            logger.error(f"[OTP][TwilioVerify] Twilio error sending to {phone_last4}: status={e.status} code={e.code}")
            if _is_transient(e):
                raise ProviderUnavailable(f"Twilio unavailable: {e.status}") from e
            raise ProviderError(f"Twilio rejected send: {e.code}") from e
        except TwilioException as e:
            logger.error(f"[OTP][TwilioVerify] Twilio client error sending to {phone_last4}: {type(e).__name__}")
            raise ProviderError("Twilio client error") from e
        except Exception as e:
            logger.error(f"[OTP][TwilioVerify] Unexpected error sending to {phone_last4}: {type(e).__name__}: {e}", exc_info=True)
            raise ProviderUnavailable("Twilio send failed") from e

        if verification.status not in ("pending", "approved"):
            logger.warning(f"[OTP][TwilioVerify] Unexpected verification status for {phone_last4}: {verification.status}")
            raise ProviderError(f"Unexpected verification status: {verification.status}")

        logger.info(f"[OTP][TwilioVerify] Verification sent to {phone_last4}, SID: {verification.sid}")

    async def check_code(self, phone: str, code: str) -> CheckOutcome:
        phone_last4 = get_phone_last4(phone)

        def _verify_code():
            """Synchronous Twilio API call - runs in executor thread"""
            return self._service().verification_checks.create(to=phone, code=code)

        try:
            verification_check = await asyncio.wait_for(
                asyncio.to_thread(_verify_code),
                timeout=self.timeout_seconds + 5,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"[OTP][TwilioVerify] Timeout verifying code for {phone_last4} (>{self.timeout_seconds}s)")
            raise ProviderUnavailable("Twilio check timed out") from e
        except TwilioRestException as e:
            # 404: no pending verification (expired, consumed, or never sent)
            if e.status == 404:
                logger.warning(f"[OTP][TwilioVerify] No pending verification for {phone_last4}")
                return CheckOutcome.DENIED
            logger.error(f"[OTP][TwilioVerify] Twilio error verifying {phone_last4}: status={e.status} code={e.code}")
            if _is_transient(e):
                raise ProviderUnavailable(f"Twilio unavailable: {e.status}") from e
            raise ProviderError(f"Twilio rejected check: {e.code}") from e
        except TwilioException as e:
            logger.error(f"[OTP][TwilioVerify] Twilio client error verifying {phone_last4}: {type(e).__name__}")
            raise ProviderError("Twilio client error") from e
        except Exception as e:
            logger.error(f"[OTP][TwilioVerify] Unexpected error verifying {phone_last4}: {type(e).__name__}: {e}", exc_info=True)
            raise ProviderUnavailable("Twilio check failed") from e

        if verification_check.status == "approved":
            logger.info(f"[OTP][TwilioVerify] Verification successful for {phone_last4}")
            return CheckOutcome.APPROVED

        logger.warning(f"[OTP][TwilioVerify] Verification failed for {phone_last4}: {verification_check.status}")
        return CheckOutcome.DENIED
