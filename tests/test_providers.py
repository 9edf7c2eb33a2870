"""
Tests for verification providers (Twilio client mocked)
"""
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from twilio.base.exceptions import TwilioException, TwilioRestException

from smsauth.core.exceptions import ProviderError, ProviderUnavailable
from smsauth.services.auth.otp_factory import create_verification_provider
from smsauth.services.auth.otp_provider import CheckOutcome
from smsauth.services.auth.stub_provider import StubVerificationProvider
from smsauth.services.auth.twilio_verify import TwilioVerifyProvider

PHONE = "+15155551234"


@pytest.fixture
def twilio_settings():
    with patch("smsauth.services.auth.twilio_verify.settings") as mock_settings:
        mock_settings.TWILIO_ACCOUNT_SID = "AC_test"
        mock_settings.TWILIO_AUTH_TOKEN = "token"
        mock_settings.TWILIO_VERIFY_SERVICE_SID = "VA_test"
        mock_settings.TWILIO_TIMEOUT_SECONDS = 1
        yield mock_settings


@pytest.fixture
def service():
    return MagicMock()


@pytest.fixture
def twilio_provider(twilio_settings, service):
    client = MagicMock()
    client.verify.v2.services.return_value = service
    return TwilioVerifyProvider(client=client)


class TestTwilioVerifyProvider:
    @pytest.mark.asyncio
    async def test_send_code(self, twilio_provider, service):
        service.verifications.create.return_value = SimpleNamespace(status="pending", sid="VE123")

        await twilio_provider.send_code(PHONE)
        service.verifications.create.assert_called_once_with(to=PHONE, channel="sms")

    @pytest.mark.asyncio
    async def test_send_unexpected_status_is_provider_error(self, twilio_provider, service):
        service.verifications.create.return_value = SimpleNamespace(status="canceled", sid="VE123")

        with pytest.raises(ProviderError):
            await twilio_provider.send_code(PHONE)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [500, 503, 429])
    async def test_send_transient_errors_are_unavailable(self, twilio_provider, service, status):
        service.verifications.create.side_effect = TwilioRestException(status, "uri", msg="error")

        with pytest.raises(ProviderUnavailable):
            await twilio_provider.send_code(PHONE)

    @pytest.mark.asyncio
    async def test_send_client_error_is_provider_error(self, twilio_provider, service):
        service.verifications.create.side_effect = TwilioRestException(400, "uri", msg="Invalid parameter", code=60200)

        with pytest.raises(ProviderError):
            await twilio_provider.send_code(PHONE)

    @pytest.mark.asyncio
    async def test_send_connection_error_is_unavailable(self, twilio_provider, service):
        service.verifications.create.side_effect = ConnectionError("reset by peer")

        with pytest.raises(ProviderUnavailable):
            await twilio_provider.send_code(PHONE)

    @pytest.mark.asyncio
    async def test_send_twilio_client_error(self, twilio_provider, service):
        service.verifications.create.side_effect = TwilioException("bad credentials")

        with pytest.raises(ProviderError):
            await twilio_provider.send_code(PHONE)

    @pytest.mark.asyncio
    async def test_check_approved(self, twilio_provider, service):
        service.verification_checks.create.return_value = SimpleNamespace(status="approved")

        assert await twilio_provider.check_code(PHONE, "123456") == CheckOutcome.APPROVED
        service.verification_checks.create.assert_called_once_with(to=PHONE, code="123456")

    @pytest.mark.asyncio
    async def test_check_pending_is_denied(self, twilio_provider, service):
        service.verification_checks.create.return_value = SimpleNamespace(status="pending")

        assert await twilio_provider.check_code(PHONE, "123456") == CheckOutcome.DENIED

    @pytest.mark.asyncio
    async def test_check_404_is_denied(self, twilio_provider, service):
        service.verification_checks.create.side_effect = TwilioRestException(404, "uri", msg="not found", code=20404)

        assert await twilio_provider.check_code(PHONE, "123456") == CheckOutcome.DENIED

    @pytest.mark.asyncio
    async def test_check_server_error_is_unavailable(self, twilio_provider, service):
        service.verification_checks.create.side_effect = TwilioRestException(502, "uri", msg="bad gateway")

        with pytest.raises(ProviderUnavailable):
            await twilio_provider.check_code(PHONE, "123456")

    def test_requires_service_sid(self, twilio_settings):
        twilio_settings.TWILIO_VERIFY_SERVICE_SID = ""
        with pytest.raises(ValueError):
            TwilioVerifyProvider(client=MagicMock())

    def test_requires_credentials_without_client(self, twilio_settings):
        twilio_settings.TWILIO_ACCOUNT_SID = ""
        with pytest.raises(ValueError):
            TwilioVerifyProvider()


class TestStubProvider:
    @pytest.mark.asyncio
    async def test_accepts_only_stub_code(self):
        provider = StubVerificationProvider(allowlist="")
        await provider.send_code(PHONE)

        assert provider.sent == [PHONE]
        assert await provider.check_code(PHONE, "000000") == CheckOutcome.APPROVED
        assert await provider.check_code(PHONE, "123456") == CheckOutcome.DENIED

    @pytest.mark.asyncio
    async def test_allowlist(self):
        provider = StubVerificationProvider(allowlist=f"{PHONE}, +15155550000")

        assert await provider.check_code(PHONE, "000000") == CheckOutcome.APPROVED
        assert await provider.check_code("+15155559999", "000000") == CheckOutcome.DENIED

    def test_refused_in_production(self):
        with patch("smsauth.services.auth.stub_provider.settings") as mock_settings:
            mock_settings.is_production = True
            with pytest.raises(ValueError):
                StubVerificationProvider()


def test_factory_builds_stub():
    assert isinstance(create_verification_provider("stub"), StubVerificationProvider)


def test_factory_rejects_unknown_provider():
    with pytest.raises(ValueError):
        create_verification_provider("carrier_pigeon")
