"""
Tests for production config validation and session tokens
"""
from unittest.mock import patch

import pytest

from smsauth.core.config import Settings, validate_config
from smsauth.core.security import create_session_token, decode_session_token, session_cookie_params


def production_settings(**overrides):
    values = dict(
        ENV="prod",
        OTP_PROVIDER="twilio_verify",
        TWILIO_ACCOUNT_SID="AC_test",
        TWILIO_AUTH_TOKEN="token",
        TWILIO_VERIFY_SERVICE_SID="VA_test",
        JWT_SECRET="a-long-random-secret",
        RATE_LIMIT_BACKEND="database",
    )
    values.update(overrides)
    return Settings(**values)


def test_valid_production_config():
    with patch("smsauth.core.config.settings", production_settings()):
        validate_config()


def test_stub_provider_rejected_in_production():
    with patch("smsauth.core.config.settings", production_settings(OTP_PROVIDER="stub")):
        with pytest.raises(ValueError, match="stub"):
            validate_config()


def test_missing_twilio_config_rejected_in_production():
    with patch("smsauth.core.config.settings", production_settings(TWILIO_VERIFY_SERVICE_SID="")):
        with pytest.raises(ValueError, match="TWILIO_VERIFY_SERVICE_SID"):
            validate_config()


def test_default_jwt_secret_rejected_in_production():
    with patch("smsauth.core.config.settings", production_settings(JWT_SECRET="dev-secret-change-me")):
        with pytest.raises(ValueError, match="JWT_SECRET"):
            validate_config()


def test_unknown_backend_rejected():
    with patch("smsauth.core.config.settings", Settings(RATE_LIMIT_BACKEND="memcached")):
        with pytest.raises(ValueError):
            validate_config()


def test_redis_backend_requires_url():
    with patch("smsauth.core.config.settings", Settings(RATE_LIMIT_BACKEND="redis", REDIS_URL="")):
        with pytest.raises(ValueError, match="REDIS_URL"):
            validate_config()


def test_session_token_roundtrip():
    token = create_session_token("user-123")
    assert decode_session_token(token) == "user-123"
    assert decode_session_token("not-a-token") is None


def test_cookie_secure_only_in_production():
    assert session_cookie_params()["secure"] is False
    with patch("smsauth.core.security.settings", production_settings()):
        params = session_cookie_params()
    assert params["secure"] is True
    assert params["httponly"] is True
    assert params["samesite"] == "lax"
    assert params["path"] == "/"
