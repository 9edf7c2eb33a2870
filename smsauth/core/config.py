from pydantic import BaseModel
import os
import logging
from datetime import timedelta


class Settings(BaseModel):
    # Environment
    ENV: str = os.getenv("ENV", "dev")  # dev, staging, prod

    # JWT secret used to sign the session cookie
    JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    ALGORITHM: str = "HS256"
    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "session_user")
    SESSION_MAX_AGE_DAYS: int = int(os.getenv("SESSION_MAX_AGE_DAYS", "30"))

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./smsauth.db")
    REDIS_URL: str = os.getenv("REDIS_URL", "")

    # Phone OTP Configuration (Twilio Verify)
    TWILIO_ACCOUNT_SID: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    TWILIO_VERIFY_SERVICE_SID: str = os.getenv("TWILIO_VERIFY_SERVICE_SID", "")
    TWILIO_TIMEOUT_SECONDS: int = int(os.getenv("TWILIO_TIMEOUT_SECONDS", "10"))
    OTP_PROVIDER: str = os.getenv("OTP_PROVIDER", "stub")  # twilio_verify, stub
    OTP_DEV_ALLOWLIST: str = os.getenv("OTP_DEV_ALLOWLIST", "")  # Comma-separated phone numbers
    OTP_CODE_TTL_SECONDS: int = int(os.getenv("OTP_CODE_TTL_SECONDS", "600"))  # Twilio Verify default

    # Rate limit backing stores
    RATE_LIMIT_BACKEND: str = os.getenv("RATE_LIMIT_BACKEND", "memory")  # memory, database, redis
    ATTEMPT_LOG_BACKEND: str = os.getenv("ATTEMPT_LOG_BACKEND", "database")  # memory, database
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: int = int(os.getenv("RATE_LIMIT_SWEEP_INTERVAL_SECONDS", "300"))
    RATE_LIMIT_SWEEP_PROBABILITY: float = float(os.getenv("RATE_LIMIT_SWEEP_PROBABILITY", "0.01"))

    # Send-code policies
    RATE_LIMIT_SEND_IP_MAX: int = int(os.getenv("RATE_LIMIT_SEND_IP_MAX", "5"))
    RATE_LIMIT_SEND_IP_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_SEND_IP_WINDOW_SECONDS", "900"))
    RATE_LIMIT_SEND_PHONE_MAX: int = int(os.getenv("RATE_LIMIT_SEND_PHONE_MAX", "3"))
    RATE_LIMIT_SEND_PHONE_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_SEND_PHONE_WINDOW_SECONDS", "3600"))

    # Verify policies
    VERIFY_COUNTING: str = os.getenv("VERIFY_COUNTING", "trailing")  # trailing, fixed
    RATE_LIMIT_VERIFY_MAX: int = int(os.getenv("RATE_LIMIT_VERIFY_MAX", "5"))
    RATE_LIMIT_VERIFY_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_VERIFY_WINDOW_SECONDS", "900"))
    RATE_LIMIT_VERIFY_LOCKOUT_SECONDS: int = int(os.getenv("RATE_LIMIT_VERIFY_LOCKOUT_SECONDS", "1800"))

    # Registration: successful verifications per phone
    RATE_LIMIT_REGISTER_SUCCESS_MAX: int = int(os.getenv("RATE_LIMIT_REGISTER_SUCCESS_MAX", "3"))
    RATE_LIMIT_REGISTER_SUCCESS_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_REGISTER_SUCCESS_WINDOW_SECONDS", "3600"))

    # Answer "no account" exactly like "wrong code" to prevent phone enumeration
    AUTH_CONCEAL_UNKNOWN_PHONE: bool = os.getenv("AUTH_CONCEAL_UNKNOWN_PHONE", "true").lower() == "true"

    # Retention
    ATTEMPT_RETENTION_DAYS: int = int(os.getenv("ATTEMPT_RETENTION_DAYS", "7"))

    SENTRY_DSN: str = os.getenv("SENTRY_DSN", "")

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() in {"prod", "production"}


settings = Settings()
SESSION_MAX_AGE = timedelta(days=settings.SESSION_MAX_AGE_DAYS)


def validate_config():
    """Validate configuration at startup. Raises ValueError if invalid."""
    logger = logging.getLogger(__name__)

    if settings.RATE_LIMIT_BACKEND not in {"memory", "database", "redis"}:
        raise ValueError(f"Unknown RATE_LIMIT_BACKEND: {settings.RATE_LIMIT_BACKEND}")
    if settings.ATTEMPT_LOG_BACKEND not in {"memory", "database"}:
        raise ValueError(f"Unknown ATTEMPT_LOG_BACKEND: {settings.ATTEMPT_LOG_BACKEND}")
    if settings.VERIFY_COUNTING not in {"trailing", "fixed"}:
        raise ValueError(f"Unknown VERIFY_COUNTING: {settings.VERIFY_COUNTING}")
    if settings.RATE_LIMIT_BACKEND == "redis" and not settings.REDIS_URL:
        raise ValueError("RATE_LIMIT_BACKEND=redis requires REDIS_URL")

    # Validate OTP configuration in production
    if settings.is_production:
        if settings.OTP_PROVIDER == "stub":
            error_msg = "OTP_PROVIDER=stub is not allowed in production"
            logger.error(error_msg)
            raise ValueError(error_msg)

        missing = []
        if not settings.TWILIO_ACCOUNT_SID:
            missing.append("TWILIO_ACCOUNT_SID")
        if not settings.TWILIO_AUTH_TOKEN:
            missing.append("TWILIO_AUTH_TOKEN")
        if not settings.TWILIO_VERIFY_SERVICE_SID:
            missing.append("TWILIO_VERIFY_SERVICE_SID")
        if missing:
            error_msg = f"Twilio Verify enabled but missing required configuration: {', '.join(missing)}"
            logger.error(error_msg)
            raise ValueError(error_msg)

        if settings.JWT_SECRET in ("", "dev-secret", "dev-secret-change-me"):
            error_msg = "JWT_SECRET must be set to a secure random value in production"
            logger.error(error_msg)
            raise ValueError(error_msg)

        if settings.RATE_LIMIT_BACKEND == "memory":
            logger.warning("In-memory rate limiting in production: counters reset on restart")

    logger.info("Configuration validated")
