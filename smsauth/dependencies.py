"""
Process-wide service instances, built lazily from settings.

Route handlers receive the coordinator through `Depends(get_coordinator)`;
tests swap it with `app.dependency_overrides`.
"""
import logging
from datetime import timedelta
from typing import Optional

import redis

from .core.config import settings
from .db import get_session_local
from .services.auth.attempt_log import AttemptLog, InMemoryAttemptLog, SQLAlchemyAttemptLog
from .services.auth.otp_factory import create_verification_provider
from .services.auth.rate_limit import PolicyTable, RateLimiter
from .services.auth.sweeper import StoreSweeper
from .services.auth.verification_session import VerificationSessionRegistry
from .services.auth.window_store import (
    InMemoryWindowStore,
    RedisWindowStore,
    SQLAlchemyWindowStore,
    WindowStore,
)
from .services.user_lookup import SQLAlchemyUserLookup
from .services.verification_service import VerificationCoordinator

logger = logging.getLogger(__name__)

_coordinator: Optional[VerificationCoordinator] = None
_sweeper: Optional[StoreSweeper] = None


def build_window_store(backend: str = None) -> WindowStore:
    backend = (backend or settings.RATE_LIMIT_BACKEND).lower()
    if backend == "redis":
        client = redis.from_url(settings.REDIS_URL, decode_responses=True, socket_connect_timeout=3, socket_timeout=3)
        logger.info("[RateLimit] Using Redis window store")
        return RedisWindowStore(client)
    if backend == "database":
        logger.info("[RateLimit] Using database window store")
        return SQLAlchemyWindowStore(get_session_local())
    if backend == "memory":
        logger.info("[RateLimit] Using in-memory window store")
        return InMemoryWindowStore(sweep_probability=settings.RATE_LIMIT_SWEEP_PROBABILITY)
    raise ValueError(f"Unknown RATE_LIMIT_BACKEND: {backend}")


def build_attempt_log(backend: str = None) -> AttemptLog:
    backend = (backend or settings.ATTEMPT_LOG_BACKEND).lower()
    if backend == "database":
        return SQLAlchemyAttemptLog(get_session_local())
    if backend == "memory":
        return InMemoryAttemptLog()
    raise ValueError(f"Unknown ATTEMPT_LOG_BACKEND: {backend}")


def get_coordinator() -> VerificationCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = VerificationCoordinator(
            rate_limiter=RateLimiter(build_window_store()),
            attempt_log=build_attempt_log(),
            provider=create_verification_provider(),
            user_lookup=SQLAlchemyUserLookup(get_session_local()),
            sessions=VerificationSessionRegistry(ttl=timedelta(seconds=settings.OTP_CODE_TTL_SECONDS)),
            policies=PolicyTable.from_settings(),
            verify_counting=settings.VERIFY_COUNTING,
            conceal_unknown_phone=settings.AUTH_CONCEAL_UNKNOWN_PHONE,
        )
    return _coordinator


def get_sweeper() -> StoreSweeper:
    global _sweeper
    if _sweeper is None:
        coordinator = get_coordinator()
        _sweeper = StoreSweeper(
            window_store=coordinator.rate_limiter.store,
            attempt_log=coordinator.attempt_log,
            sessions=coordinator.sessions,
            interval_seconds=settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
            attempt_retention=timedelta(days=settings.ATTEMPT_RETENTION_DAYS),
            clock=coordinator.clock,
        )
    return _sweeper
