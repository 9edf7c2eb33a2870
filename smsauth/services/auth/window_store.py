"""
Fixed-window counter stores behind one interface.

- InMemoryWindowStore: process-local dict under a lock, lazily swept
- SQLAlchemyWindowStore: one row per key, atomic conditional UPDATEs
- RedisWindowStore: one hash per key, WATCH/MULTI transaction

Durable stores raise StoreUnavailable on backend errors; RateLimiter turns
that into a denial.
"""
import logging
import random
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from redis.exceptions import RedisError
from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...core.clock import as_utc
from ...core.exceptions import StoreUnavailable
from ...models.rate_limit_window import RateLimitWindowRow
from .rate_limit import (
    RateLimitKey,
    RateLimitPolicy,
    RateLimitResult,
    RateLimitWindow,
    apply_hit,
    result_for,
)

logger = logging.getLogger(__name__)


class WindowStore:
    """Interface for fixed-window counter storage."""

    def hit(self, key: RateLimitKey, policy: RateLimitPolicy, now: datetime) -> RateLimitResult:
        """Atomic check-and-increment for one key."""
        raise NotImplementedError

    def get(self, key: RateLimitKey) -> Optional[RateLimitWindow]:
        raise NotImplementedError

    def sweep(self, now: datetime) -> int:
        """Delete windows at least one full window past expiry. Returns count removed."""
        raise NotImplementedError

    def reset(self, key: RateLimitKey) -> None:
        raise NotImplementedError


class InMemoryWindowStore(WindowStore):
    """
    Process-local store.

    Construct once at startup and pass it to the RateLimiter; tests build a
    fresh one per case.
    """

    def __init__(self, sweep_probability: float = 0.01, rng: Callable[[], float] = random.random):
        self._windows: Dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()
        self._sweep_probability = sweep_probability
        self._rng = rng

    def hit(self, key: RateLimitKey, policy: RateLimitPolicy, now: datetime) -> RateLimitResult:
        if self._sweep_probability > 0 and self._rng() < self._sweep_probability:
            self.sweep(now)

        storage_key = key.storage_key
        with self._lock:
            window, admitted = apply_hit(self._windows.get(storage_key), policy, now)
            self._windows[storage_key] = window
        return result_for(window, admitted, policy, key)

    def get(self, key: RateLimitKey) -> Optional[RateLimitWindow]:
        with self._lock:
            return self._windows.get(key.storage_key)

    def sweep(self, now: datetime) -> int:
        with self._lock:
            stale = [k for k, w in self._windows.items() if w.is_stale(now)]
            for k in stale:
                del self._windows[k]
        if stale:
            logger.debug(f"[RateLimit] Swept {len(stale)} in-memory windows")
        return len(stale)

    def reset(self, key: RateLimitKey) -> None:
        with self._lock:
            self._windows.pop(key.storage_key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


class SQLAlchemyWindowStore(WindowStore):
    """
    Durable store on the rate_limit_windows table.

    Every hit is one short transaction of conditional UPDATEs, so concurrent
    requests for the same key serialize on the row instead of doing a
    read-then-write.
    """

    max_hit_attempts = 3

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._table = RateLimitWindowRow.__table__

    def hit(self, key: RateLimitKey, policy: RateLimitPolicy, now: datetime) -> RateLimitResult:
        try:
            for _ in range(self.max_hit_attempts):
                try:
                    result = self._hit_once(key, policy, now)
                except IntegrityError:
                    # Another request inserted the row first; the UPDATE path now applies
                    continue
                if result is not None:
                    return result
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"rate limit store error: {type(e).__name__}") from e
        raise StoreUnavailable(f"rate limit store contention on {key.purpose}:{key.scope}")

    def _restart_expired(self, db, storage_key: str, policy: RateLimitPolicy, now: datetime) -> int:
        t = self._table
        expires_at = now + policy.window
        res = db.execute(
            update(t)
            .where(t.c.key == storage_key, t.c.window_expires_at <= now)
            .values(
                count=1,
                window_start=now,
                window_expires_at=expires_at,
                stale_after=expires_at + policy.window,
            )
        )
        return res.rowcount

    def _hit_once(self, key: RateLimitKey, policy: RateLimitPolicy, now: datetime) -> Optional[RateLimitResult]:
        """One pass of the update steps. None means a concurrent hit moved the row; try again."""
        t = self._table
        storage_key = key.storage_key
        expires_at = now + policy.window

        with self._session_factory() as db, db.begin():
            # 1. Live window below the cap: increment in place
            res = db.execute(
                update(t)
                .where(
                    t.c.key == storage_key,
                    t.c.window_expires_at > now,
                    t.c.count < policy.max_attempts,
                )
                .values(count=t.c.count + 1)
            )
            if res.rowcount == 1:
                window = self._load(db, storage_key)
                return result_for(window, True, policy, key)

            # 2. Expired window: restart it
            if self._restart_expired(db, storage_key, policy, now) == 1:
                window = RateLimitWindow(count=1, window_start=now, window_expires_at=expires_at)
                return result_for(window, True, policy, key)

            # 3. Live window at the cap: deny without counting
            window = self._load(db, storage_key)
            if window is not None:
                if not window.is_expired(now) and window.count >= policy.max_attempts:
                    return result_for(window, False, policy, key)
                # Restarted or incremented by another request between the steps
                return None

            # 4. First request for this key
            db.execute(
                insert(t).values(
                    key=storage_key,
                    purpose=key.purpose,
                    scope=key.scope,
                    identifier=key.identifier,
                    count=1,
                    window_start=now,
                    window_expires_at=expires_at,
                    stale_after=expires_at + policy.window,
                )
            )
            window = RateLimitWindow(count=1, window_start=now, window_expires_at=expires_at)
            return result_for(window, True, policy, key)

    def _load(self, db, storage_key: str) -> Optional[RateLimitWindow]:
        t = self._table
        row = db.execute(
            select(t.c.count, t.c.window_start, t.c.window_expires_at).where(t.c.key == storage_key)
        ).first()
        if row is None:
            return None
        return RateLimitWindow(
            count=row.count,
            window_start=as_utc(row.window_start),
            window_expires_at=as_utc(row.window_expires_at),
        )

    def get(self, key: RateLimitKey) -> Optional[RateLimitWindow]:
        try:
            with self._session_factory() as db:
                return self._load(db, key.storage_key)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"rate limit store error: {type(e).__name__}") from e

    def sweep(self, now: datetime) -> int:
        t = self._table
        try:
            with self._session_factory() as db, db.begin():
                res = db.execute(delete(t).where(t.c.stale_after <= now))
                deleted = res.rowcount or 0
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"rate limit store error: {type(e).__name__}") from e
        if deleted:
            logger.info(f"[RateLimit] Swept {deleted} stale rate_limit_windows rows")
        return deleted

    def reset(self, key: RateLimitKey) -> None:
        t = self._table
        try:
            with self._session_factory() as db, db.begin():
                db.execute(delete(t).where(t.c.key == key.storage_key))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"rate limit store error: {type(e).__name__}") from e


def _field(raw: dict, name: str):
    value = raw.get(name)
    if value is None:
        value = raw.get(name.encode())
    return value


class RedisWindowStore(WindowStore):
    """
    Redis store: hash {count, window_start, window_expires_at} per key.

    The key's TTL is set to one window past expiry, so Redis does the sweep.
    """

    def __init__(self, redis_client, prefix: str = "rate_limit:"):
        self._redis = redis_client
        self._prefix = prefix

    def _redis_key(self, key: RateLimitKey) -> str:
        return f"{self._prefix}{key.storage_key}"

    @staticmethod
    def _decode(raw) -> Optional[RateLimitWindow]:
        if not raw:
            return None
        return RateLimitWindow(
            count=int(_field(raw, "count")),
            window_start=datetime.fromtimestamp(float(_field(raw, "window_start")), tz=timezone.utc),
            window_expires_at=datetime.fromtimestamp(float(_field(raw, "window_expires_at")), tz=timezone.utc),
        )

    def hit(self, key: RateLimitKey, policy: RateLimitPolicy, now: datetime) -> RateLimitResult:
        redis_key = self._redis_key(key)

        def _txn(pipe):
            window, admitted = apply_hit(self._decode(pipe.hgetall(redis_key)), policy, now)
            if admitted:
                stale_after = window.window_expires_at + policy.window
                pipe.multi()
                pipe.hset(
                    redis_key,
                    mapping={
                        "count": window.count,
                        "window_start": window.window_start.timestamp(),
                        "window_expires_at": window.window_expires_at.timestamp(),
                    },
                )
                pipe.pexpireat(redis_key, int(stale_after.timestamp() * 1000))
            return window, admitted

        try:
            window, admitted = self._redis.transaction(_txn, redis_key, value_from_callable=True)
        except RedisError as e:
            raise StoreUnavailable(f"redis rate limit error: {type(e).__name__}") from e
        return result_for(window, admitted, policy, key)

    def get(self, key: RateLimitKey) -> Optional[RateLimitWindow]:
        try:
            return self._decode(self._redis.hgetall(self._redis_key(key)))
        except RedisError as e:
            raise StoreUnavailable(f"redis rate limit error: {type(e).__name__}") from e

    def sweep(self, now: datetime) -> int:
        # Expiry is delegated to Redis key TTLs
        return 0

    def reset(self, key: RateLimitKey) -> None:
        try:
            self._redis.delete(self._redis_key(key))
        except RedisError as e:
            raise StoreUnavailable(f"redis rate limit error: {type(e).__name__}") from e
