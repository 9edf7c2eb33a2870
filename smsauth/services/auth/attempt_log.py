"""
Append-only verification attempt log with trailing-window lockout.

Lockout rule, evaluated separately for the phone and for the IP:
- Take the most recent failed attempt F. If now >= F + lockout, not locked.
- If F was itself refused by a lockout on this scope, still locked.
- Otherwise count failures in [F - window, F]. For the phone scope only,
  failures before the phone's last successful verification are ignored; the
  IP scope always counts the whole trailing window. If that count >=
  max_attempts, locked until F + lockout.

Attempts refused while locked are recorded as failures with lock_scope set,
so every further attempt pushes the lockout out again. Replays of an
already verified code are recorded with replay=True and never count as a
success for lockout purposes.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import SQLAlchemyError

from ...core.clock import as_utc
from ...core.exceptions import StoreUnavailable
from ...models.verification_attempt import VerificationAttemptRow
from .rate_limit import LockoutPolicy, SCOPE_IP, SCOPE_PHONE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationAttempt:
    phone: str
    ip_address: Optional[str]
    success: bool
    created_at: datetime
    purpose: str = "login"
    lock_scope: Optional[str] = None
    replay: bool = False


@dataclass(frozen=True)
class LockoutStatus:
    locked: bool
    locked_until: Optional[datetime] = None
    failures: int = 0
    scope: Optional[str] = None


class AttemptLog:
    """Interface for the attempt log. Subclasses implement storage only."""

    def record(self, attempt: VerificationAttempt) -> None:
        raise NotImplementedError

    def count_failures(self, since: datetime, until: datetime, phone: str = None, ip: str = None) -> int:
        raise NotImplementedError

    def latest(self, success: bool, phone: str = None, ip: str = None) -> Optional[VerificationAttempt]:
        """Most recent attempt with this outcome, replays excluded."""
        raise NotImplementedError

    def sweep(self, before: datetime) -> int:
        """Delete attempts created before `before`. Returns count removed."""
        raise NotImplementedError

    def lockout_status(self, phone: Optional[str], ip: Optional[str], policy: LockoutPolicy, now: datetime) -> LockoutStatus:
        for scope, who in ((SCOPE_PHONE, {"phone": phone}), (SCOPE_IP, {"ip": ip})):
            if not next(iter(who.values())):
                continue
            status = self._scope_status(scope, who, policy, now)
            if status.locked:
                return status
        return LockoutStatus(locked=False)

    def _scope_status(self, scope: str, who: dict, policy: LockoutPolicy, now: datetime) -> LockoutStatus:
        last_failure = self.latest(success=False, **who)
        if last_failure is None:
            return LockoutStatus(locked=False)

        locked_until = last_failure.created_at + policy.lockout
        if now >= locked_until:
            return LockoutStatus(locked=False)

        if last_failure.lock_scope == scope:
            return LockoutStatus(locked=True, locked_until=locked_until, scope=scope)

        since = last_failure.created_at - policy.window
        if scope == SCOPE_PHONE:
            last_success = self.latest(success=True, **who)
            if last_success is not None and last_success.created_at > since:
                since = last_success.created_at

        failures = self.count_failures(since, last_failure.created_at, **who)
        if failures >= policy.max_attempts:
            return LockoutStatus(locked=True, locked_until=locked_until, failures=failures, scope=scope)
        return LockoutStatus(locked=False, failures=failures)


class InMemoryAttemptLog(AttemptLog):
    def __init__(self):
        self._attempts: List[VerificationAttempt] = []
        self._lock = threading.Lock()

    @staticmethod
    def _matches(attempt: VerificationAttempt, phone: str = None, ip: str = None) -> bool:
        if phone is not None and attempt.phone != phone:
            return False
        if ip is not None and attempt.ip_address != ip:
            return False
        return True

    def record(self, attempt: VerificationAttempt) -> None:
        with self._lock:
            self._attempts.append(attempt)

    def count_failures(self, since: datetime, until: datetime, phone: str = None, ip: str = None) -> int:
        with self._lock:
            return sum(
                1
                for a in self._attempts
                if not a.success and since <= a.created_at <= until and self._matches(a, phone, ip)
            )

    def latest(self, success: bool, phone: str = None, ip: str = None) -> Optional[VerificationAttempt]:
        with self._lock:
            found = None
            for a in self._attempts:
                if a.success == success and not a.replay and self._matches(a, phone, ip):
                    if found is None or a.created_at >= found.created_at:
                        found = a
            return found

    def sweep(self, before: datetime) -> int:
        with self._lock:
            kept = [a for a in self._attempts if a.created_at >= before]
            removed = len(self._attempts) - len(kept)
            self._attempts = kept
        return removed


class SQLAlchemyAttemptLog(AttemptLog):
    """Durable log on the verification_attempts table."""

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._table = VerificationAttemptRow.__table__

    def _filters(self, phone: str = None, ip: str = None):
        t = self._table
        clauses = []
        if phone is not None:
            clauses.append(t.c.phone == phone)
        if ip is not None:
            clauses.append(t.c.ip_address == ip)
        return clauses

    def record(self, attempt: VerificationAttempt) -> None:
        try:
            with self._session_factory() as db, db.begin():
                db.execute(
                    insert(self._table).values(
                        phone=attempt.phone,
                        ip_address=attempt.ip_address,
                        purpose=attempt.purpose,
                        success=attempt.success,
                        lock_scope=attempt.lock_scope,
                        replay=attempt.replay,
                        created_at=attempt.created_at,
                    )
                )
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"attempt log error: {type(e).__name__}") from e

    def count_failures(self, since: datetime, until: datetime, phone: str = None, ip: str = None) -> int:
        t = self._table
        stmt = select(func.count()).select_from(t).where(
            t.c.success.is_(False),
            t.c.created_at >= since,
            t.c.created_at <= until,
            *self._filters(phone, ip),
        )
        try:
            with self._session_factory() as db:
                return db.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"attempt log error: {type(e).__name__}") from e

    def latest(self, success: bool, phone: str = None, ip: str = None) -> Optional[VerificationAttempt]:
        t = self._table
        stmt = (
            select(t)
            .where(t.c.success.is_(success), t.c.replay.is_(False), *self._filters(phone, ip))
            .order_by(t.c.created_at.desc(), t.c.id.desc())
            .limit(1)
        )
        try:
            with self._session_factory() as db:
                row = db.execute(stmt).first()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"attempt log error: {type(e).__name__}") from e
        if row is None:
            return None
        return VerificationAttempt(
            phone=row.phone,
            ip_address=row.ip_address,
            success=row.success,
            created_at=as_utc(row.created_at),
            purpose=row.purpose,
            lock_scope=row.lock_scope,
            replay=row.replay,
        )

    def sweep(self, before: datetime) -> int:
        t = self._table
        try:
            with self._session_factory() as db, db.begin():
                res = db.execute(delete(t).where(t.c.created_at < before))
                deleted = res.rowcount or 0
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"attempt log error: {type(e).__name__}") from e
        if deleted:
            logger.info(f"[RateLimit] Swept {deleted} verification_attempts rows")
        return deleted
