"""
Per-(phone, purpose) verification session state.

NoCodeSent -> CodeSent -> Verified. Verified is terminal until the entry
expires with the provider's code lifetime. A Verified entry keeps a salted
digest of the approved code so the same code can be re-submitted without
another provider round-trip.
"""
import enum
import hashlib
import hmac
import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from ...utils.phone import get_phone_last4

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    NO_CODE_SENT = "no_code_sent"
    CODE_SENT = "code_sent"
    VERIFIED = "verified"


@dataclass
class VerificationSession:
    phone: str
    purpose: str
    state: SessionState
    updated_at: datetime
    expires_at: datetime
    subject_id: Optional[str] = None
    code_digest: Optional[str] = None
    salt: str = field(default_factory=lambda: secrets.token_hex(8))


class VerificationSessionRegistry:
    def __init__(self, ttl: timedelta):
        self._ttl = ttl
        self._sessions: Dict[Tuple[str, str], VerificationSession] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _digest(salt: str, code: str) -> str:
        return hashlib.sha256(f"{salt}:{code}".encode()).hexdigest()

    def get(self, phone: str, purpose: str, now: datetime) -> Optional[VerificationSession]:
        with self._lock:
            session = self._sessions.get((phone, purpose))
            if session is not None and now >= session.expires_at:
                del self._sessions[(phone, purpose)]
                return None
            return session

    def state(self, phone: str, purpose: str, now: datetime) -> SessionState:
        session = self.get(phone, purpose, now)
        return session.state if session else SessionState.NO_CODE_SENT

    def mark_code_sent(self, phone: str, purpose: str, now: datetime) -> VerificationSession:
        """A new code invalidates any earlier verified state."""
        session = VerificationSession(
            phone=phone,
            purpose=purpose,
            state=SessionState.CODE_SENT,
            updated_at=now,
            expires_at=now + self._ttl,
        )
        with self._lock:
            self._sessions[(phone, purpose)] = session
        logger.debug(f"[OTP] Session {purpose}/{get_phone_last4(phone)} -> code_sent")
        return session

    def mark_verified(self, phone: str, purpose: str, code: str, now: datetime, subject_id: Optional[str] = None) -> VerificationSession:
        session = VerificationSession(
            phone=phone,
            purpose=purpose,
            state=SessionState.VERIFIED,
            updated_at=now,
            expires_at=now + self._ttl,
            subject_id=subject_id,
        )
        session.code_digest = self._digest(session.salt, code)
        with self._lock:
            self._sessions[(phone, purpose)] = session
        logger.debug(f"[OTP] Session {purpose}/{get_phone_last4(phone)} -> verified")
        return session

    def matches_verified_code(self, phone: str, purpose: str, code: str, now: datetime) -> Optional[VerificationSession]:
        """The Verified session if `code` is the code that verified it."""
        session = self.get(phone, purpose, now)
        if session is None or session.state != SessionState.VERIFIED or not session.code_digest:
            return None
        if hmac.compare_digest(session.code_digest, self._digest(session.salt, code)):
            return session
        return None

    def sweep(self, now: datetime) -> int:
        with self._lock:
            expired = [k for k, s in self._sessions.items() if now >= s.expires_at]
            for k in expired:
                del self._sessions[k]
        return len(expired)
