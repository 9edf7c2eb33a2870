from sqlalchemy import Column, String, Integer, Boolean, DateTime, Index
from ..db import Base


class VerificationAttemptRow(Base):
    """Append-only log of code checks. Only the retention sweep deletes rows."""

    __tablename__ = "verification_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(32), nullable=False)  # E.164 format
    ip_address = Column(String(100), nullable=True)
    purpose = Column(String(64), nullable=False, default="login")
    success = Column(Boolean, nullable=False, default=False)
    # Set when the attempt was refused by a lockout: "phone" or "ip"
    lock_scope = Column(String(16), nullable=True)
    # Repeat of a code that already verified the session; skipped by lockout
    replay = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        Index("idx_verification_attempts_phone_created", "phone", "created_at"),
        Index("idx_verification_attempts_ip_created", "ip_address", "created_at"),
    )
