from sqlalchemy import Column, String, Integer, DateTime, Index
from ..db import Base


class RateLimitWindowRow(Base):
    """One fixed-window counter per (purpose, scope, identifier)."""

    __tablename__ = "rate_limit_windows"

    key = Column(String(320), primary_key=True)  # "{purpose}:{scope}:{identifier}"
    purpose = Column(String(64), nullable=False)
    scope = Column(String(16), nullable=False)
    identifier = Column(String(255), nullable=False)
    count = Column(Integer, nullable=False, default=0)
    window_start = Column(DateTime(timezone=True), nullable=False)
    window_expires_at = Column(DateTime(timezone=True), nullable=False)
    # window_expires_at + one window; the sweep deletes rows past this point
    stale_after = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        Index("idx_rate_limit_windows_purpose_scope", "purpose", "scope"),
    )
