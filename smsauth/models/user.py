import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime
from ..db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    """Minimal account record; only what lookup-by-phone needs."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    phone = Column(String(32), nullable=False, unique=True, index=True)  # E.164 format
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
