"""
Account lookup by phone number
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..core.exceptions import StoreUnavailable
from ..models.user import User

logger = logging.getLogger(__name__)


class UserLookup:
    def find_subject_by_phone(self, phone: str) -> Optional[str]:
        """Return the subject id for an E.164 phone, or None."""
        raise NotImplementedError


class SQLAlchemyUserLookup(UserLookup):
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def find_subject_by_phone(self, phone: str) -> Optional[str]:
        try:
            with self._session_factory() as db:
                return db.execute(select(User.id).where(User.phone == phone)).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"[Auth] User lookup failed: {type(e).__name__}")
            raise StoreUnavailable("user lookup failed") from e
