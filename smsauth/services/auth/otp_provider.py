"""
Abstract verification provider interface
"""
import enum
from abc import ABC, abstractmethod


class CheckOutcome(str, enum.Enum):
    APPROVED = "approved"
    DENIED = "denied"


class VerificationProvider(ABC):
    """
    External code delivery and checking.

    The provider owns the code: this service never stores or compares live
    codes itself. Implementations raise ProviderUnavailable for timeouts and
    outages and ProviderError for rejected requests.
    """

    @abstractmethod
    async def send_code(self, phone: str) -> None:
        """
        Send a verification code to phone number.

        Args:
            phone: Normalized phone number in E.164 format
        """

    @abstractmethod
    async def check_code(self, phone: str, code: str) -> CheckOutcome:
        """
        Check a verification code for phone number.

        Args:
            phone: Normalized phone number in E.164 format
            code: Code submitted by the user

        Returns:
            CheckOutcome.APPROVED or CheckOutcome.DENIED
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__.replace("Provider", "").lower()
