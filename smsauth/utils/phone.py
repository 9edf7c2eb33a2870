"""
Phone number normalization and validation utilities
"""
import phonenumbers

from ..core.exceptions import InvalidPhoneFormat


def normalize_phone(raw: str) -> str:
    """
    Normalize a US phone number to E.164 format.

    Format-only: "0000000000" is accepted, it has the right shape.

    Args:
        raw: Phone number string (e.g. "515-555-1234", "1 515 555 1234", "+15155551234")

    Returns:
        Normalized phone number in E.164 format (e.g., +15155551234)

    Raises:
        InvalidPhoneFormat: If input is not a US number
    """
    if raw is None:
        raise InvalidPhoneFormat("Phone number is required")

    trimmed = raw.strip()

    if trimmed.startswith("+"):
        # Only US (+1) is supported
        if not trimmed.startswith("+1"):
            raise InvalidPhoneFormat(
                "Only US phone numbers (+1) are supported",
                public_message="Only US phone numbers (+1) are supported",
            )
        digits = phonenumbers.normalize_digits_only(trimmed)
        if len(digits) != 11:
            raise InvalidPhoneFormat(f"Expected 11 digits after '+', got {len(digits)}")
        return f"+{digits}"

    digits = phonenumbers.normalize_digits_only(trimmed)

    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"

    if len(digits) == 10:
        return f"+1{digits}"

    raise InvalidPhoneFormat("Enter a valid US phone number")


def validate_phone(raw: str) -> bool:
    """Validate phone number without raising exception."""
    try:
        normalize_phone(raw)
        return True
    except InvalidPhoneFormat:
        return False


def get_phone_last4(phone: str) -> str:
    """
    Get last 4 digits of phone number for safe logging.

    Returns:
        Last 4 digits as string, or all digits if fewer than 4
    """
    digits = "".join(filter(str.isdigit, phone or ""))

    if len(digits) >= 4:
        return digits[-4:]
    return digits
