"""Shared utilities used across the booking engine."""

import re

MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("07700 900 123")
        '07700900123'
        >>> normalize_phone("+44 (7700) 900-123")
        '+447700900123'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def is_valid_phone(value: str) -> bool:
    """Check a phone number has a plausible digit count (E.164 allows up to 15)."""
    if not value or not value.strip():
        return False
    if re.search(r"[A-Za-z]", value):
        return False
    digits = re.sub(r"[^\d]", "", value)
    return MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS


def to_e164(value: str, default_country_code: str = "+44") -> str:
    """Format a phone number in E.164 as required by the SMS provider.

    A leading 0 is treated as a national prefix and replaced by the default
    country code; a bare 10-digit number is treated as North American.

    Examples:
        >>> to_e164("07700 900123")
        '+447700900123'
        >>> to_e164("2025550143")
        '+12025550143'
    """
    cleaned = normalize_phone(value)
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("0"):
        return default_country_code + cleaned[1:]
    if len(cleaned) == 10:
        return "+1" + cleaned
    return "+" + cleaned


def same_phone(first: str, second: str, default_country_code: str = "+44") -> bool:
    """Check two numbers reach the same handset once both are in E.164.

    Examples:
        >>> same_phone("07700 900123", "+44 7700 900123")
        True
    """
    if not first or not second:
        return False
    return to_e164(first, default_country_code) == to_e164(second, default_country_code)


def mask_phone(value: str) -> str:
    """Hide all but the last three digits of a phone number for log output."""
    cleaned = normalize_phone(value)
    if len(cleaned) <= 3:
        return "***"
    return "*" * (len(cleaned) - 3) + cleaned[-3:]
