"""
Field rules for the guest details step and read-only form snapshots.

Usage:
    check_guest_info("Sam Carter", "07700 900123", "")   # passes
    check_guest_info("", "07700 900123", "")             # ValidationError(field="guest_name")
"""

import re
from dataclasses import dataclass, replace
from typing import Callable

from booking_engine.errors import ValidationError
from booking_engine.schemas.flow_schema import BookingFormState
from booking_engine.utils import is_valid_phone

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _validate_name(value: str) -> bool:
    return bool(value.strip())


def _validate_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value.strip()))


@dataclass(frozen=True)
class FieldRule:
    """Validation rule for one guest field."""

    name: str
    validator: Callable[[str], bool]
    message: str
    required: bool = True


GUEST_FIELD_RULES: list[FieldRule] = [
    FieldRule(
        name="guest_name",
        validator=_validate_name,
        message="Please enter your name",
    ),
    FieldRule(
        name="guest_phone",
        validator=is_valid_phone,
        message="Please enter a valid phone number",
    ),
    FieldRule(
        name="guest_email",
        validator=_validate_email,
        message="Please enter a valid email address",
        required=False,
    ),
]


def check_guest_info(name: str, phone: str, email: str = "") -> None:
    """Raise ValidationError for the first guest field that fails its rule.

    Optional fields are only checked when filled in.
    """
    values = {"guest_name": name or "", "guest_phone": phone or "", "guest_email": email or ""}
    for rule in GUEST_FIELD_RULES:
        value = values[rule.name]
        if not value.strip() and not rule.required:
            continue
        if not rule.validator(value):
            raise ValidationError(rule.message, field=rule.name)


def snapshot(state: BookingFormState) -> BookingFormState:
    """Return a detached copy safe to hand to the rendering layer."""
    return replace(state)
