"""Input validators.

WHAT: Stateless checks shared by the services; each raises ValidationError
WHY: Validation must run before any mutating store call so a bad request
     never leaves a partial write behind
"""

import re
from enum import Enum
from typing import Iterable, List, Optional, Type
from urllib.parse import urlparse

from email_validator import EmailNotValidError, validate_email as check_email_address

from .errors import ValidationError


TRACKING_CODE_PATTERN = re.compile(r"^[A-F0-9]{16}$")


def validate_length(value: Optional[str], field: str, min_length: int = 1, max_length: int = 200,
                    required: bool = True) -> Optional[str]:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    stripped = value.strip()
    if len(stripped) < min_length or len(value) > max_length:
        raise ValidationError(
            f"{field} must be between {min_length} and {max_length} characters", field=field
        )
    return value


def validate_int_range(value, field: str, minimum: int, maximum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field)
    if value < minimum or value > maximum:
        raise ValidationError(f"{field} must be between {minimum} and {maximum}", field=field)
    return value


def validate_number_range(value, field: str, minimum: float, maximum: float) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if number < minimum or number > maximum:
        raise ValidationError(f"{field} must be between {minimum:g} and {maximum:g}", field=field)
    return number


def validate_enum(value, enum_cls: Type[Enum], field: str):
    """Return the enum member for `value` (member or raw value)."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(str(m.value) for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", field=field)


def validate_url(url: Optional[str], field: str = "url") -> str:
    if not url or not isinstance(url, str):
        raise ValidationError(f"{field} is required", field=field)
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc or " " in url.strip():
        raise ValidationError(f"{field} must be a valid http or https URL", field=field)
    return url.strip()


def validate_email(email: Optional[str], field: str = "email") -> str:
    """Syntax check through email-validator (same rules as EmailStr); no DNS lookups.

    Returns the normalized address lowercased, the form subscribers are keyed on.
    """
    if not email or not isinstance(email, str):
        raise ValidationError("Invalid email address", field=field)
    try:
        validated = check_email_address(email.strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email address: {exc}", field=field)
    return validated.normalized.lower()


def validate_tracking_code(code: Optional[str]) -> str:
    if not code or not TRACKING_CODE_PATTERN.match(code):
        raise ValidationError("Invalid tracking code format", field="tracking_code")
    return code


def validate_string_list(values: Optional[Iterable[str]], field: str, max_items: int,
                         item_max_length: int, min_items: int = 0) -> List[str]:
    items = list(values or [])
    if len(items) < min_items or len(items) > max_items:
        raise ValidationError(
            f"{field} must contain between {min_items} and {max_items} items", field=field
        )
    for item in items:
        validate_length(item, field, 1, item_max_length)
    return items
