"""Timestamp parsing for provider payloads.

Columns store naive UTC datetimes; Polar and Resend send ISO 8601 strings
with a `Z` or an explicit offset.
"""

from datetime import date, datetime, timezone
from typing import Optional


def utc_today() -> date:
    """Calendar day in UTC; daily rows are keyed on UTC days."""
    return datetime.now(timezone.utc).date()


def parse_provider_datetime(value) -> Optional[datetime]:
    """ISO 8601 string (or datetime) -> naive UTC datetime; None when missing or unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
