"""Shared store helpers.

WHAT: Dialect-aware INSERT ... ON CONFLICT and date bucketing expressions
WHY: Upserts are the only race-free way to keep one row per natural key
     (ad revenue per day/source, article counters per day, email stats per
     recipient). Production runs on PostgreSQL, tests on SQLite; both
     support ON CONFLICT, but through different dialect constructs.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, cast, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def dialect_name(db: Session) -> str:
    return db.get_bind().dialect.name


def upsert_insert(db: Session, model):
    """Return a dialect `insert()` that supports on_conflict_do_update/nothing."""
    if dialect_name(db) == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


def day_bucket(db: Session, column):
    """SQL expression truncating a timestamp column to its date."""
    if dialect_name(db) == "sqlite":
        return func.date(column)
    return cast(column, Date)


def month_bucket(db: Session, column):
    """SQL expression rendering a date/timestamp column as 'YYYY-MM'."""
    if dialect_name(db) == "sqlite":
        return func.strftime("%Y-%m", column)
    return func.to_char(column, "YYYY-MM")


def as_date_key(value) -> Optional[str]:
    """Normalize a bucket value (date, datetime or string) to 'YYYY-MM-DD'."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def as_int(value) -> int:
    return int(value or 0)


def as_float(value) -> float:
    return float(value or 0)
