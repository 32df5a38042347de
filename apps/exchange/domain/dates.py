"""
UTC calendar-day helpers.

Every cache key and date comparison goes through these so that the
calendar-day boundary is always the UTC one.
"""

from collections.abc import Iterator
from datetime import date, datetime, timedelta, timezone as dt_timezone

from django.utils import timezone


def utc_now() -> datetime:
    return timezone.now().astimezone(dt_timezone.utc)


def utc_today() -> date:
    return utc_now().date()


def to_utc_date(value: date | datetime) -> date:
    """Reduce a date or datetime to its UTC calendar day. Naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if timezone.is_naive(value):
            return value.date()
        return value.astimezone(dt_timezone.utc).date()
    return value


def to_utc_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        if timezone.is_naive(value):
            return value.replace(tzinfo=dt_timezone.utc)
        return value.astimezone(dt_timezone.utc)
    return datetime(value.year, value.month, value.day, tzinfo=dt_timezone.utc)


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def years_before(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return moment.replace(year=moment.year - years, day=28)
