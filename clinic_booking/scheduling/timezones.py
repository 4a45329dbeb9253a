"""Conversions between practice-local wall-clock time and absolute instants.

Local times are ``(date, minutes_of_day)`` pairs; instants are timezone-aware
UTC datetimes. The UTC offset is resolved per local date and time, so DST
transitions are honoured.

DST resolution:
    * an ambiguous local time (fall-back overlap) resolves to its first
      occurrence, i.e. the daylight-saving offset;
    * a non-existent local time (spring-forward gap) is shifted forward by
      the length of the gap, so 02:30 on a spring-forward night becomes 03:30.
"""

from datetime import date, datetime, time, timedelta
from typing import NamedTuple

import pytz

from clinic_booking.core.errors import ValidationError

MINUTES_PER_DAY = 24 * 60


class LocalParts(NamedTuple):
    date: date
    minutes: int
    weekday: int  # 0=Sunday ... 6=Saturday


def get_timezone(tz_name: str | None):
    try:
        return pytz.timezone(tz_name or 'UTC')
    except pytz.UnknownTimeZoneError as exc:
        raise ValidationError(f"Unknown timezone '{tz_name}'.") from exc


def db_weekday(local_date: date) -> int:
    """Weekday with Sunday as 0, the numbering availability blocks use."""
    return (local_date.weekday() + 1) % 7


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def minutes_to_time(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f'{minutes} is not a minute of the day.')
    return time(minutes // 60, minutes % 60)


def format_minutes(minutes: int) -> str:
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive storage values and normalise aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=pytz.UTC)
    return value.astimezone(pytz.UTC)


def to_storage(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


def _localize(tz, naive: datetime) -> datetime:
    try:
        return tz.localize(naive, is_dst=None)
    except pytz.AmbiguousTimeError:
        return tz.localize(naive, is_dst=True)
    except pytz.NonExistentTimeError:
        return tz.normalize(tz.localize(naive, is_dst=False))


def to_instant(local_date: date, minutes_of_day: int, tz_name: str) -> datetime:
    """Resolve a practice-local wall-clock value to an aware UTC instant.

    ``minutes_of_day`` may reach past midnight (e.g. 1440 for the end of
    the day); the overflow rolls onto the following local dates.
    """
    tz = get_timezone(tz_name)
    day_offset, minutes = divmod(minutes_of_day, MINUTES_PER_DAY)
    wall_clock = datetime.combine(local_date + timedelta(days=day_offset), minutes_to_time(minutes))
    return _localize(tz, wall_clock).astimezone(pytz.UTC)


def to_local_parts(instant: datetime, tz_name: str) -> LocalParts:
    tz = get_timezone(tz_name)
    local = as_utc(instant).astimezone(tz)
    local_date = local.date()
    return LocalParts(local_date, local.hour * 60 + local.minute, db_weekday(local_date))


def today_in_tz(tz_name: str, now: datetime | None = None) -> date:
    now = as_utc(now) if now is not None else datetime.now(pytz.UTC)
    return now.astimezone(get_timezone(tz_name)).date()


def week_dates(tz_name: str, now: datetime | None = None) -> list[date]:
    """Monday-first dates of the week shown for today; Sundays show the next week."""
    today = today_in_tz(tz_name, now)
    reference = today + timedelta(days=1) if db_weekday(today) == 0 else today
    monday = reference - timedelta(days=reference.weekday())
    return [monday + timedelta(days=offset) for offset in range(7)]
