from datetime import date, datetime

import pytest
import pytz

from clinic_booking.core.errors import ValidationError
from clinic_booking.scheduling.timezones import (
    LocalParts,
    db_weekday,
    minutes_to_time,
    to_instant,
    to_local_parts,
    today_in_tz,
    week_dates,
)


def test_to_instant_uses_daylight_offset_in_summer() -> None:
    assert to_instant(date(2024, 6, 3), 9 * 60, 'America/New_York') == datetime(2024, 6, 3, 13, 0, tzinfo=pytz.UTC)


def test_to_instant_uses_standard_offset_in_winter() -> None:
    assert to_instant(date(2024, 1, 8), 9 * 60, 'America/New_York') == datetime(2024, 1, 8, 14, 0, tzinfo=pytz.UTC)


@pytest.mark.parametrize(
    ('local_date', 'minutes', 'tz_name'),
    [
        (date(2024, 6, 3), 540, 'America/New_York'),
        (date(2024, 6, 9), 0, 'America/Los_Angeles'),
        (date(2024, 12, 31), 1439, 'Europe/Berlin'),
        (date(2024, 2, 29), 735, 'Asia/Kolkata'),
        (date(2024, 7, 4), 60, 'UTC'),
    ],
)
def test_round_trip_returns_the_same_local_parts(local_date: date, minutes: int, tz_name: str) -> None:
    instant = to_instant(local_date, minutes, tz_name)

    assert to_local_parts(instant, tz_name) == LocalParts(local_date, minutes, db_weekday(local_date))


def test_db_weekday_numbers_sunday_as_zero() -> None:
    assert db_weekday(date(2024, 6, 2)) == 0
    assert db_weekday(date(2024, 6, 3)) == 1
    assert db_weekday(date(2024, 6, 8)) == 6


def test_spring_forward_gap_shifts_forward() -> None:
    instant = to_instant(date(2024, 3, 10), 2 * 60 + 30, 'America/New_York')

    assert instant == datetime(2024, 3, 10, 7, 30, tzinfo=pytz.UTC)
    assert to_local_parts(instant, 'America/New_York').minutes == 3 * 60 + 30


def test_fall_back_overlap_resolves_to_first_occurrence() -> None:
    instant = to_instant(date(2024, 11, 3), 60 + 30, 'America/New_York')

    assert instant == datetime(2024, 11, 3, 5, 30, tzinfo=pytz.UTC)


def test_minutes_past_midnight_roll_onto_next_day() -> None:
    assert to_instant(date(2024, 6, 3), 24 * 60, 'America/New_York') == to_instant(
        date(2024, 6, 4), 0, 'America/New_York'
    )


def test_unknown_timezone_is_a_validation_error() -> None:
    with pytest.raises(ValidationError):
        to_instant(date(2024, 6, 3), 540, 'Mars/Olympus_Mons')


def test_minutes_to_time_rejects_values_outside_the_day() -> None:
    with pytest.raises(ValueError):
        minutes_to_time(24 * 60)


def test_today_in_tz_uses_practice_calendar() -> None:
    now = datetime(2024, 6, 10, 2, 0, tzinfo=pytz.UTC)

    assert today_in_tz('America/New_York', now) == date(2024, 6, 9)
    assert today_in_tz('UTC', now) == date(2024, 6, 10)


def test_week_dates_start_on_monday() -> None:
    dates = week_dates('America/New_York', datetime(2024, 6, 5, 15, 0, tzinfo=pytz.UTC))

    assert dates[0] == date(2024, 6, 3)
    assert dates[-1] == date(2024, 6, 9)
    assert len(dates) == 7


def test_week_dates_on_sunday_show_the_following_week() -> None:
    # 22:00 Sunday in New York, already Monday in UTC.
    dates = week_dates('America/New_York', datetime(2024, 6, 10, 2, 0, tzinfo=pytz.UTC))

    assert dates[0] == date(2024, 6, 10)
    assert dates[-1] == date(2024, 6, 16)
