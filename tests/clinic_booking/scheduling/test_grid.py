from datetime import date, datetime, timedelta

import pytest
import pytz

from clinic_booking.scheduling.closures import Closure, closures_for_date
from clinic_booking.scheduling.grid import (
    AVAILABLE,
    BOOKED,
    UNAVAILABLE,
    BookedInterval,
    build_day_grid,
    covers,
    is_blocking,
)
from clinic_booking.scheduling.timezones import to_instant
from clinic_booking.scheduling.weekly import BlockInterval

TZ = 'America/New_York'
MONDAY_DATE = date(2024, 6, 3)
MONDAY = 1
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=pytz.UTC)


def _appointment(start_minutes: int, end_minutes: int, status: str = 'scheduled', expires_at=None, label=None):
    return BookedInterval(
        id=10,
        start=to_instant(MONDAY_DATE, start_minutes, TZ),
        end=to_instant(MONDAY_DATE, end_minutes, TZ),
        status=status,
        expires_at=expires_at,
        label=label,
    )


def _grid(blocks=(), closures=(), appointments=(), step=15, now=NOW):
    slots = build_day_grid(
        MONDAY_DATE,
        TZ,
        list(blocks),
        list(closures),
        list(appointments),
        now=now,
        window_start=7 * 60,
        window_end=19 * 60,
        step=step,
    )
    return {slot.start_minutes: slot for slot in slots}


MORNING = [BlockInterval(1, MONDAY, 8 * 60, 12 * 60, 'available')]


def test_grid_covers_the_configured_window() -> None:
    slots = _grid(MORNING)

    assert min(slots) == 420
    assert max(slots) == 1125
    assert len(slots) == 48


def test_booked_appointment_marks_its_slots() -> None:
    slots = _grid(MORNING, appointments=[_appointment(540, 570, label='Ada Lovelace')])

    assert slots[540].status == BOOKED
    assert slots[555].status == BOOKED
    assert slots[540].label == 'Ada Lovelace'
    assert slots[540].appointment_id == 10
    assert slots[525].status == AVAILABLE
    assert slots[570].status == AVAILABLE


def test_partial_slot_appointment_snaps_to_whole_slots() -> None:
    slots = _grid(MORNING, appointments=[_appointment(545, 560)])

    assert slots[540].status == BOOKED
    assert slots[555].status == BOOKED
    assert slots[570].status == AVAILABLE


def test_expired_hold_does_not_block() -> None:
    expired = _appointment(540, 570, status='hold', expires_at=NOW - timedelta(minutes=1))

    slots = _grid(MORNING, appointments=[expired])

    assert slots[540].status == AVAILABLE
    assert slots[555].status == AVAILABLE


def test_live_hold_blocks() -> None:
    live = _appointment(540, 570, status='hold', expires_at=NOW + timedelta(minutes=5))

    assert _grid(MORNING, appointments=[live])[540].status == BOOKED


def test_canceled_appointment_does_not_block() -> None:
    assert _grid(MORNING, appointments=[_appointment(540, 570, status='canceled')])[540].status == AVAILABLE


def test_slot_touching_block_end_is_unavailable() -> None:
    slots = _grid(MORNING)

    assert slots[480].status == AVAILABLE
    assert slots[705].status == UNAVAILABLE
    assert slots[465].status == UNAVAILABLE
    assert slots[720].status == UNAVAILABLE


def test_adjacent_blocks_render_as_one_region() -> None:
    blocks = [
        BlockInterval(1, MONDAY, 14 * 60, 15 * 60, 'new_patient'),
        BlockInterval(2, MONDAY, 15 * 60, 16 * 60, 'new_patient'),
    ]

    slots = _grid(blocks)

    assert [slots[minute].status for minute in range(840, 945, 15)] == [AVAILABLE] * 7
    assert slots[945].status == UNAVAILABLE


def test_blocks_for_other_weekdays_are_ignored() -> None:
    slots = _grid([BlockInterval(1, 2, 8 * 60, 12 * 60, 'available')])

    assert {slot.status for slot in slots.values()} == {UNAVAILABLE}


def test_partial_closure_removes_availability() -> None:
    closure = Closure(1, MONDAY_DATE, 600, 660, 'Staff meeting')

    slots = _grid(MORNING, closures=[closure])

    assert slots[585].status == AVAILABLE
    assert slots[600].status == UNAVAILABLE
    assert slots[645].status == UNAVAILABLE
    assert slots[660].status == AVAILABLE


def test_whole_day_closure_removes_all_availability() -> None:
    slots = _grid(MORNING, closures=[Closure(1, MONDAY_DATE)])

    assert {slot.status for slot in slots.values()} == {UNAVAILABLE}


def test_closure_on_another_date_is_ignored() -> None:
    slots = _grid(MORNING, closures=[Closure(1, MONDAY_DATE + timedelta(days=7))])

    assert slots[540].status == AVAILABLE


def test_booked_wins_over_closure() -> None:
    slots = _grid(MORNING, closures=[Closure(1, MONDAY_DATE)], appointments=[_appointment(540, 570)])

    assert slots[540].status == BOOKED


def test_classification_is_repeatable() -> None:
    inputs = dict(
        blocks=MORNING,
        closures=[Closure(1, MONDAY_DATE, 600, 630)],
        appointments=[_appointment(540, 570)],
    )

    assert _grid(**inputs) == _grid(**inputs)


def test_slot_instants_follow_practice_timezone() -> None:
    slot = _grid(MORNING)[540]

    assert slot.start == datetime(2024, 6, 3, 13, 0, tzinfo=pytz.UTC)
    assert slot.end == datetime(2024, 6, 3, 13, 15, tzinfo=pytz.UTC)


def test_step_must_be_positive() -> None:
    with pytest.raises(ValueError):
        _grid(MORNING, step=0)


def test_covers_uses_strict_end() -> None:
    assert covers([(540, 720)], 540, 600)
    assert not covers([(540, 720)], 660, 720)


def test_is_blocking_rules() -> None:
    assert is_blocking('scheduled', None, NOW)
    assert is_blocking('hold', None, NOW)
    assert not is_blocking('canceled', None, NOW)
    assert not is_blocking('hold', NOW - timedelta(seconds=1), NOW)
    # Storage hands back naive UTC values.
    assert is_blocking('hold', (NOW + timedelta(minutes=1)).replace(tzinfo=None), NOW)


def test_closures_for_date_merges_intervals() -> None:
    day = closures_for_date(
        [Closure(1, MONDAY_DATE, 700, 720), Closure(2, MONDAY_DATE, 600, 630)],
        MONDAY_DATE,
    )

    assert not day.whole_day
    assert day.intervals == ((600, 630), (700, 720))
    assert day.excludes(620, 640)
    assert not day.excludes(630, 700)
