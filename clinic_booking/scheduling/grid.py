"""Slot grid and classifier.

``build_day_grid`` is a pure function of its inputs: the weekly blocks,
the closures, the appointments, the date, the timezone and ``now``. It is
safe to recompute on every request.

A hold whose ``expires_at`` has passed no longer blocks anything. Every
read that consults appointments goes through :func:`is_blocking`, so no
background sweep is needed to free expired holds.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable

from clinic_booking.scheduling.closures import Closure, closures_for_date
from clinic_booking.scheduling.timezones import (
    MINUTES_PER_DAY,
    as_utc,
    db_weekday,
    to_instant,
    to_local_parts,
)
from clinic_booking.scheduling.weekly import BlockInterval, merged_coverage

AVAILABLE = 'available'
UNAVAILABLE = 'unavailable'
BOOKED = 'booked'

CANCELED = 'canceled'
HOLD = 'hold'


def is_blocking(status: str | None, expires_at: datetime | None, now: datetime) -> bool:
    if status == CANCELED:
        return False
    if status == HOLD and expires_at is not None and as_utc(now) > as_utc(expires_at):
        return False
    return True


@dataclass(frozen=True)
class BookedInterval:
    id: int | None
    start: datetime
    end: datetime
    status: str
    expires_at: datetime | None = None
    label: str | None = None

    @classmethod
    def from_model(cls, appointment) -> 'BookedInterval':
        lead = getattr(appointment, 'lead', None)
        return cls(
            id=appointment.id,
            start=as_utc(appointment.start_time),
            end=as_utc(appointment.end_time),
            status=appointment.status,
            expires_at=as_utc(appointment.expires_at) if appointment.expires_at else None,
            label=lead.display_name if lead is not None else None,
        )

    def blocks_at(self, now: datetime) -> bool:
        return is_blocking(self.status, self.expires_at, now)


@dataclass(frozen=True)
class Slot:
    start_minutes: int
    end_minutes: int
    start: datetime
    end: datetime
    status: str
    appointment_id: int | None = None
    label: str | None = None


def covers(coverage: Iterable[tuple[int, int]], start: int, end: int) -> bool:
    """Containment used by the grid and by booking: the end bound is strict."""
    return any(start >= open_start and end < open_end for open_start, open_end in coverage)


def _local_offset(instant: datetime, target_date: date, tz_name: str) -> int:
    parts = to_local_parts(instant, tz_name)
    return (parts.date - target_date).days * MINUTES_PER_DAY + parts.minutes


def _snapped_range(appointment: BookedInterval, target_date: date, tz_name: str, step: int) -> tuple[int, int]:
    start = _local_offset(appointment.start, target_date, tz_name)
    end = _local_offset(appointment.end, target_date, tz_name)
    snapped_start = (start // step) * step
    snapped_end = -((-end) // step) * step
    return snapped_start, snapped_end


def build_day_grid(
    target_date: date,
    tz_name: str,
    blocks: Iterable[BlockInterval],
    closures: Iterable[Closure],
    appointments: Iterable[BookedInterval],
    *,
    now: datetime,
    window_start: int,
    window_end: int,
    step: int,
) -> list[Slot]:
    if step <= 0:
        raise ValueError('step must be positive')

    coverage = merged_coverage(blocks, db_weekday(target_date))
    day_closures = closures_for_date(closures, target_date)
    booked_ranges = [
        (appointment, *_snapped_range(appointment, target_date, tz_name, step))
        for appointment in appointments
        if appointment.blocks_at(now)
    ]

    slots: list[Slot] = []
    for slot_start in range(window_start, window_end, step):
        slot_end = slot_start + step
        status = UNAVAILABLE
        appointment_id = None
        label = None

        for appointment, booked_start, booked_end in booked_ranges:
            if slot_start < booked_end and slot_end > booked_start:
                status = BOOKED
                appointment_id = appointment.id
                label = appointment.label
                break
        else:
            if covers(coverage, slot_start, slot_end) and not day_closures.excludes(slot_start, slot_end):
                status = AVAILABLE

        slots.append(
            Slot(
                start_minutes=slot_start,
                end_minutes=slot_end,
                start=to_instant(target_date, slot_start, tz_name),
                end=to_instant(target_date, slot_end, tz_name),
                status=status,
                appointment_id=appointment_id,
                label=label,
            )
        )

    return slots
