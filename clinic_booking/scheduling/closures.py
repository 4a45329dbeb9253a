"""One-time date closures layered over the weekly schedule.

Closures only remove availability; the weekly schedule is the only
source of open time.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from clinic_booking.scheduling.timezones import MINUTES_PER_DAY, time_to_minutes


@dataclass(frozen=True)
class Closure:
    id: int | None
    exception_date: date
    start: int | None = None
    end: int | None = None
    reason: str | None = None

    @classmethod
    def from_model(cls, exception) -> 'Closure':
        return cls(
            id=exception.id,
            exception_date=exception.exception_date,
            start=time_to_minutes(exception.start_time) if exception.start_time is not None else None,
            end=time_to_minutes(exception.end_time) if exception.end_time is not None else None,
            reason=exception.reason,
        )

    @property
    def is_whole_day(self) -> bool:
        return self.start is None or self.end is None


@dataclass(frozen=True)
class DayClosures:
    whole_day: bool
    intervals: tuple[tuple[int, int], ...]

    def excludes(self, start: int, end: int) -> bool:
        """True when any part of ``[start, end)`` is closed."""
        if self.whole_day:
            return True
        return any(closed_start < end and start < closed_end for closed_start, closed_end in self.intervals)


def closures_for_date(closures: Iterable[Closure], target_date: date) -> DayClosures:
    intervals = []
    for closure in closures:
        if closure.exception_date != target_date:
            continue
        if closure.is_whole_day:
            return DayClosures(True, ((0, MINUTES_PER_DAY),))
        if closure.start < closure.end:
            intervals.append((closure.start, closure.end))
    return DayClosures(False, tuple(sorted(intervals)))
