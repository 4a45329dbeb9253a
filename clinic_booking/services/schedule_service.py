"""Weekly schedule mutations, closures and the day grid for one practice.

Each mutation runs in a single transaction: lock the practice row, re-read
the blocks, plan the carve, write it, then verify the day still has no
overlapping blocks before committing. A concurrent writer that slipped
past the lock surfaces as ``OverlapError`` rather than corrupt data.
"""

import logging
from datetime import date, datetime, timedelta

import pytz
from sqlalchemy.orm import Session

from clinic_booking.core import config
from clinic_booking.core.errors import NoOpError, ValidationError
from clinic_booking.models.availability import AvailabilityBlock, AvailabilityException
from clinic_booking.scheduling.closures import Closure
from clinic_booking.scheduling.grid import BookedInterval, Slot, build_day_grid
from clinic_booking.scheduling.timezones import to_instant, today_in_tz
from clinic_booking.scheduling.weekly import (
    assert_non_overlapping,
    blocks_for_day,
    plan_manual_add,
    plan_toggle,
)
from clinic_booking.storage import SchedulingStore, unit_of_work

logger = logging.getLogger(__name__)


class ScheduleService:
    def __init__(self, db: Session):
        self.db = db
        self.store = SchedulingStore(db)

    def practice_timezone(self, practice_id: int) -> str:
        with unit_of_work(self.db):
            return self.store.get_practice(practice_id).timezone

    def list_blocks(
        self,
        practice_id: int,
        day_of_week: int | None = None,
        block_type: str | None = None,
    ) -> list[AvailabilityBlock]:
        with unit_of_work(self.db):
            self.store.get_practice(practice_id)
            return self.store.list_availability_blocks(practice_id, day_of_week, block_type)

    def add_block(
        self,
        practice_id: int,
        day_of_week: int,
        start: int,
        end: int,
        block_type: str,
    ) -> AvailabilityBlock:
        with unit_of_work(self.db):
            self.store.get_practice(practice_id, lock=True)
            blocks = self.store.block_intervals(practice_id)
            steps = plan_manual_add(blocks, day_of_week, start, end, block_type)
            created = self.store.apply_carve_plan(practice_id, steps)
            self._verify_day(practice_id, day_of_week)
            logger.info('Added availability block for practice %s day %s', practice_id, day_of_week)
            return created[0]

    def toggle(
        self,
        practice_id: int,
        day_of_week: int,
        toggle_start: int,
        duration: int | None = None,
        block_type: str | None = None,
    ) -> list[AvailabilityBlock]:
        """Toggle a fixed window open or closed; returns the weekday's blocks afterwards."""
        duration = duration or config.TOGGLE_DURATION_MINUTES
        block_type = block_type or config.DEFAULT_BLOCK_TYPE

        with unit_of_work(self.db):
            self.store.get_practice(practice_id, lock=True)
            blocks = self.store.block_intervals(practice_id)
            try:
                steps = plan_toggle(blocks, day_of_week, toggle_start, duration, block_type)
            except NoOpError:
                logger.info('Toggle on practice %s day %s covered nothing', practice_id, day_of_week)
                return self.store.list_availability_blocks(practice_id, day_of_week)

            self.store.apply_carve_plan(practice_id, steps)
            self._verify_day(practice_id, day_of_week)
            logger.info(
                'Applied carve plan for practice %s day %s: %s',
                practice_id,
                day_of_week,
                [step.action for step in steps],
            )
            return self.store.list_availability_blocks(practice_id, day_of_week)

    def delete_block(self, practice_id: int, block_id: int) -> None:
        with unit_of_work(self.db):
            self.store.get_practice(practice_id, lock=True)
            self.store.delete_availability_block(practice_id, block_id)

    def _verify_day(self, practice_id: int, day_of_week: int) -> None:
        after = blocks_for_day(self.store.block_intervals(practice_id), day_of_week)
        assert_non_overlapping(after)

    # Closures

    def list_closures(
        self,
        practice_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
        now: datetime | None = None,
    ) -> list[AvailabilityException]:
        with unit_of_work(self.db):
            practice = self.store.get_practice(practice_id)
            start_date = start_date or today_in_tz(practice.timezone, now)
            end_date = end_date or start_date + timedelta(days=config.EXCEPTION_LOOKAHEAD_DAYS)
            if end_date < start_date:
                raise ValidationError('end_date must not be before start_date.')
            return self.store.list_exceptions(practice_id, start_date, end_date)

    def add_closure(
        self,
        practice_id: int,
        exception_date: date,
        start: int | None = None,
        end: int | None = None,
        reason: str | None = None,
    ) -> AvailabilityException:
        if (start is None) != (end is None):
            raise ValidationError('Provide both start_time and end_time, or neither for a whole-day closure.')
        if start is not None and start >= end:
            raise ValidationError('End time must be after start time.')

        with unit_of_work(self.db):
            self.store.get_practice(practice_id)
            return self.store.create_exception(practice_id, exception_date, start, end, reason)

    def delete_closure(self, practice_id: int, exception_id: int) -> None:
        with unit_of_work(self.db):
            self.store.delete_exception(practice_id, exception_id)

    # Grid

    def day_grid(
        self,
        practice_id: int,
        target_date: date | None = None,
        step: int | None = None,
        now: datetime | None = None,
    ) -> tuple[date, str, list[Slot]]:
        now = now or datetime.now(pytz.UTC)
        step = step or config.SLOT_STEP_MINUTES

        with unit_of_work(self.db):
            practice = self.store.get_practice(practice_id)
            tz_name = practice.timezone
            target_date = target_date or today_in_tz(tz_name, now)

            blocks = self.store.block_intervals(practice_id)
            closures = [
                Closure.from_model(row)
                for row in self.store.list_exceptions(practice_id, target_date, target_date)
            ]
            # Pad by a day so appointments spilling over midnight are still seen.
            range_start = to_instant(target_date - timedelta(days=1), 0, tz_name)
            range_end = to_instant(target_date + timedelta(days=2), 0, tz_name)
            appointments = [
                BookedInterval.from_model(row)
                for row in self.store.list_appointments(practice_id, range_start, range_end)
            ]

        slots = build_day_grid(
            target_date,
            tz_name,
            blocks,
            closures,
            appointments,
            now=now,
            window_start=config.GRID_START_MINUTES,
            window_end=config.GRID_END_MINUTES,
            step=step,
        )
        return target_date, tz_name, slots

