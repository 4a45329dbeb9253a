"""Relational access for the scheduling core.

``SchedulingStore`` holds the queries and writes behind the backend
operations (blocks, exceptions, appointments, leads, practices). It never
commits; :func:`unit_of_work` wraps a service call in one transaction.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterable, Iterator

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_booking.core.errors import LeadConflict, NotFound, OverlapError, TransientBackendError
from clinic_booking.models.appointment import Appointment
from clinic_booking.models.availability import AvailabilityBlock, AvailabilityException
from clinic_booking.models.lead import Lead
from clinic_booking.models.practice import Practice
from clinic_booking.models.zip_geo import ZipGeo
from clinic_booking.scheduling.grid import CANCELED, is_blocking
from clinic_booking.scheduling.timezones import minutes_to_time, to_storage
from clinic_booking.scheduling.weekly import DELETE, INSERT, UPDATE, BlockInterval, CarveStep, repair_blocks

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        # Exclusion constraints reject the losing writer of a concurrent carve.
        db.rollback()
        logger.warning('Scheduling write rejected by a database constraint: %s', exc.orig)
        raise OverlapError() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Scheduling transaction failed')
        raise TransientBackendError() from exc
    except Exception:
        db.rollback()
        raise


class SchedulingStore:
    def __init__(self, db: Session):
        self.db = db

    # Practices

    def get_practice(self, practice_id: int, lock: bool = False) -> Practice:
        query = self.db.query(Practice).filter(Practice.id == practice_id)
        if lock:
            # Serialises carve and booking writers per practice.
            query = query.with_for_update()
        practice = query.first()
        if practice is None:
            raise NotFound('Practice not found.')
        return practice

    def list_practices_for_coverage(
        self,
        statuses: Iterable[str],
        exclude_practice_id: int | None = None,
    ) -> list[Practice]:
        query = self.db.query(Practice).filter(
            Practice.status.in_(list(statuses)),
            Practice.lat.is_not(None),
            Practice.lng.is_not(None),
        )
        if exclude_practice_id is not None:
            query = query.filter(Practice.id != exclude_practice_id)
        return query.order_by(Practice.id.asc()).all()

    def get_zip_point(self, zip_code: str) -> tuple[float, float] | None:
        row = self.db.query(ZipGeo).filter(ZipGeo.zip == zip_code).first()
        if row is None:
            return None
        return row.lat, row.lng

    # Availability blocks

    def list_availability_blocks(
        self,
        practice_id: int,
        day_of_week: int | None = None,
        block_type: str | None = None,
    ) -> list[AvailabilityBlock]:
        """Blocks for a practice, with corrupt rows (start >= end) deleted."""
        query = self.db.query(AvailabilityBlock).filter(AvailabilityBlock.practice_id == practice_id)
        if day_of_week is not None:
            query = query.filter(AvailabilityBlock.day_of_week == day_of_week)
        if block_type:
            query = query.filter(AvailabilityBlock.type == block_type)
        rows = query.order_by(AvailabilityBlock.day_of_week.asc(), AvailabilityBlock.start_time.asc()).all()

        _, corrupt = repair_blocks(BlockInterval.from_model(row) for row in rows)
        if not corrupt:
            return rows

        corrupt_ids = {block.id for block in corrupt}
        for row in rows:
            if row.id in corrupt_ids:
                logger.warning(
                    'Deleting corrupt availability block %s for practice %s (%s-%s)',
                    row.id,
                    practice_id,
                    row.start_time,
                    row.end_time,
                )
                self.db.delete(row)
        self.db.flush()
        return [row for row in rows if row.id not in corrupt_ids]

    def block_intervals(self, practice_id: int) -> list[BlockInterval]:
        return [BlockInterval.from_model(row) for row in self.list_availability_blocks(practice_id)]

    def upsert_availability_block(
        self,
        practice_id: int,
        day_of_week: int,
        start: int,
        end: int,
        block_type: str,
        block_id: int | None = None,
    ) -> AvailabilityBlock:
        if block_id is None:
            block = AvailabilityBlock(practice_id=practice_id, day_of_week=day_of_week)
            self.db.add(block)
        else:
            block = self.get_availability_block(practice_id, block_id)
        block.day_of_week = day_of_week
        block.start_time = minutes_to_time(start)
        block.end_time = minutes_to_time(end)
        block.type = block_type
        self.db.flush()
        return block

    def get_availability_block(self, practice_id: int, block_id: int) -> AvailabilityBlock:
        block = self.db.query(AvailabilityBlock).filter(
            AvailabilityBlock.id == block_id,
            AvailabilityBlock.practice_id == practice_id,
        ).first()
        if block is None:
            raise NotFound('Availability block not found.')
        return block

    def delete_availability_block(self, practice_id: int, block_id: int) -> None:
        self.db.delete(self.get_availability_block(practice_id, block_id))
        self.db.flush()

    def apply_carve_plan(self, practice_id: int, steps: Iterable[CarveStep]) -> list[AvailabilityBlock]:
        """Persist a carve plan; returns the inserted and updated rows."""
        written = []
        for step in steps:
            if step.action == DELETE:
                self.delete_availability_block(practice_id, step.block_id)
            elif step.action in (INSERT, UPDATE):
                block = self.upsert_availability_block(
                    practice_id,
                    step.day_of_week,
                    step.start,
                    step.end,
                    step.type,
                    block_id=step.block_id if step.action == UPDATE else None,
                )
                written.append(block)
            else:
                raise ValueError(f'Unknown carve action {step.action!r}')
        return written

    # Exceptions

    def list_exceptions(self, practice_id: int, start_date: date, end_date: date) -> list[AvailabilityException]:
        return self.db.query(AvailabilityException).filter(
            AvailabilityException.practice_id == practice_id,
            AvailabilityException.is_available.is_(False),
            AvailabilityException.exception_date >= start_date,
            AvailabilityException.exception_date <= end_date,
        ).order_by(
            AvailabilityException.exception_date.asc(),
            AvailabilityException.start_time.asc(),
        ).all()

    def create_exception(
        self,
        practice_id: int,
        exception_date: date,
        start: int | None,
        end: int | None,
        reason: str | None,
    ) -> AvailabilityException:
        exception = AvailabilityException(
            practice_id=practice_id,
            exception_date=exception_date,
            start_time=minutes_to_time(start) if start is not None else None,
            end_time=minutes_to_time(end) if end is not None else None,
            is_available=False,
            reason=reason,
        )
        self.db.add(exception)
        self.db.flush()
        return exception

    def delete_exception(self, practice_id: int, exception_id: int) -> None:
        exception = self.db.query(AvailabilityException).filter(
            AvailabilityException.id == exception_id,
            AvailabilityException.practice_id == practice_id,
        ).first()
        if exception is None:
            raise NotFound('Closure not found.')
        self.db.delete(exception)
        self.db.flush()

    # Appointments

    def get_appointment(self, practice_id: int, appointment_id: int, lock: bool = False) -> Appointment:
        query = self.db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.practice_id == practice_id,
        )
        if lock:
            query = query.with_for_update()
        appointment = query.first()
        if appointment is None:
            raise NotFound('Appointment not found.')
        return appointment

    def list_appointments(self, practice_id: int, range_start: datetime, range_end: datetime) -> list[Appointment]:
        """Appointments overlapping ``[range_start, range_end)``, canceled ones included."""
        return self.db.query(Appointment).filter(
            Appointment.practice_id == practice_id,
            Appointment.start_time < to_storage(range_end),
            Appointment.end_time > to_storage(range_start),
        ).order_by(Appointment.start_time.asc()).all()

    def find_blocking_appointments(
        self,
        practice_id: int,
        start: datetime,
        end: datetime,
        now: datetime,
        exclude_appointment_id: int | None = None,
    ) -> list[Appointment]:
        query = self.db.query(Appointment).filter(
            Appointment.practice_id == practice_id,
            Appointment.status != CANCELED,
            Appointment.start_time < to_storage(end),
            Appointment.end_time > to_storage(start),
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return [
            appointment
            for appointment in query.all()
            if is_blocking(appointment.status, appointment.expires_at, now)
        ]

    def add_appointment(self, **fields) -> Appointment:
        appointment = Appointment(**fields)
        self.db.add(appointment)
        self.db.flush()
        return appointment

    def active_appointment_lead_ids(self, practice_id: int, now: datetime) -> set[int]:
        rows = self.db.query(Appointment.lead_id, Appointment.status, Appointment.expires_at).filter(
            Appointment.practice_id == practice_id,
            Appointment.status != CANCELED,
        ).all()
        return {lead_id for lead_id, status, expires_at in rows if is_blocking(status, expires_at, now)}

    # Leads

    def get_lead(self, practice_id: int, lead_id: int) -> Lead:
        lead = self.db.query(Lead).filter(Lead.id == lead_id, Lead.practice_id == practice_id).first()
        if lead is None:
            raise NotFound('Lead not found.')
        return lead

    def list_leads(self, practice_id: int, search: str | None = None) -> list[Lead]:
        query = self.db.query(Lead).filter(Lead.practice_id == practice_id)
        if search:
            pattern = f'%{search.strip().lower()}%'
            query = query.filter(
                or_(
                    func.lower(Lead.first_name + ' ' + Lead.last_name).like(pattern),
                    func.lower(Lead.email).like(pattern),
                    Lead.phone.like(pattern),
                )
            )
        return query.order_by(Lead.last_name.asc(), Lead.first_name.asc()).all()

    def create_lead(
        self,
        practice_id: int,
        first_name: str,
        last_name: str,
        email: str | None = None,
        phone: str | None = None,
        source: str = 'manual',
    ) -> Lead:
        """Insert a lead, or raise ``LeadConflict`` for a known phone or email."""
        contact_filters = []
        if phone:
            contact_filters.append(Lead.phone == phone)
        if email:
            contact_filters.append(func.lower(Lead.email) == email.lower())

        if contact_filters:
            existing = self.db.query(Lead.id).filter(
                Lead.practice_id == practice_id,
                or_(*contact_filters),
            ).order_by(Lead.id.asc()).first()
            if existing is not None:
                raise LeadConflict(existing.id, 'Lead already exists, please select it.')

        lead = Lead(
            practice_id=practice_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            source=source,
        )
        self.db.add(lead)
        self.db.flush()
        return lead
