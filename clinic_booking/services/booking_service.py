"""Booking transaction: patient resolution, eligibility and atomic create.

``create_appointment`` is the only writer of appointments. Inside one
transaction it locks the practice row, re-reads the weekly blocks, the
date's closures and the overlapping appointments, and only then inserts.
Callers re-derive the slot grid afterwards instead of trusting local state.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

import pytz
from sqlalchemy.orm import Session

from clinic_booking.core import config
from clinic_booking.core.errors import (
    HoldExpiredError,
    LeadConflict,
    NotAHoldError,
    OutsideAvailabilityError,
    OverlapError,
    ValidationError,
)
from clinic_booking.models.appointment import APPOINTMENT_SOURCES, Appointment
from clinic_booking.models.lead import Lead
from clinic_booking.scheduling.closures import Closure, closures_for_date
from clinic_booking.scheduling.grid import CANCELED, HOLD, covers
from clinic_booking.scheduling.timezones import as_utc, to_instant, to_local_parts, to_storage
from clinic_booking.scheduling.weekly import merged_coverage
from clinic_booking.storage import SchedulingStore, unit_of_work

logger = logging.getLogger(__name__)

SCHEDULED = 'scheduled'
BOOKABLE_STATUSES = ('pending', HOLD, SCHEDULED)


@dataclass
class NewPatient:
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    source: str = 'manual'


class BookingService:
    def __init__(self, db: Session):
        self.db = db
        self.store = SchedulingStore(db)

    # Patient resolution

    def resolve_patient(
        self,
        practice_id: int,
        lead_id: int | None = None,
        new_patient: NewPatient | None = None,
    ) -> int:
        """Return the lead id to book against, creating the lead when needed.

        A duplicate phone or email is not an error here: the booking simply
        continues against the lead that already holds that contact.
        """
        if lead_id is not None:
            with unit_of_work(self.db):
                return self.store.get_lead(practice_id, lead_id).id

        if new_patient is None:
            raise ValidationError('Select an existing patient or provide new patient details.')
        if not new_patient.first_name or not new_patient.last_name:
            raise ValidationError('First and last name are required.')
        if not new_patient.email and not new_patient.phone:
            raise ValidationError('Provide a phone number or an email address.')

        try:
            with unit_of_work(self.db):
                self.store.get_practice(practice_id)
                lead = self.store.create_lead(
                    practice_id,
                    new_patient.first_name,
                    new_patient.last_name,
                    email=new_patient.email,
                    phone=new_patient.phone,
                    source=new_patient.source,
                )
                return lead.id
        except LeadConflict as exc:
            logger.info(
                'Lead contact already known for practice %s; booking against lead %s',
                practice_id,
                exc.existing_lead_id,
            )
            return exc.existing_lead_id

    def create_lead(self, practice_id: int, new_patient: NewPatient) -> Lead:
        with unit_of_work(self.db):
            self.store.get_practice(practice_id)
            return self.store.create_lead(
                practice_id,
                new_patient.first_name,
                new_patient.last_name,
                email=new_patient.email,
                phone=new_patient.phone,
                source=new_patient.source,
            )

    def eligible_leads(
        self,
        practice_id: int,
        search: str | None = None,
        now: datetime | None = None,
    ) -> list[Lead]:
        """Leads without an active appointment, optionally filtered by name, email or phone."""
        now = now or datetime.now(pytz.UTC)
        with unit_of_work(self.db):
            self.store.get_practice(practice_id)
            busy = self.store.active_appointment_lead_ids(practice_id, now)
            return [lead for lead in self.store.list_leads(practice_id, search) if lead.id not in busy]

    # Appointments

    @staticmethod
    def compute_instants(
        local_date: date,
        start_minutes: int,
        duration_minutes: int,
        tz_name: str,
    ) -> tuple[datetime, datetime]:
        if duration_minutes <= 0:
            raise ValidationError('Duration must be positive.')
        start = to_instant(local_date, start_minutes, tz_name)
        return start, start + timedelta(minutes=duration_minutes)

    def create_appointment(
        self,
        practice_id: int,
        lead_id: int,
        start: datetime,
        end: datetime,
        source: str = 'call_center',
        created_by: str | None = None,
        notes: str | None = None,
        status: str = SCHEDULED,
        hold_minutes: int | None = None,
        now: datetime | None = None,
    ) -> Appointment:
        now = now or datetime.now(pytz.UTC)
        start, end = as_utc(start), as_utc(end)
        if start >= end:
            raise ValidationError('End time must be after start time.')
        if status not in BOOKABLE_STATUSES:
            raise ValidationError(f"Cannot book an appointment with status '{status}'.")
        if source not in APPOINTMENT_SOURCES:
            raise ValidationError(f"Unknown appointment source '{source}'.")

        with unit_of_work(self.db):
            practice = self.store.get_practice(practice_id, lock=True)
            self.store.get_lead(practice_id, lead_id)
            tz_name = practice.timezone

            start_parts = to_local_parts(start, tz_name)
            end_parts = to_local_parts(end, tz_name)
            if start_parts.date != end_parts.date:
                self._reject(practice_id, 'crosses midnight')
                raise OutsideAvailabilityError('Appointment must start and end on the same day.')

            coverage = merged_coverage(self.store.block_intervals(practice_id), start_parts.weekday)
            closures = closures_for_date(
                [
                    Closure.from_model(row)
                    for row in self.store.list_exceptions(practice_id, start_parts.date, start_parts.date)
                ],
                start_parts.date,
            )
            if not covers(coverage, start_parts.minutes, end_parts.minutes):
                self._reject(practice_id, 'outside weekly availability')
                raise OutsideAvailabilityError()
            if closures.excludes(start_parts.minutes, end_parts.minutes):
                self._reject(practice_id, 'closed on that date')
                raise OutsideAvailabilityError('Time slot falls in a closure.')

            if self.store.find_blocking_appointments(practice_id, start, end, now):
                self._reject(practice_id, 'overlap')
                raise OverlapError()
            if lead_id in self.store.active_appointment_lead_ids(practice_id, now):
                self._reject(practice_id, 'lead already booked')
                raise ValidationError('Patient already has an active appointment.')

            expires_at = None
            if status == HOLD:
                expires_at = to_storage(now + timedelta(minutes=hold_minutes or config.HOLD_MINUTES))

            appointment = self.store.add_appointment(
                practice_id=practice_id,
                lead_id=lead_id,
                start_time=to_storage(start),
                end_time=to_storage(end),
                status=status,
                expires_at=expires_at,
                source=source,
                created_by=created_by,
                notes=notes,
            )
            logger.info(
                'Booked appointment %s (%s) for practice %s lead %s at %s',
                appointment.id,
                status,
                practice_id,
                lead_id,
                start.isoformat(),
            )
            return appointment

    def book(
        self,
        practice_id: int,
        local_date: date,
        start_minutes: int,
        duration_minutes: int | None = None,
        lead_id: int | None = None,
        new_patient: NewPatient | None = None,
        source: str = 'call_center',
        created_by: str | None = None,
        notes: str | None = None,
        hold: bool = False,
        hold_minutes: int | None = None,
        now: datetime | None = None,
    ) -> Appointment:
        """Resolve the patient, compute the instants and create the appointment."""
        duration_minutes = duration_minutes or config.DEFAULT_APPOINTMENT_MINUTES
        resolved_lead_id = self.resolve_patient(practice_id, lead_id, new_patient)

        with unit_of_work(self.db):
            tz_name = self.store.get_practice(practice_id).timezone
        start, end = self.compute_instants(local_date, start_minutes, duration_minutes, tz_name)

        return self.create_appointment(
            practice_id,
            resolved_lead_id,
            start,
            end,
            source=source,
            created_by=created_by,
            notes=notes,
            status=HOLD if hold else SCHEDULED,
            hold_minutes=hold_minutes,
            now=now,
        )

    def confirm_hold(self, practice_id: int, appointment_id: int, now: datetime | None = None) -> Appointment:
        now = now or datetime.now(pytz.UTC)
        with unit_of_work(self.db):
            self.store.get_practice(practice_id, lock=True)
            appointment = self.store.get_appointment(practice_id, appointment_id, lock=True)
            if appointment.status != HOLD:
                raise NotAHoldError()
            if appointment.expires_at is not None and as_utc(now) > as_utc(appointment.expires_at):
                raise HoldExpiredError()
            if self.store.find_blocking_appointments(
                practice_id,
                as_utc(appointment.start_time),
                as_utc(appointment.end_time),
                now,
                exclude_appointment_id=appointment.id,
            ):
                raise OverlapError()

            appointment.status = SCHEDULED
            appointment.expires_at = None
            self.db.flush()
            logger.info('Confirmed hold %s for practice %s', appointment.id, practice_id)
            return appointment

    def cancel_appointment(self, practice_id: int, appointment_id: int) -> Appointment:
        with unit_of_work(self.db):
            appointment = self.store.get_appointment(practice_id, appointment_id, lock=True)
            if appointment.status != CANCELED:
                appointment.status = CANCELED
                self.db.flush()
                logger.info('Canceled appointment %s for practice %s', appointment.id, practice_id)
            return appointment

    def list_appointments(self, practice_id: int, start_date: date, end_date: date) -> list[Appointment]:
        """Appointments touching the practice-local dates ``start_date`` through ``end_date``."""
        if end_date < start_date:
            raise ValidationError('end_date must not be before start_date.')
        with unit_of_work(self.db):
            tz_name = self.store.get_practice(practice_id).timezone
            range_start = to_instant(start_date, 0, tz_name)
            range_end = to_instant(end_date + timedelta(days=1), 0, tz_name)
            return self.store.list_appointments(practice_id, range_start, range_end)

    @staticmethod
    def _reject(practice_id: int, reason: str) -> None:
        logger.info('Rejected booking for practice %s: %s', practice_id, reason)
