from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.orm import Session

from clinic_booking.auth.dependencies import get_current_user, require_practice_access
from clinic_booking.core.errors import SchedulingError
from clinic_booking.models.appointment import APPOINTMENT_SOURCES, Appointment
from clinic_booking.models.user import User
from clinic_booking.routes.common import (
    MAX_NOTES_LENGTH,
    ensure_database_ready,
    get_db,
    normalize_optional_text,
    to_http_exception,
)
from clinic_booking.scheduling.timezones import as_utc, time_to_minutes
from clinic_booking.services.booking_service import BookingService, NewPatient

router = APIRouter(tags=['booking'])

MAX_HOLD_MINUTES = 60
MAX_DURATION_MINUTES = 8 * 60


class NewPatientRequest(BaseModel):
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None

    @field_validator('first_name', 'last_name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('First and last name are required.')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        normalized = normalize_optional_text(value)
        if normalized is None:
            return None
        normalized = normalized.lower()
        if '@' not in normalized:
            raise ValueError('Email address is invalid.')
        return normalized

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str | None) -> str | None:
        return normalize_optional_text(value)

    @model_validator(mode='after')
    def require_contact(self) -> 'NewPatientRequest':
        if not self.email and not self.phone:
            raise ValueError('Provide a phone number or an email address.')
        return self

    def to_new_patient(self, source: str = 'manual') -> NewPatient:
        return NewPatient(
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            phone=self.phone,
            source=source,
        )


class CreateAppointmentRequest(BaseModel):
    lead_id: int | None = None
    new_patient: NewPatientRequest | None = None
    date: date
    start_time: time
    duration_minutes: int | None = None
    source: str = 'call_center'
    notes: str | None = None
    hold: bool = False
    hold_minutes: int | None = None

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        if value is not None and not 0 < value <= MAX_DURATION_MINUTES:
            raise ValueError(f'Duration must be between 1 and {MAX_DURATION_MINUTES} minutes.')
        return value

    @field_validator('source')
    @classmethod
    def validate_source(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_SOURCES:
            raise ValueError('Invalid appointment source.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_optional_text(value, MAX_NOTES_LENGTH)

    @field_validator('hold_minutes')
    @classmethod
    def validate_hold_minutes(cls, value: int | None) -> int | None:
        if value is not None and not 0 < value <= MAX_HOLD_MINUTES:
            raise ValueError(f'Hold must last between 1 and {MAX_HOLD_MINUTES} minutes.')
        return value

    @model_validator(mode='after')
    def require_patient(self) -> 'CreateAppointmentRequest':
        if (self.lead_id is None) == (self.new_patient is None):
            raise ValueError('Provide either lead_id or new_patient.')
        return self


class AppointmentResponse(BaseModel):
    id: int
    practice_id: int
    lead_id: int
    first_name: str | None = None
    last_name: str | None = None
    start_time: datetime
    end_time: datetime
    status: str
    expires_at: datetime | None = None
    source: str | None = None
    created_by: str | None = None
    notes: str | None = None


class LeadResponse(BaseModel):
    id: int
    practice_id: int
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    source: str | None = None

    class Config:
        from_attributes = True


def serialize_appointment(appointment: Appointment) -> AppointmentResponse:
    lead = appointment.lead
    return AppointmentResponse(
        id=appointment.id,
        practice_id=appointment.practice_id,
        lead_id=appointment.lead_id,
        first_name=lead.first_name if lead is not None else None,
        last_name=lead.last_name if lead is not None else None,
        start_time=as_utc(appointment.start_time),
        end_time=as_utc(appointment.end_time),
        status=appointment.status or 'scheduled',
        expires_at=as_utc(appointment.expires_at) if appointment.expires_at else None,
        source=appointment.source,
        created_by=appointment.created_by,
        notes=appointment.notes,
    )


# Appointments

@router.get('/{practice_id}/appointments', response_model=list[AppointmentResponse])
def list_appointments(
    practice_id: int,
    start_date: date = Query(...),
    end_date: date = Query(...),
    include_canceled: bool = Query(default=False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        appointments = BookingService(db).list_appointments(practice_id, start_date, end_date)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [
        serialize_appointment(appointment)
        for appointment in appointments
        if include_canceled or appointment.status != 'canceled'
    ]


@router.post('/{practice_id}/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    practice_id: int,
    data: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        appointment = BookingService(db).book(
            practice_id,
            data.date,
            time_to_minutes(data.start_time),
            duration_minutes=data.duration_minutes,
            lead_id=data.lead_id,
            new_patient=data.new_patient.to_new_patient(data.source) if data.new_patient else None,
            source=data.source,
            created_by=current_user.email,
            notes=data.notes,
            hold=data.hold,
            hold_minutes=data.hold_minutes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return serialize_appointment(appointment)


@router.post('/{practice_id}/appointments/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_hold(
    practice_id: int,
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        appointment = BookingService(db).confirm_hold(practice_id, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return serialize_appointment(appointment)


@router.post('/{practice_id}/appointments/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    practice_id: int,
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        appointment = BookingService(db).cancel_appointment(practice_id, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return serialize_appointment(appointment)


# Leads

@router.get('/{practice_id}/leads/eligible', response_model=list[LeadResponse])
def list_eligible_leads(
    practice_id: int,
    search: str | None = Query(default=None, max_length=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        return BookingService(db).eligible_leads(practice_id, normalize_optional_text(search))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{practice_id}/leads', response_model=LeadResponse, status_code=status.HTTP_201_CREATED)
def create_lead(
    practice_id: int,
    data: NewPatientRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        return BookingService(db).create_lead(practice_id, data.to_new_patient())
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
