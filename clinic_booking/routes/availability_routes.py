from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clinic_booking.auth.dependencies import get_current_user, require_practice_access
from clinic_booking.core import config
from clinic_booking.core.errors import SchedulingError
from clinic_booking.models.availability import BLOCK_TYPES
from clinic_booking.models.user import User
from clinic_booking.routes.common import (
    ensure_database_ready,
    get_db,
    normalize_optional_text,
    time_to_minutes_or_none,
    to_http_exception,
)
from clinic_booking.scheduling.timezones import format_minutes, time_to_minutes, week_dates
from clinic_booking.services.schedule_service import ScheduleService

router = APIRouter(tags=['availability'])

MAX_REASON_LENGTH = 200


def _normalize_block_type(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in BLOCK_TYPES:
        raise ValueError(f"Block type must be one of: {', '.join(BLOCK_TYPES)}.")
    return normalized


def _validate_day_of_week(value: int) -> int:
    if not 0 <= value <= 6:
        raise ValueError('day_of_week must be between 0 (Sunday) and 6 (Saturday).')
    return value


class CreateBlockRequest(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time
    type: str = 'available'

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, value: int) -> int:
        return _validate_day_of_week(value)

    @field_validator('type')
    @classmethod
    def validate_type(cls, value: str) -> str:
        return _normalize_block_type(value)


class ToggleBlockRequest(BaseModel):
    day_of_week: int
    start_time: time
    duration_minutes: int | None = None
    type: str | None = None

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, value: int) -> int:
        return _validate_day_of_week(value)

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError('Duration must be positive.')
        return value

    @field_validator('type')
    @classmethod
    def validate_type(cls, value: str | None) -> str | None:
        return _normalize_block_type(value)


class BlockResponse(BaseModel):
    id: int
    practice_id: int
    day_of_week: int
    start_time: time
    end_time: time
    type: str

    class Config:
        from_attributes = True


class CreateExceptionRequest(BaseModel):
    date: date
    start_time: time | None = None
    end_time: time | None = None
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return normalize_optional_text(value, MAX_REASON_LENGTH)


class ExceptionResponse(BaseModel):
    id: int
    practice_id: int
    exception_date: date
    start_time: time | None = None
    end_time: time | None = None
    is_available: bool
    reason: str | None = None

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    start_time: str
    end_time: str
    start: datetime
    end: datetime
    status: str
    appointment_id: int | None = None
    label: str | None = None


class GridResponse(BaseModel):
    date: date
    timezone: str
    step_minutes: int
    slots: list[SlotResponse]


class WeekResponse(BaseModel):
    timezone: str
    dates: list[date]


# Weekly blocks

@router.get('/{practice_id}/blocks', response_model=list[BlockResponse])
def list_blocks(
    practice_id: int,
    day_of_week: int | None = Query(default=None, ge=0, le=6),
    block_type: str | None = Query(default=None, alias='type'),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        block_type = _normalize_block_type(block_type)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        return ScheduleService(db).list_blocks(practice_id, day_of_week, block_type)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{practice_id}/blocks', response_model=BlockResponse, status_code=status.HTTP_201_CREATED)
def create_block(
    practice_id: int,
    data: CreateBlockRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        return ScheduleService(db).add_block(
            practice_id,
            data.day_of_week,
            time_to_minutes(data.start_time),
            time_to_minutes(data.end_time),
            data.type,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{practice_id}/blocks/toggle', response_model=list[BlockResponse])
def toggle_block(
    practice_id: int,
    data: ToggleBlockRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        return ScheduleService(db).toggle(
            practice_id,
            data.day_of_week,
            time_to_minutes(data.start_time),
            duration=data.duration_minutes,
            block_type=data.type,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.delete('/{practice_id}/blocks/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_block(
    practice_id: int,
    block_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        ScheduleService(db).delete_block(practice_id, block_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


# Closures

@router.get('/{practice_id}/exceptions', response_model=list[ExceptionResponse])
def list_exceptions(
    practice_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        return ScheduleService(db).list_closures(practice_id, start_date, end_date)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{practice_id}/exceptions', response_model=ExceptionResponse, status_code=status.HTTP_201_CREATED)
def create_exception(
    practice_id: int,
    data: CreateExceptionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        return ScheduleService(db).add_closure(
            practice_id,
            data.date,
            time_to_minutes_or_none(data.start_time),
            time_to_minutes_or_none(data.end_time),
            data.reason,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.delete('/{practice_id}/exceptions/{exception_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_exception(
    practice_id: int,
    exception_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        ScheduleService(db).delete_closure(practice_id, exception_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


# Grid

@router.get('/{practice_id}/grid', response_model=GridResponse)
def get_day_grid(
    practice_id: int,
    grid_date: date | None = Query(default=None, alias='date'),
    step: int | None = Query(default=None, ge=5, le=120),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        target_date, tz_name, slots = ScheduleService(db).day_grid(practice_id, grid_date, step)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return GridResponse(
        date=target_date,
        timezone=tz_name,
        step_minutes=step or config.SLOT_STEP_MINUTES,
        slots=[
            SlotResponse(
                start_time=format_minutes(slot.start_minutes),
                end_time=format_minutes(slot.end_minutes % (24 * 60)),
                start=slot.start,
                end=slot.end,
                status=slot.status,
                appointment_id=slot.appointment_id,
                label=slot.label,
            )
            for slot in slots
        ],
    )


@router.get('/{practice_id}/week', response_model=WeekResponse)
def get_week_dates(
    practice_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        tz_name = ScheduleService(db).practice_timezone(practice_id)
        dates = week_dates(tz_name)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return WeekResponse(timezone=tz_name, dates=dates)
