from datetime import time

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from clinic_booking.core.errors import SchedulingError, TransientBackendError
from clinic_booking.database import SessionLocal, ensure_scheduling_schema
from clinic_booking.scheduling.timezones import time_to_minutes

MAX_NOTES_LENGTH = 600


def ensure_database_ready() -> None:
    try:
        ensure_scheduling_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=TransientBackendError().to_detail(),
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def to_http_exception(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


def time_to_minutes_or_none(value: time | None) -> int | None:
    return time_to_minutes(value) if value is not None else None


def normalize_optional_text(value: str | None, max_length: int | None = None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if max_length is not None and len(normalized) > max_length:
        raise ValueError(f'Must be {max_length} characters or fewer.')

    return normalized
