from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clinic_booking.auth.dependencies import get_current_user, require_practice_access
from clinic_booking.core.errors import SchedulingError
from clinic_booking.models.user import User
from clinic_booking.routes.common import ensure_database_ready, get_db, to_http_exception
from clinic_booking.services.coverage_service import CoverageService

router = APIRouter(tags=['coverage'])


class OverlapRequest(BaseModel):
    lat: float
    lng: float
    radius_miles: float
    exclude_practice_id: int | None = None

    @field_validator('lat')
    @classmethod
    def validate_lat(cls, value: float) -> float:
        if not -90 <= value <= 90:
            raise ValueError('Latitude must be between -90 and 90.')
        return value

    @field_validator('lng')
    @classmethod
    def validate_lng(cls, value: float) -> float:
        if not -180 <= value <= 180:
            raise ValueError('Longitude must be between -180 and 180.')
        return value

    @field_validator('radius_miles')
    @classmethod
    def validate_radius(cls, value: float) -> float:
        if value <= 0:
            raise ValueError('Radius must be positive.')
        return value


class OverlapResponse(BaseModel):
    practice_id: int | None
    name: str | None = None
    status: str | None = None
    distance_miles: float

    class Config:
        from_attributes = True


class RoutingResponse(BaseModel):
    outcome: str
    reason: str
    practice_id: int | None = None
    distance_miles: float | None = None
    snapshot: dict

    class Config:
        from_attributes = True


class AreaResponse(BaseModel):
    practice_id: int
    ring: list[list[float]]
    bbox: list[float]


@router.post('/overlaps', response_model=list[OverlapResponse])
def list_practice_overlaps(
    data: OverlapRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if data.exclude_practice_id is not None:
        require_practice_access(data.exclude_practice_id, current_user)
    ensure_database_ready()

    try:
        return CoverageService(db).list_practice_overlaps(
            data.lat,
            data.lng,
            data.radius_miles,
            exclude_practice_id=data.exclude_practice_id,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/routing', response_model=RoutingResponse)
def resolve_routing(
    zip_code: str = Query(..., alias='zip', min_length=3, max_length=10),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    del current_user
    ensure_database_ready()

    try:
        return CoverageService(db).resolve_routing(zip_code)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/practices/{practice_id}/area', response_model=AreaResponse)
def get_practice_area(
    practice_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_practice_access(practice_id, current_user)
    ensure_database_ready()

    try:
        ring, bbox = CoverageService(db).practice_area(practice_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return AreaResponse(
        practice_id=practice_id,
        ring=[[lng, lat] for lng, lat in ring],
        bbox=list(bbox),
    )
