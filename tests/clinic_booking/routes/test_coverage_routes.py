import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic_booking.models.practice import Practice
from clinic_booking.models.user import User
from clinic_booking.models.zip_geo import ZipGeo
from clinic_booking.routes.coverage_routes import (
    OverlapRequest,
    get_practice_area,
    list_practice_overlaps,
    resolve_routing,
)

ADMIN = User(email='admin@clinic.test', role='admin')


@pytest.fixture(autouse=True)
def skip_schema_check(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('clinic_booking.routes.coverage_routes.ensure_database_ready', lambda: None)


@pytest.fixture
def practices(scheduling_db, practice):
    scheduling_db.add_all([
        Practice(id=2, name='Uptown', lat=40.05, lng=-75.0, radius_miles=10, status='pending'),
        Practice(id=3, name='Far Away', lat=40.7237, lng=-75.0, radius_miles=10, status='active'),
        Practice(id=4, name='Paused', lat=40.01, lng=-75.0, radius_miles=10, status='paused'),
        ZipGeo(zip='19104', lat=40.0, lng=-75.0),
    ])
    scheduling_db.commit()


@pytest.mark.parametrize(
    'payload',
    [
        {'lat': 91, 'lng': -75.0, 'radius_miles': 10},
        {'lat': 40.0, 'lng': -181, 'radius_miles': 10},
        {'lat': 40.0, 'lng': -75.0, 'radius_miles': 0},
    ],
)
def test_overlap_request_validates_coordinates(payload: dict) -> None:
    with pytest.raises(ValidationError):
        OverlapRequest(**payload)


def test_overlaps_include_pending_and_skip_paused(scheduling_db, practices) -> None:
    overlaps = list_practice_overlaps(
        data=OverlapRequest(lat=40.0, lng=-75.0, radius_miles=10, exclude_practice_id=1),
        db=scheduling_db,
        current_user=ADMIN,
    )

    assert [overlap.practice_id for overlap in overlaps] == [2]
    assert overlaps[0].status == 'pending'


def test_routing_with_single_active_match(scheduling_db, practices) -> None:
    result = resolve_routing(zip_code='19104', db=scheduling_db, current_user=ADMIN)

    assert result.outcome == 'assigned'
    assert result.practice_id == 1


def test_routing_unknown_zip(scheduling_db, practices) -> None:
    result = resolve_routing(zip_code='99999', db=scheduling_db, current_user=ADMIN)

    assert result.outcome == 'designation'
    assert result.reason == 'zip_not_found'


def test_practice_area(scheduling_db, practices) -> None:
    area = get_practice_area(practice_id=1, db=scheduling_db, current_user=ADMIN)

    assert len(area.ring) == 65
    assert area.ring[0] == area.ring[-1]
    assert len(area.bbox) == 4
    assert area.bbox[1] < 40.0 < area.bbox[3]


def test_practice_area_for_unknown_practice(scheduling_db, practices) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_practice_area(practice_id=99, db=scheduling_db, current_user=ADMIN)

    assert exception_info.value.status_code == 404
