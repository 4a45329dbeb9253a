from datetime import date, time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic_booking.models.lead import Lead
from clinic_booking.models.user import User
from clinic_booking.routes.booking_routes import (
    CreateAppointmentRequest,
    NewPatientRequest,
    cancel_appointment,
    confirm_hold,
    create_appointment,
    create_lead,
    list_appointments,
    list_eligible_leads,
)
from clinic_booking.services.schedule_service import ScheduleService

STAFF = User(email='desk@clinic.test', role='provider', practice_id=1)
MONDAY_DATE = date(2024, 6, 3)


@pytest.fixture(autouse=True)
def skip_schema_check(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('clinic_booking.routes.booking_routes.ensure_database_ready', lambda: None)


@pytest.fixture
def open_monday(scheduling_db, practice):
    ScheduleService(scheduling_db).add_block(1, 1, 9 * 60, 12 * 60, 'available')


def _new_patient(**overrides) -> NewPatientRequest:
    fields = {'first_name': 'Ada', 'last_name': 'Lovelace', 'phone': '555-0100'}
    fields.update(overrides)
    return NewPatientRequest(**fields)


def test_new_patient_request_normalizes_contact() -> None:
    request = NewPatientRequest(first_name=' Ada ', last_name='Lovelace', email=' ADA@Example.com ', phone='  ')

    assert request.first_name == 'Ada'
    assert request.email == 'ada@example.com'
    assert request.phone is None


def test_new_patient_request_requires_contact() -> None:
    with pytest.raises(ValidationError):
        NewPatientRequest(first_name='Ada', last_name='Lovelace')


@pytest.mark.parametrize(
    'overrides',
    [
        {},
        {'lead_id': 1, 'new_patient': {'first_name': 'Ada', 'last_name': 'Lovelace', 'phone': '555-0100'}},
        {'lead_id': 1, 'source': 'fax'},
        {'lead_id': 1, 'hold_minutes': 0},
        {'lead_id': 1, 'notes': 'x' * 601},
    ],
)
def test_create_appointment_request_rejects_invalid_input(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        CreateAppointmentRequest(date=MONDAY_DATE, start_time=time(9, 0), **overrides)


def test_book_new_patient_and_list(scheduling_db, open_monday) -> None:
    request = CreateAppointmentRequest(
        new_patient=_new_patient(),
        date=MONDAY_DATE,
        start_time=time(9, 0),
        notes='  First visit  ',
    )

    booked = create_appointment(practice_id=1, data=request, db=scheduling_db, current_user=STAFF)
    listed = list_appointments(
        practice_id=1,
        start_date=MONDAY_DATE,
        end_date=MONDAY_DATE,
        include_canceled=False,
        db=scheduling_db,
        current_user=STAFF,
    )

    assert booked.first_name == 'Ada'
    assert booked.notes == 'First visit'
    assert booked.created_by == 'desk@clinic.test'
    assert booked.start_time.isoformat() == '2024-06-03T13:00:00+00:00'
    assert [appointment.id for appointment in listed] == [booked.id]


def test_booking_taken_slot_returns_overlap(scheduling_db, open_monday) -> None:
    create_appointment(
        practice_id=1,
        data=CreateAppointmentRequest(new_patient=_new_patient(), date=MONDAY_DATE, start_time=time(9, 0)),
        db=scheduling_db,
        current_user=STAFF,
    )

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            practice_id=1,
            data=CreateAppointmentRequest(
                new_patient=_new_patient(first_name='Grace', phone='555-0101'),
                date=MONDAY_DATE,
                start_time=time(9, 15),
            ),
            db=scheduling_db,
            current_user=STAFF,
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['error'] == 'overlap'


def test_booking_outside_availability_returns_422(scheduling_db, open_monday) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            practice_id=1,
            data=CreateAppointmentRequest(new_patient=_new_patient(), date=MONDAY_DATE, start_time=time(14, 0)),
            db=scheduling_db,
            current_user=STAFF,
        )

    assert exception_info.value.status_code == 422
    assert exception_info.value.detail['error'] == 'outside_availability'


def test_confirm_then_cancel(scheduling_db, open_monday) -> None:
    hold = create_appointment(
        practice_id=1,
        data=CreateAppointmentRequest(new_patient=_new_patient(), date=MONDAY_DATE, start_time=time(9, 0), hold=True),
        db=scheduling_db,
        current_user=STAFF,
    )
    assert hold.status == 'hold'
    assert hold.expires_at is not None

    confirmed = confirm_hold(practice_id=1, appointment_id=hold.id, db=scheduling_db, current_user=STAFF)
    assert confirmed.status == 'scheduled'

    with pytest.raises(HTTPException) as exception_info:
        confirm_hold(practice_id=1, appointment_id=hold.id, db=scheduling_db, current_user=STAFF)
    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['error'] == 'not_a_hold'

    canceled = cancel_appointment(practice_id=1, appointment_id=hold.id, db=scheduling_db, current_user=STAFF)
    assert canceled.status == 'canceled'

    listed = list_appointments(
        practice_id=1,
        start_date=MONDAY_DATE,
        end_date=MONDAY_DATE,
        include_canceled=False,
        db=scheduling_db,
        current_user=STAFF,
    )
    assert listed == []


def test_create_lead_conflict_returns_existing_id(scheduling_db, practice) -> None:
    created = create_lead(practice_id=1, data=_new_patient(), db=scheduling_db, current_user=STAFF)

    with pytest.raises(HTTPException) as exception_info:
        create_lead(practice_id=1, data=_new_patient(first_name='Augusta'), db=scheduling_db, current_user=STAFF)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['error'] == 'lead_exists'
    assert exception_info.value.detail['lead_id'] == created.id


def test_list_eligible_leads(scheduling_db, practice) -> None:
    scheduling_db.add_all([
        Lead(practice_id=1, first_name='Ada', last_name='Lovelace', phone='555-0100'),
        Lead(practice_id=1, first_name='Grace', last_name='Hopper', phone='555-0101'),
    ])
    scheduling_db.commit()

    leads = list_eligible_leads(practice_id=1, search=' hopper ', db=scheduling_db, current_user=STAFF)

    assert [lead.first_name for lead in leads] == ['Grace']


def test_other_practice_staff_are_forbidden(scheduling_db, practice) -> None:
    outsider = User(email='other@clinic.test', role='provider', practice_id=2)

    with pytest.raises(HTTPException) as exception_info:
        list_eligible_leads(practice_id=1, search=None, db=scheduling_db, current_user=outsider)

    assert exception_info.value.status_code == 403
