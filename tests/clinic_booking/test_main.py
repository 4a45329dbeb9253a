from fastapi.testclient import TestClient

from clinic_booking.main import app

client = TestClient(app)


def test_root_reports_status() -> None:
    response = client.get('/')

    assert response.status_code == 200
    assert response.json() == {'status': 'Clinic Booking API Running'}


def test_practice_routes_require_a_bearer_token() -> None:
    response = client.get('/practices/1/blocks')

    assert response.status_code in (401, 403)


def test_routers_are_mounted() -> None:
    paths = app.openapi()['paths']

    assert '/practices/{practice_id}/blocks/toggle' in paths
    assert '/practices/{practice_id}/appointments/{appointment_id}/confirm' in paths
    assert '/coverage/routing' in paths
    assert '/auth/me' in paths
