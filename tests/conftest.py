import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_booking.database import Base  # noqa: E402
from clinic_booking.models.appointment import Appointment  # noqa: E402
from clinic_booking.models.availability import AvailabilityBlock, AvailabilityException  # noqa: E402
from clinic_booking.models.lead import Lead  # noqa: E402
from clinic_booking.models.practice import Practice  # noqa: E402
from clinic_booking.models.user import User  # noqa: E402
from clinic_booking.models.zip_geo import ZipGeo  # noqa: E402

TABLES = [
    Practice.__table__,
    User.__table__,
    Lead.__table__,
    AvailabilityBlock.__table__,
    AvailabilityException.__table__,
    Appointment.__table__,
    ZipGeo.__table__,
]


@pytest.fixture
def session_factory():
    engine = create_engine('sqlite:///:memory:')
    Base.metadata.create_all(bind=engine, tables=TABLES)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))
        engine.dispose()


@pytest.fixture
def scheduling_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def practice(scheduling_db):
    practice = Practice(
        id=1,
        name='Main Street Clinic',
        lat=40.0,
        lng=-75.0,
        radius_miles=10,
        status='active',
        timezone='America/New_York',
    )
    scheduling_db.add(practice)
    scheduling_db.commit()
    return practice
