"""Practice model definitions."""

from sqlalchemy import Column, Float, Integer, String
from clinic_booking.database import Base

PRACTICE_STATUSES = ('pending', 'active', 'paused')


class Practice(Base):
    """Represents a clinic with a service area and a local timezone."""
    __tablename__ = "practices"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    address = Column(String)
    lat = Column(Float)
    lng = Column(Float)
    radius_miles = Column(Float, default=10)
    status = Column(String, default='pending')
    timezone = Column(String, default='America/New_York')
