"""Availability model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, Time
from clinic_booking.database import Base

BLOCK_TYPES = ('available', 'new_patient', 'follow_up')


class AvailabilityBlock(Base):
    """Represents a recurring weekly open-hours interval for one weekday.

    ``day_of_week`` is 0 for Sunday through 6 for Saturday.
    """
    __tablename__ = "availability_blocks"

    id = Column(Integer, primary_key=True)
    practice_id = Column(Integer, ForeignKey("practices.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    type = Column(String, default='new_patient')


class AvailabilityException(Base):
    """Represents a one-time closure on a specific practice-local date.

    A null ``start_time``/``end_time`` pair closes the whole day.
    """
    __tablename__ = "availability_exceptions"

    id = Column(Integer, primary_key=True)
    practice_id = Column(Integer, ForeignKey("practices.id"), nullable=False)
    exception_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    is_available = Column(Boolean, default=False)
    reason = Column(String, nullable=True)
