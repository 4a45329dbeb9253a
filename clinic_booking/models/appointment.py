"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from clinic_booking.database import Base

APPOINTMENT_STATUSES = ('pending', 'hold', 'scheduled', 'show', 'no_show', 'canceled')
APPOINTMENT_SOURCES = ('call_center', 'website', 'ai_agent', 'provider_portal')


class Appointment(Base):
    """Represents a booked or held appointment.

    ``start_time``, ``end_time`` and ``expires_at`` are naive UTC instants.
    """
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    practice_id = Column(Integer, ForeignKey("practices.id"), nullable=False)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, default='scheduled')
    expires_at = Column(DateTime, nullable=True)
    source = Column(String, default='call_center')
    created_by = Column(String)
    notes = Column(String)

    lead = relationship("Lead", lazy="joined")
