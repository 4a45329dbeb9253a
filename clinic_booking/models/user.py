"""Staff user model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from clinic_booking.database import Base


class User(Base):
    """Represents a staff member of a practice or the central booking team."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    role = Column(String)  # admin/provider
    practice_id = Column(Integer, ForeignKey("practices.id"), nullable=True)
