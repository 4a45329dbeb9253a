"""Lead model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from clinic_booking.database import Base


class Lead(Base):
    """Represents a patient contact record."""
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True)
    practice_id = Column(Integer, ForeignKey("practices.id"), index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String)
    phone = Column(String)
    zip = Column(String)
    source = Column(String, default='manual')

    @property
    def display_name(self) -> str:
        return f'{self.first_name or ""} {self.last_name or ""}'.strip()
