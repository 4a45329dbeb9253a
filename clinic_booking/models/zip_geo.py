"""ZIP centroid model definitions."""

from sqlalchemy import Column, Float, String
from clinic_booking.database import Base


class ZipGeo(Base):
    """Represents the centroid of a US ZIP code."""
    __tablename__ = "zip_geo"

    zip = Column(String, primary_key=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
