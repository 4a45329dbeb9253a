"""Coverage checks and new-patient routing over stored practices."""

import logging

from sqlalchemy.orm import Session

from clinic_booking.core import config
from clinic_booking.core.errors import ValidationError
from clinic_booking.scheduling.coverage import (
    CoverageOverlap,
    RoutingResult,
    ServiceArea,
    area_polygon,
    bounding_box,
    find_overlaps,
    resolve_routing,
)
from clinic_booking.storage import SchedulingStore, unit_of_work

logger = logging.getLogger(__name__)

OVERLAP_STATUSES = ('active', 'pending')
ROUTING_STATUSES = ('active',)


class CoverageService:
    def __init__(self, db: Session):
        self.db = db
        self.store = SchedulingStore(db)

    def list_practice_overlaps(
        self,
        lat: float,
        lng: float,
        radius_miles: float,
        exclude_practice_id: int | None = None,
    ) -> list[CoverageOverlap]:
        if not -90 <= lat <= 90 or not -180 <= lng <= 180:
            raise ValidationError('Coordinates are out of range.')
        if radius_miles < 0:
            raise ValidationError('Radius must not be negative.')

        candidate = ServiceArea(exclude_practice_id, lat, lng, radius_miles)
        with unit_of_work(self.db):
            others = [
                ServiceArea.from_model(practice)
                for practice in self.store.list_practices_for_coverage(OVERLAP_STATUSES, exclude_practice_id)
            ]
        return find_overlaps(candidate, others, steps=config.COVERAGE_POLYGON_STEPS)

    def resolve_routing(self, zip_code: str) -> RoutingResult:
        zip_code = (zip_code or '').strip()
        if not zip_code:
            raise ValidationError('ZIP code is required.')

        with unit_of_work(self.db):
            zip_point = self.store.get_zip_point(zip_code)
            practices = [
                ServiceArea.from_model(practice)
                for practice in self.store.list_practices_for_coverage(ROUTING_STATUSES)
            ]

        result = resolve_routing(
            zip_code,
            zip_point,
            practices,
            buffer_miles=config.ROUTING_RADIUS_BUFFER_MILES,
            near_miss_miles=config.ROUTING_NEAR_MISS_MILES,
        )
        logger.info('Routed ZIP %s: %s (%s)', zip_code, result.outcome, result.reason)
        return result

    def practice_area(self, practice_id: int) -> tuple[list[tuple[float, float]], tuple[float, float, float, float]]:
        """Closed ``[lng, lat]`` ring of the practice's service circle and its bounding box."""
        with unit_of_work(self.db):
            practice = self.store.get_practice(practice_id)
            if practice.lat is None or practice.lng is None:
                raise ValidationError('Practice has no coordinates.')
            area = ServiceArea.from_model(practice)

        ring = area_polygon(area, steps=config.COVERAGE_POLYGON_STEPS)
        return ring, bounding_box(ring)
