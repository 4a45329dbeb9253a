"""Practice service areas: circle polygons, overlap detection and ZIP routing.

Circles are approximated as N-point polygons with an equirectangular
projection: the longitude step is scaled by ``cos(latitude)``. The
approximation degrades near the poles and across the antimeridian; those
service areas are not supported.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable

EARTH_RADIUS_MILES = 3958.8
MILES_PER_DEGREE_LAT = math.pi * EARTH_RADIUS_MILES / 180

ASSIGNED = 'assigned'
DESIGNATION = 'designation'

Point = tuple[float, float]  # (lng, lat), GeoJSON order


@dataclass(frozen=True)
class ServiceArea:
    practice_id: int | None
    lat: float
    lng: float
    radius_miles: float
    name: str | None = None
    status: str | None = None

    @classmethod
    def from_model(cls, practice) -> 'ServiceArea':
        return cls(
            practice_id=practice.id,
            lat=practice.lat,
            lng=practice.lng,
            radius_miles=float(practice.radius_miles or 0),
            name=practice.name,
            status=practice.status,
        )


@dataclass(frozen=True)
class CoverageOverlap:
    practice_id: int | None
    name: str | None
    status: str | None
    distance_miles: float


@dataclass
class RoutingResult:
    outcome: str
    reason: str
    practice_id: int | None = None
    distance_miles: float | None = None
    snapshot: dict = field(default_factory=dict)


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def circle_polygon(lat: float, lng: float, radius_miles: float, steps: int = 64) -> list[Point]:
    """Closed ring of ``steps`` vertices (first point repeated at the end)."""
    if steps < 3:
        raise ValueError('A circle polygon needs at least 3 steps.')
    d_lat = radius_miles / MILES_PER_DEGREE_LAT
    d_lng = d_lat / math.cos(math.radians(lat))
    ring = []
    for index in range(steps):
        theta = 2 * math.pi * index / steps
        ring.append((lng + d_lng * math.cos(theta), lat + d_lat * math.sin(theta)))
    ring.append(ring[0])
    return ring


def bounding_box(ring: list[Point]) -> tuple[float, float, float, float]:
    lngs = [point[0] for point in ring]
    lats = [point[1] for point in ring]
    return min(lngs), min(lats), max(lngs), max(lats)


def _orientation(a: Point, b: Point, c: Point) -> float:
    return (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])


def _on_segment(a: Point, b: Point, c: Point) -> bool:
    return min(a[0], b[0]) <= c[0] <= max(a[0], b[0]) and min(a[1], b[1]) <= c[1] <= max(a[1], b[1])


def _segments_intersect(p1: Point, p2: Point, q1: Point, q2: Point) -> bool:
    d1 = _orientation(q1, q2, p1)
    d2 = _orientation(q1, q2, p2)
    d3 = _orientation(p1, p2, q1)
    d4 = _orientation(p1, p2, q2)
    if ((d1 > 0 > d2) or (d1 < 0 < d2)) and ((d3 > 0 > d4) or (d3 < 0 < d4)):
        return True
    return (
        (d1 == 0 and _on_segment(q1, q2, p1))
        or (d2 == 0 and _on_segment(q1, q2, p2))
        or (d3 == 0 and _on_segment(p1, p2, q1))
        or (d4 == 0 and _on_segment(p1, p2, q2))
    )


def point_in_polygon(point: Point, ring: list[Point]) -> bool:
    x, y = point
    inside = False
    for (x1, y1), (x2, y2) in zip(ring, ring[1:]):
        if (y1 > y) != (y2 > y):
            crossing = x1 + (y - y1) * (x2 - x1) / (y2 - y1)
            if x < crossing:
                inside = not inside
    return inside


def polygons_intersect(first: list[Point], second: list[Point]) -> bool:
    first_box = bounding_box(first)
    second_box = bounding_box(second)
    if (
        first_box[2] < second_box[0]
        or second_box[2] < first_box[0]
        or first_box[3] < second_box[1]
        or second_box[3] < first_box[1]
    ):
        return False

    for a1, a2 in zip(first, first[1:]):
        for b1, b2 in zip(second, second[1:]):
            if _segments_intersect(a1, a2, b1, b2):
                return True

    return point_in_polygon(first[0], second) or point_in_polygon(second[0], first)


def area_polygon(area: ServiceArea, steps: int = 64) -> list[Point]:
    return circle_polygon(area.lat, area.lng, area.radius_miles, steps)


def find_overlaps(
    candidate: ServiceArea,
    others: Iterable[ServiceArea],
    steps: int = 64,
) -> list[CoverageOverlap]:
    """Every other area whose circle intersects the candidate's, nearest first."""
    if candidate.radius_miles <= 0:
        return []

    candidate_ring = area_polygon(candidate, steps)
    overlaps = []
    for other in others:
        if other.practice_id is not None and other.practice_id == candidate.practice_id:
            continue
        if other.lat is None or other.lng is None or other.radius_miles <= 0:
            continue
        if polygons_intersect(candidate_ring, area_polygon(other, steps)):
            distance = haversine_miles(candidate.lat, candidate.lng, other.lat, other.lng)
            overlaps.append(CoverageOverlap(other.practice_id, other.name, other.status, round(distance, 2)))

    overlaps.sort(key=lambda overlap: overlap.distance_miles)
    return overlaps


def resolve_routing(
    zip_code: str,
    zip_point: tuple[float, float] | None,
    practices: Iterable[ServiceArea],
    buffer_miles: float,
    near_miss_miles: float,
) -> RoutingResult:
    """Route a new patient from a ZIP centroid ``(lat, lng)`` to a single practice."""
    if zip_point is None:
        return RoutingResult(DESIGNATION, 'zip_not_found', snapshot={'zip': zip_code, 'reason_code': 'zip_not_found'})

    zip_lat, zip_lng = zip_point
    matches = []
    near_misses = []
    evaluated = []

    for area in practices:
        if area.lat is None or area.lng is None:
            continue
        distance = haversine_miles(zip_lat, zip_lng, area.lat, area.lng)
        effective_radius = area.radius_miles + buffer_miles
        threshold = effective_radius + near_miss_miles
        evaluated.append({
            'id': area.practice_id,
            'name': area.name,
            'distance': round(distance, 2),
            'in_radius': distance <= effective_radius,
            'effective_radius': effective_radius,
            'near_miss_threshold': threshold,
        })
        if distance <= effective_radius:
            matches.append((distance, area))
        elif distance <= threshold:
            near_misses.append((distance, area))

    matches.sort(key=lambda match: match[0])
    near_misses.sort(key=lambda miss: miss[0])

    if len(matches) == 1:
        outcome, reason = ASSIGNED, 'in_radius'
    elif matches:
        outcome, reason = DESIGNATION, 'multiple_providers_match'
    elif near_misses:
        outcome, reason = DESIGNATION, 'near_miss'
    else:
        outcome, reason = DESIGNATION, 'no_provider_in_radius'

    snapshot = {
        'zip': zip_code,
        'zip_geo': {'lat': zip_lat, 'lng': zip_lng},
        'outcome': outcome,
        'reason_code': reason,
        'buffer_miles': buffer_miles,
        'near_miss_miles': near_miss_miles,
        'matches': [{'id': area.practice_id, 'distance': round(d, 2)} for d, area in matches],
        'near_misses': [{'id': area.practice_id, 'distance': round(d, 2)} for d, area in near_misses],
        'evaluated': sorted(evaluated, key=lambda item: item['distance'])[:5],
    }

    if outcome == ASSIGNED:
        distance, area = matches[0]
        return RoutingResult(outcome, reason, area.practice_id, round(distance, 2), snapshot)
    return RoutingResult(outcome, reason, snapshot=snapshot)
