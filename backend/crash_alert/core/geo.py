"""
Geodesy helpers for facility search.

Every distance in the system is a haversine great-circle distance on a
sphere of the IUGG mean Earth radius. Repositories use the bounding box only
to narrow candidates; ranking and radius filtering always use haversine_m.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from crash_alert.core.types import Coordinate

EARTH_RADIUS_M = 6371008.8


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """
    Calculate great-circle distance between two coordinates in meters.
    Uses the Haversine formula.
    """
    lat1_r = math.radians(a.latitude)
    lat2_r = math.radians(b.latitude)
    dlat = math.radians(b.latitude - a.latitude)
    dlng = math.radians(b.longitude - a.longitude)

    h = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2)
    # float error can push h a hair above 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


@dataclass(frozen=True)
class BoundingBox:
    """
    Degree box enclosing a search circle.

    min_lng/max_lng are None when the circle reaches a pole or crosses the
    antimeridian; callers then filter on latitude only.
    """
    min_lat: float
    max_lat: float
    min_lng: Optional[float] = None
    max_lng: Optional[float] = None

    @property
    def filters_longitude(self) -> bool:
        return self.min_lng is not None and self.max_lng is not None


def bounding_box(center: Coordinate, radius_m: float) -> BoundingBox:
    """Smallest lat/lng box that contains every point within radius_m of center."""
    if radius_m < 0:
        raise ValueError(f"radius_m must be >= 0, got {radius_m}")

    angular = radius_m / EARTH_RADIUS_M
    delta_lat = math.degrees(angular)
    min_lat = center.latitude - delta_lat
    max_lat = center.latitude + delta_lat

    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(min_lat=max(min_lat, -90.0), max_lat=min(max_lat, 90.0))

    # Longitude span at the circle's widest point
    ratio = math.sin(angular) / math.cos(math.radians(center.latitude))
    if ratio >= 1.0:
        return BoundingBox(min_lat=min_lat, max_lat=max_lat)
    delta_lng = math.degrees(math.asin(ratio))
    min_lng = center.longitude - delta_lng
    max_lng = center.longitude + delta_lng
    if min_lng < -180.0 or max_lng > 180.0:
        return BoundingBox(min_lat=min_lat, max_lat=max_lat)
    return BoundingBox(min_lat=min_lat, max_lat=max_lat, min_lng=min_lng, max_lng=max_lng)
