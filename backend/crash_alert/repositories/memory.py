"""
Crash Alert - In-Memory Facility Repository

Facilities are kept in a list sorted by latitude. A proximity query bisects
to the bounding-box latitude band, filters by longitude when the box allows
it, then ranks the survivors by haversine distance.
"""

from __future__ import annotations

import bisect
import logging
from threading import Lock
from typing import Iterable, List, Optional, Tuple

from crash_alert.core.geo import bounding_box, haversine_m
from crash_alert.core.types import Coordinate, Facility, FacilityCategory, NearbyFacility
from crash_alert.repositories.base import check_facility, check_query

logger = logging.getLogger(__name__)


class InMemoryFacilityRepository:
    """
    In-memory implementation of FacilityRepository for one category.

    Thread-safe. Used for development, tests and seeded deployments.
    """

    def __init__(
        self,
        category: FacilityCategory,
        facilities: Iterable[Facility] = (),
    ):
        self._category = category
        self._lock = Lock()
        # Parallel lists: latitude keys for bisect, facilities in the same order
        self._latitudes: List[float] = []
        self._facilities: List[Facility] = []

        for facility in facilities:
            self._insert(facility)

        logger.info(
            "InMemoryFacilityRepository initialized: category=%s, facilities=%d",
            category.value, len(self._facilities),
        )

    @property
    def category(self) -> FacilityCategory:
        return self._category

    def _insert(self, facility: Facility) -> None:
        check_facility(self, facility)
        index = bisect.bisect_right(self._latitudes, facility.location.latitude)
        self._latitudes.insert(index, facility.location.latitude)
        self._facilities.insert(index, facility)

    def _candidates(
        self,
        coordinate: Coordinate,
        max_radius_meters: Optional[float],
    ) -> List[Facility]:
        if max_radius_meters is None:
            return list(self._facilities)

        box = bounding_box(coordinate, max_radius_meters)
        lo = bisect.bisect_left(self._latitudes, box.min_lat)
        hi = bisect.bisect_right(self._latitudes, box.max_lat)
        band = self._facilities[lo:hi]
        if not box.filters_longitude:
            return band
        return [
            f for f in band
            if box.min_lng <= f.location.longitude <= box.max_lng
        ]

    async def find_nearby(
        self,
        coordinate: Coordinate,
        category: FacilityCategory,
        limit: int,
        max_radius_meters: Optional[float] = None,
    ) -> List[NearbyFacility]:
        check_query(self, category, limit)
        with self._lock:
            candidates = self._candidates(coordinate, max_radius_meters)

        ranked: List[Tuple[float, str, Facility]] = []
        for facility in candidates:
            distance = haversine_m(coordinate, facility.location)
            if max_radius_meters is not None and distance > max_radius_meters:
                continue
            ranked.append((distance, facility.id, facility))
        ranked.sort(key=lambda item: (item[0], item[1]))

        return [
            NearbyFacility(facility=facility, distance_meters=distance)
            for distance, _, facility in ranked[:limit]
        ]

    async def add(self, facility: Facility) -> Facility:
        with self._lock:
            if any(existing.id == facility.id for existing in self._facilities):
                raise ValueError(f"facility id {facility.id} already exists")
            self._insert(facility)
        logger.debug("Stored %s facility %s", self._category.value, facility.id)
        return facility

    async def list_facilities(self, limit: int = 100, offset: int = 0) -> List[Facility]:
        with self._lock:
            ordered = sorted(self._facilities, key=lambda f: (f.name, f.id))
        return ordered[offset:offset + limit]

    async def count(self) -> int:
        with self._lock:
            return len(self._facilities)
