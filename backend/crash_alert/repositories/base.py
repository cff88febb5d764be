"""
Crash Alert - Facility Repository Interface

Each FacilityCategory is served by one repository adapter. Adapters differ in
backing store but share the haversine distance model from core.geo.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import List, Optional, Protocol, runtime_checkable

from crash_alert.core.types import Coordinate, Facility, FacilityCategory, NearbyFacility


@runtime_checkable
class FacilityRepository(Protocol):
    """
    Protocol for per-category facility storage.

    Implementations must be safe for concurrent use from many requests.
    """

    @property
    @abstractmethod
    def category(self) -> FacilityCategory:
        """The single category this repository serves."""
        ...

    @abstractmethod
    async def find_nearby(
        self,
        coordinate: Coordinate,
        category: FacilityCategory,
        limit: int,
        max_radius_meters: Optional[float] = None,
    ) -> List[NearbyFacility]:
        """
        Find facilities closest to a coordinate.

        Args:
            coordinate: Search center
            category: Must equal the repository's category
            limit: Maximum number of results (>= 1)
            max_radius_meters: Great-circle radius bound, None for unbounded

        Returns:
            Facilities sorted by non-decreasing distance, at most `limit`.
            Empty when nothing is within range.

        Raises:
            RepositoryUnavailable: On storage/connection failure
        """
        ...

    @abstractmethod
    async def add(self, facility: Facility) -> Facility:
        """Store a facility of this repository's category."""
        ...

    @abstractmethod
    async def list_facilities(self, limit: int = 100, offset: int = 0) -> List[Facility]:
        """List facilities ordered by name."""
        ...

    @abstractmethod
    async def count(self) -> int:
        """Number of stored facilities."""
        ...


def check_query(repository: FacilityRepository, category: FacilityCategory, limit: int) -> None:
    """Argument checks shared by every adapter."""
    if category != repository.category:
        raise ValueError(
            f"{type(repository).__name__} serves {repository.category.value}, "
            f"not {category.value}"
        )
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")


def check_facility(repository: FacilityRepository, facility: Facility) -> None:
    if facility.category != repository.category:
        raise ValueError(
            f"cannot store {facility.category.value} facility in "
            f"{repository.category.value} repository"
        )
