"""
Crash Alert - Facility Resolver

Finds the nearest facility of each category for a crash location.

All category queries run concurrently, each bounded by its own timeout, so
end-to-end latency is that of the slowest single category. A category that
fails or times out is reported as unresolved; only when every category fails
does resolution itself fail.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Tuple, Union

from crash_alert.core.exceptions import RepositoryUnavailable, ResolutionFailed
from crash_alert.core.types import (
    Coordinate,
    FacilityCategory,
    NearbyFacility,
    Resolution,
    ResolvedFacility,
)
from crash_alert.repositories.base import FacilityRepository

logger = logging.getLogger(__name__)

QueryOutcome = Union[List[NearbyFacility], RepositoryUnavailable]


class FacilityResolver:
    """
    Orchestrates one nearest-facility query per category.

    Attributes:
        repositories: Repository per category; iteration uses canonical order
        max_radius_meters: Search radius passed to every query, None = unbounded
        timeout_seconds: Per-category query timeout
    """

    def __init__(
        self,
        repositories: Mapping[FacilityCategory, FacilityRepository],
        max_radius_meters: Optional[float] = None,
        timeout_seconds: float = 5.0,
    ):
        missing = [c.value for c in FacilityCategory.ordered() if c not in repositories]
        if missing:
            raise ValueError(f"no repository for categories: {', '.join(missing)}")
        self._repositories = dict(repositories)
        self._max_radius = max_radius_meters
        self._timeout = timeout_seconds

    @property
    def repositories(self) -> Dict[FacilityCategory, FacilityRepository]:
        return dict(self._repositories)

    @property
    def max_radius_meters(self) -> Optional[float]:
        return self._max_radius

    async def _query(self, category: FacilityCategory, coordinate: Coordinate) -> QueryOutcome:
        repository = self._repositories[category]
        try:
            return await asyncio.wait_for(
                repository.find_nearby(
                    coordinate,
                    category,
                    limit=1,
                    max_radius_meters=self._max_radius,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            return RepositoryUnavailable(category.value, f"timed out after {self._timeout}s")
        except RepositoryUnavailable as e:
            return e
        except Exception as e:
            # Any other adapter error is still only this category's failure
            return RepositoryUnavailable(category.value, f"{type(e).__name__}: {e}")

    async def resolve(self, coordinate: Coordinate) -> Resolution:
        """
        Resolve the nearest facility per category.

        Returns:
            Resolution with facilities in Hospital, Police, FireStation order

        Raises:
            ResolutionFailed: if every category query failed
        """
        categories: Tuple[FacilityCategory, ...] = FacilityCategory.ordered()
        outcomes = await asyncio.gather(
            *(self._query(category, coordinate) for category in categories)
        )

        facilities: List[ResolvedFacility] = []
        unresolved: Dict[FacilityCategory, RepositoryUnavailable] = {}
        empty: List[FacilityCategory] = []

        # gather preserves argument order, so this loop is in canonical order
        for category, outcome in zip(categories, outcomes):
            if isinstance(outcome, RepositoryUnavailable):
                logger.warning("Category %s unresolved: %s", category.value, outcome.cause)
                unresolved[category] = outcome
            elif not outcome:
                empty.append(category)
            else:
                nearest = outcome[0]
                facilities.append(
                    ResolvedFacility(
                        category=category,
                        facility=nearest.facility,
                        distance_meters=nearest.distance_meters,
                    )
                )

        if len(unresolved) == len(categories):
            raise ResolutionFailed({c.value: err for c, err in unresolved.items()})

        return Resolution(
            facilities=tuple(facilities),
            unresolved=unresolved,
            empty=tuple(empty),
        )
