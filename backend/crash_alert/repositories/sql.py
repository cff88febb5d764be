"""
Crash Alert - SQL Facility Repository

SQLAlchemy Core adapter over the shared `facilities` table. The bounding box
is applied in SQL against the (category, latitude, longitude) index; exact
haversine filtering and ranking happen in Python so both backends rank
identically.

Blocking driver calls run in a worker thread; each call uses its own pooled
connection.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from sqlalchemy import and_, func, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from crash_alert.core.exceptions import RepositoryUnavailable
from crash_alert.core.geo import bounding_box, haversine_m
from crash_alert.core.types import (
    Coordinate,
    Facility,
    FacilityCategory,
    FacilityId,
    NearbyFacility,
)
from crash_alert.repositories.base import check_facility, check_query
from crash_alert.storage.database import facilities_table

logger = logging.getLogger(__name__)


def _row_to_facility(row) -> Facility:
    return Facility(
        id=FacilityId(row.id),
        name=row.name,
        category=FacilityCategory(row.category),
        location=Coordinate(longitude=row.longitude, latitude=row.latitude),
        address=row.address,
        phone=row.phone,
    )


class SqlFacilityRepository:
    """SQL implementation of FacilityRepository for one category."""

    def __init__(self, engine: Engine, category: FacilityCategory):
        self._engine = engine
        self._category = category

    @property
    def category(self) -> FacilityCategory:
        return self._category

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _select_candidates(
        self,
        coordinate: Coordinate,
        max_radius_meters: Optional[float],
    ) -> List[Facility]:
        t = facilities_table
        conditions = [t.c.category == self._category.value]
        if max_radius_meters is not None:
            box = bounding_box(coordinate, max_radius_meters)
            conditions.append(t.c.latitude.between(box.min_lat, box.max_lat))
            if box.filters_longitude:
                conditions.append(t.c.longitude.between(box.min_lng, box.max_lng))

        with self._engine.connect() as conn:
            rows = conn.execute(select(t).where(and_(*conditions))).fetchall()
        return [_row_to_facility(row) for row in rows]

    async def find_nearby(
        self,
        coordinate: Coordinate,
        category: FacilityCategory,
        limit: int,
        max_radius_meters: Optional[float] = None,
    ) -> List[NearbyFacility]:
        check_query(self, category, limit)
        try:
            candidates = await asyncio.to_thread(
                self._select_candidates, coordinate, max_radius_meters
            )
        except SQLAlchemyError as e:
            logger.error("Facility query failed [%s]: %s", self._category.value, e)
            raise RepositoryUnavailable(self._category.value, type(e).__name__) from e

        ranked = []
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

    # -------------------------------------------------------------------------
    # Management
    # -------------------------------------------------------------------------

    def _insert(self, facility: Facility) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                insert(facilities_table).values(
                    id=facility.id,
                    category=facility.category.value,
                    name=facility.name,
                    longitude=facility.location.longitude,
                    latitude=facility.location.latitude,
                    address=facility.address,
                    phone=facility.phone,
                )
            )

    async def add(self, facility: Facility) -> Facility:
        check_facility(self, facility)
        try:
            await asyncio.to_thread(self._insert, facility)
        except IntegrityError as e:
            raise ValueError(f"facility id {facility.id} already exists") from e
        except SQLAlchemyError as e:
            raise RepositoryUnavailable(self._category.value, type(e).__name__) from e
        return facility

    def _select_page(self, limit: int, offset: int) -> List[Facility]:
        t = facilities_table
        stmt = (
            select(t)
            .where(t.c.category == self._category.value)
            .order_by(t.c.name, t.c.id)
            .limit(limit)
            .offset(offset)
        )
        with self._engine.connect() as conn:
            return [_row_to_facility(row) for row in conn.execute(stmt)]

    async def list_facilities(self, limit: int = 100, offset: int = 0) -> List[Facility]:
        try:
            return await asyncio.to_thread(self._select_page, limit, offset)
        except SQLAlchemyError as e:
            raise RepositoryUnavailable(self._category.value, type(e).__name__) from e

    def _select_count(self) -> int:
        t = facilities_table
        stmt = select(func.count()).select_from(t).where(t.c.category == self._category.value)
        with self._engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    async def count(self) -> int:
        try:
            return await asyncio.to_thread(self._select_count)
        except SQLAlchemyError as e:
            raise RepositoryUnavailable(self._category.value, type(e).__name__) from e
