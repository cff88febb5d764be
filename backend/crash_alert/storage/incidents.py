"""
SQL implementation of IncidentStore.

An incident and its child rows are inserted inside one transaction, so a
reader either sees the whole incident or nothing. Write timeouts come from
the engine (pool timeout, SQLite busy timeout).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timezone
from typing import Dict, List, Optional

from sqlalchemy import func, insert, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from crash_alert.core.exceptions import PersistenceFailure
from crash_alert.core.types import (
    Coordinate,
    EvidenceRef,
    Facility,
    FacilityCategory,
    FacilityId,
    Incident,
    IncidentId,
    ResolvedFacility,
)
from crash_alert.storage.database import (
    incident_evidence_table,
    incident_facilities_table,
    incidents_table,
)

logger = logging.getLogger(__name__)


class SqlIncidentStore:
    """Append-only incident store on a pooled SQLAlchemy engine."""

    def __init__(self, engine: Engine):
        self._engine = engine

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    def _insert(self, incident: Incident) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                insert(incidents_table).values(
                    id=incident.id,
                    longitude=incident.coordinate.longitude,
                    latitude=incident.coordinate.latitude,
                    created_at=incident.timestamp,
                )
            )
            if incident.facilities:
                conn.execute(
                    insert(incident_facilities_table),
                    [
                        {
                            "incident_id": incident.id,
                            "position": position,
                            "category": entry.category.value,
                            "facility_id": entry.facility.id,
                            "facility_name": entry.facility.name,
                            "facility_longitude": entry.facility.location.longitude,
                            "facility_latitude": entry.facility.location.latitude,
                            "distance_meters": entry.distance_meters,
                        }
                        for position, entry in enumerate(incident.facilities)
                    ],
                )
            if incident.evidence:
                conn.execute(
                    insert(incident_evidence_table),
                    [
                        {
                            "incident_id": incident.id,
                            "position": position,
                            **ref.to_dict(),
                        }
                        for position, ref in enumerate(incident.evidence)
                    ],
                )

    async def append(self, incident: Incident) -> None:
        try:
            await asyncio.to_thread(self._insert, incident)
        except SQLAlchemyError as e:
            raise PersistenceFailure(type(e).__name__) from e

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def _hydrate(self, conn: Connection, rows) -> List[Incident]:
        if not rows:
            return []
        ids = [row.id for row in rows]

        facilities: Dict[str, List[ResolvedFacility]] = {i: [] for i in ids}
        stmt = (
            select(incident_facilities_table)
            .where(incident_facilities_table.c.incident_id.in_(ids))
            .order_by(incident_facilities_table.c.incident_id, incident_facilities_table.c.position)
        )
        for row in conn.execute(stmt):
            category = FacilityCategory(row.category)
            facilities[row.incident_id].append(
                ResolvedFacility(
                    category=category,
                    facility=Facility(
                        id=FacilityId(row.facility_id),
                        name=row.facility_name,
                        category=category,
                        location=Coordinate(
                            longitude=row.facility_longitude,
                            latitude=row.facility_latitude,
                        ),
                    ),
                    distance_meters=row.distance_meters,
                )
            )

        evidence: Dict[str, List[EvidenceRef]] = {i: [] for i in ids}
        stmt = (
            select(incident_evidence_table)
            .where(incident_evidence_table.c.incident_id.in_(ids))
            .order_by(incident_evidence_table.c.incident_id, incident_evidence_table.c.position)
        )
        for row in conn.execute(stmt):
            evidence[row.incident_id].append(
                EvidenceRef(
                    field_name=row.field_name,
                    storage_ref=row.storage_ref,
                    original_name=row.original_name,
                    media_type=row.media_type,
                    size_bytes=row.size_bytes,
                )
            )

        incidents = []
        for row in rows:
            created_at = row.created_at
            # SQLite drops tzinfo; values are always written in UTC
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            incidents.append(
                Incident(
                    id=IncidentId(row.id),
                    coordinate=Coordinate(longitude=row.longitude, latitude=row.latitude),
                    timestamp=created_at,
                    facilities=tuple(facilities[row.id]),
                    evidence=tuple(evidence[row.id]),
                )
            )
        return incidents

    def _select_one(self, incident_id: str) -> Optional[Incident]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(incidents_table).where(incidents_table.c.id == incident_id)
            ).fetchall()
            found = self._hydrate(conn, rows)
        return found[0] if found else None

    def _select_recent(self, limit: int) -> List[Incident]:
        stmt = (
            select(incidents_table)
            .order_by(incidents_table.c.created_at.desc(), incidents_table.c.id.desc())
            .limit(limit)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
            return self._hydrate(conn, rows)

    def _select_count(self) -> int:
        with self._engine.connect() as conn:
            return int(conn.execute(select(func.count()).select_from(incidents_table)).scalar_one())

    async def get(self, incident_id: str) -> Optional[Incident]:
        try:
            return await asyncio.to_thread(self._select_one, incident_id)
        except SQLAlchemyError as e:
            raise PersistenceFailure(type(e).__name__) from e

    async def list_recent(self, limit: int = 100) -> List[Incident]:
        if limit <= 0:
            return []
        try:
            return await asyncio.to_thread(self._select_recent, limit)
        except SQLAlchemyError as e:
            raise PersistenceFailure(type(e).__name__) from e

    async def count(self) -> int:
        try:
            return await asyncio.to_thread(self._select_count)
        except SQLAlchemyError as e:
            raise PersistenceFailure(type(e).__name__) from e
