"""
Crash Alert - Incident Logging

Persists each accepted crash event together with the facilities that were
notified and references to its evidence.

Storage Notes:
    - Stores are append-only: incidents are never updated or deleted
    - An append is atomic; readers never observe a partially written incident
    - In-memory store is for development and tests (lost on restart)
    - SQL store is durable (see crash_alert.storage.incidents)
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import abstractmethod
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from crash_alert.config import Settings
from crash_alert.core.exceptions import ConfigurationError, PersistenceFailure
from crash_alert.core.types import (
    Coordinate,
    EvidenceRef,
    Incident,
    IncidentId,
    ResolvedFacility,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Protocol
# =============================================================================

@runtime_checkable
class IncidentStore(Protocol):
    """
    Protocol for incident storage.

    Implementations must be thread-safe, append-only, and make each append
    atomic. Failures are raised as PersistenceFailure.
    """

    @abstractmethod
    async def append(self, incident: Incident) -> None:
        """Durably add a new incident."""
        ...

    @abstractmethod
    async def get(self, incident_id: str) -> Optional[Incident]:
        """Fetch one incident by id."""
        ...

    @abstractmethod
    async def list_recent(self, limit: int = 100) -> List[Incident]:
        """Get the most recent incidents, newest first."""
        ...

    @abstractmethod
    async def count(self) -> int:
        """Total number of stored incidents."""
        ...


# =============================================================================
# In-Memory Implementation
# =============================================================================

class InMemoryIncidentStore:
    """
    In-memory implementation of IncidentStore.

    Thread-safe. Writers poll the lock without blocking the event loop and
    give up after the timeout, so a stuck writer turns into a
    PersistenceFailure instead of stalling every request.
    """

    _poll_interval = 0.005

    def __init__(self, lock_timeout_seconds: float = 5.0):
        self._lock_timeout = lock_timeout_seconds
        self._lock = Lock()
        self._incidents: Dict[str, Incident] = {}
        self._order: List[str] = []

        logger.info("InMemoryIncidentStore initialized")

    async def _acquire(self) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._lock_timeout
        while not self._lock.acquire(blocking=False):
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self._poll_interval)
        return True

    async def append(self, incident: Incident) -> None:
        if not await self._acquire():
            raise PersistenceFailure("incident store lock timed out")
        try:
            if incident.id in self._incidents:
                raise PersistenceFailure(f"duplicate incident id {incident.id}")
            # Both indices updated before the lock is released
            self._incidents[incident.id] = incident
            self._order.append(incident.id)
        finally:
            self._lock.release()

    async def get(self, incident_id: str) -> Optional[Incident]:
        with self._lock:
            return self._incidents.get(incident_id)

    async def list_recent(self, limit: int = 100) -> List[Incident]:
        with self._lock:
            ids = self._order[-limit:] if limit > 0 else []
            return [self._incidents[i] for i in reversed(ids)]

    async def count(self) -> int:
        with self._lock:
            return len(self._order)


# =============================================================================
# Incident Logger
# =============================================================================

class IncidentLogger:
    """
    Creates Incident records and writes them to an IncidentStore.

    Attributes:
        store: Backing append-only store
        max_radius_meters: Search radius the facilities were resolved with,
            None when unbounded
    """

    def __init__(
        self,
        store: IncidentStore,
        max_radius_meters: Optional[float] = None,
    ):
        self._store = store
        self._max_radius = max_radius_meters

    @property
    def store(self) -> IncidentStore:
        return self._store

    def _check_facilities(self, facilities: Sequence[ResolvedFacility]) -> None:
        for entry in facilities:
            if self._max_radius is not None and entry.distance_meters > self._max_radius:
                raise ValueError(
                    f"{entry.category.value} facility {entry.facility.id} is "
                    f"{entry.distance_meters:.1f}m away, beyond {self._max_radius}m"
                )

    async def record(
        self,
        coordinate: Coordinate,
        facilities: Sequence[ResolvedFacility],
        evidence: Sequence[EvidenceRef] = (),
    ) -> Incident:
        """
        Create and persist an incident.

        Args:
            coordinate: Normalized crash location
            facilities: Resolved responders in canonical category order
            evidence: Stored evidence references

        Returns:
            The persisted Incident

        Raises:
            PersistenceFailure: if the store did not accept the write
        """
        self._check_facilities(facilities)
        incident = Incident(
            id=IncidentId(str(uuid.uuid4())),
            coordinate=coordinate,
            timestamp=datetime.now(timezone.utc),
            facilities=tuple(facilities),
            evidence=tuple(evidence),
        )

        try:
            # A disconnecting client must not cut a write in half
            await asyncio.shield(self._store.append(incident))
        except PersistenceFailure:
            logger.error("Incident %s not recorded", incident.id, exc_info=True)
            raise
        except Exception as e:
            logger.error("Incident %s not recorded: %s", incident.id, e, exc_info=True)
            raise PersistenceFailure(f"{type(e).__name__}: {e}") from e

        logger.info(
            "Incident %s recorded: facilities=%d, evidence=%d",
            incident.id, len(incident.facilities), len(incident.evidence),
        )
        return incident

    async def get(self, incident_id: str) -> Optional[Incident]:
        return await self._store.get(incident_id)

    async def list_recent(self, limit: int = 100) -> List[Incident]:
        return await self._store.list_recent(limit=limit)

    async def count(self) -> int:
        return await self._store.count()


# =============================================================================
# Factory Function
# =============================================================================

def create_incident_store(settings: Settings, engine=None) -> IncidentStore:
    """
    Create an incident store based on settings.

    Args:
        settings: Application settings
        engine: Shared SQLAlchemy engine, required when storage_backend="sql"

    Returns:
        Configured IncidentStore instance
    """
    backend = settings.storage_backend.lower()

    if backend == "sql":
        if engine is None:
            raise ConfigurationError("storage_backend='sql' requires a database engine")
        from crash_alert.storage.incidents import SqlIncidentStore

        logger.info("Creating SqlIncidentStore")
        return SqlIncidentStore(engine)

    if backend != "memory":
        raise ConfigurationError(f"Unknown storage_backend: {settings.storage_backend}")

    logger.info(
        "Creating InMemoryIncidentStore: lock_timeout=%.1fs",
        settings.storage_timeout_seconds,
    )
    return InMemoryIncidentStore(lock_timeout_seconds=settings.storage_timeout_seconds)
