"""
Crash Alert - Core Domain Types

Internal type definitions for the ingestion pipeline. These are domain objects
used within the core, repository and service layers, independent of API
serialization.

Design Notes:
- API layer converts these to Pydantic schemas for external communication.
- Value objects are frozen dataclasses; sequences are tuples so an Incident
  cannot be mutated after creation.
- The facility category always travels as an explicit tag next to the
  facility it describes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, NewType, Optional, Tuple

from crash_alert.core.exceptions import InvalidCoordinate, RepositoryUnavailable


# =============================================================================
# Type Aliases
# =============================================================================

IncidentId = NewType("IncidentId", str)
"""Unique identifier for a logged incident. Opaque string (UUID4)."""

FacilityId = NewType("FacilityId", str)
"""Opaque facility identifier assigned by the facility data store."""


# =============================================================================
# Coordinate
# =============================================================================

@dataclass(frozen=True)
class Coordinate:
    """
    A WGS84 position as (longitude, latitude) in decimal degrees.

    Raises InvalidCoordinate on construction if either component is
    non-finite or out of range. Values are never clamped.
    """
    longitude: float
    latitude: float

    def __post_init__(self):
        if not (math.isfinite(self.longitude) and math.isfinite(self.latitude)):
            raise InvalidCoordinate("longitude and latitude must be finite numbers")
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidCoordinate(f"longitude {self.longitude} outside [-180, 180]")
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidCoordinate(f"latitude {self.latitude} outside [-90, 90]")

    def as_pair(self) -> List[float]:
        """Return the canonical [longitude, latitude] pair."""
        return [self.longitude, self.latitude]


# =============================================================================
# Facilities
# =============================================================================

class FacilityCategory(str, Enum):
    """Kind of emergency responder. Closed set, one repository per member."""
    HOSPITAL = "hospital"
    POLICE = "police"
    FIRE_STATION = "fire_station"

    @classmethod
    def ordered(cls) -> Tuple["FacilityCategory", ...]:
        """Canonical output order: Hospital, Police, FireStation."""
        return (cls.HOSPITAL, cls.POLICE, cls.FIRE_STATION)


@dataclass(frozen=True)
class Facility:
    """A responder record with a fixed location."""
    id: FacilityId
    name: str
    category: FacilityCategory
    location: Coordinate
    address: Optional[str] = None
    phone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "location": self.location.as_pair(),
            "address": self.address,
            "phone": self.phone,
        }


@dataclass(frozen=True)
class NearbyFacility:
    """A facility returned by a proximity query with its great-circle distance."""
    facility: Facility
    distance_meters: float


@dataclass(frozen=True)
class ResolvedFacility:
    """
    A facility selected as responder for an incident.

    The category is carried explicitly so consumers never need to inspect
    the facility's type or origin.
    """
    category: FacilityCategory
    facility: Facility
    distance_meters: float

    def __post_init__(self):
        if self.distance_meters < 0:
            raise ValueError(f"distance_meters must be >= 0, got {self.distance_meters}")


# =============================================================================
# Resolution
# =============================================================================

@dataclass(frozen=True)
class Resolution:
    """
    Outcome of resolving the nearest facility per category.

    Attributes:
        facilities: Resolved entries in canonical category order
        unresolved: Categories whose query failed, with the failure
        empty: Categories queried successfully with nothing in range
    """
    facilities: Tuple[ResolvedFacility, ...] = ()
    unresolved: Dict[FacilityCategory, RepositoryUnavailable] = field(default_factory=dict)
    empty: Tuple[FacilityCategory, ...] = ()

    def by_category(self) -> Dict[FacilityCategory, Optional[ResolvedFacility]]:
        """Map every category to its resolved facility, or None."""
        found = {entry.category: entry for entry in self.facilities}
        return {category: found.get(category) for category in FacilityCategory.ordered()}

    @property
    def is_partial(self) -> bool:
        return bool(self.unresolved)


# =============================================================================
# Evidence
# =============================================================================

@dataclass(frozen=True)
class EvidenceRef:
    """
    Reference to an evidence attachment kept by the upload collaborator.

    Only the reference is stored with the incident, never the content.
    """
    field_name: str
    storage_ref: str
    original_name: str
    media_type: str
    size_bytes: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field_name": self.field_name,
            "storage_ref": self.storage_ref,
            "original_name": self.original_name,
            "media_type": self.media_type,
            "size_bytes": self.size_bytes,
        }


# =============================================================================
# Incident (Core Domain Object)
# =============================================================================

@dataclass(frozen=True)
class Incident:
    """
    A logged crash-detection event.

    Created exactly once per successful ingestion and never mutated.

    Attributes:
        id: Server-generated unique id
        coordinate: Normalized crash location
        timestamp: Server time (UTC) at logging
        facilities: Responders in canonical category order
        evidence: Evidence references in upload order
    """
    id: IncidentId
    coordinate: Coordinate
    timestamp: datetime
    facilities: Tuple[ResolvedFacility, ...] = ()
    evidence: Tuple[EvidenceRef, ...] = ()

    def __post_init__(self):
        """Validate constraints."""
        categories = [entry.category for entry in self.facilities]
        if len(categories) != len(set(categories)):
            raise ValueError("an incident holds at most one facility per category")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to serializable dictionary."""
        return {
            "id": self.id,
            "coordinate": self.coordinate.as_pair(),
            "timestamp": self.timestamp.isoformat(),
            "facilities": [
                {
                    "id": entry.facility.id,
                    "name": entry.facility.name,
                    "category": entry.category.value,
                    "distance_meters": entry.distance_meters,
                }
                for entry in self.facilities
            ],
            "evidence": [ref.to_dict() for ref in self.evidence],
        }


# =============================================================================
# Pipeline Context (for passing state through pipeline stages)
# =============================================================================

@dataclass
class PipelineContext:
    """
    Context object passed through pipeline stages.

    One per ingestion request; never shared between requests.
    """
    request_id: str
    start_time: datetime
    source: str = "rest"

    # Accumulated data
    coordinate: Optional[Coordinate] = None
    evidence: Tuple[EvidenceRef, ...] = ()
    resolution: Optional[Resolution] = None


@dataclass(frozen=True)
class IngestionResult:
    """What the ingestion pipeline hands back to the HTTP layer."""
    incident: Incident
    resolution: Resolution
