"""
Crash Alert - API Schemas

Pydantic models for request/response validation.
These define the contract between edge devices / dashboards and the backend.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ===========================================
# Enums
# ===========================================

class FacilityCategory(str, Enum):
    """Kind of emergency responder."""
    HOSPITAL = "hospital"
    POLICE = "police"
    FIRE_STATION = "fire_station"


# ===========================================
# Facility Schemas
# ===========================================

class FacilitySummary(BaseModel):
    """A facility notified for an incident."""

    id: str
    name: str
    category: FacilityCategory
    distance_meters: float = Field(ge=0, description="Great-circle distance from the crash")


class FacilitySchema(BaseModel):
    """A stored facility record."""

    id: str
    name: str
    category: FacilityCategory
    longitude: float
    latitude: float
    address: Optional[str] = None
    phone: Optional[str] = None


class NearbyFacilitySchema(FacilitySchema):
    """A facility returned by a proximity query."""

    distance_meters: float = Field(ge=0)


class FacilityCreateRequest(BaseModel):
    """Request to register a facility."""

    id: Optional[str] = Field(default=None, description="Facility id; generated when omitted")
    name: str = Field(min_length=1, max_length=200)
    location: Any = Field(
        description="[longitude, latitude] pair or {lat, lng} object",
    )
    address: Optional[str] = None
    phone: Optional[str] = None


# ===========================================
# Incident Schemas
# ===========================================

class EvidenceSchema(BaseModel):
    """Reference to a stored evidence attachment."""

    field_name: str
    storage_ref: str
    original_name: str
    media_type: str
    size_bytes: int = Field(ge=0)


class CrashUploadResponse(BaseModel):
    """Response after a crash event has been ingested and recorded."""

    message: str = "Crash report received"
    incident_id: str
    facilities: List[FacilitySummary] = Field(
        default_factory=list,
        description="Nearest facility per category, in hospital, police, fire_station order",
    )
    unresolved: List[FacilityCategory] = Field(
        default_factory=list,
        description="Categories whose lookup failed; omitted from facilities",
    )
    evidence: List[EvidenceSchema] = Field(default_factory=list)


class IncidentSchema(BaseModel):
    """A logged incident."""

    id: str
    coordinates: List[float] = Field(description="[longitude, latitude]")
    timestamp: datetime
    facilities: List[FacilitySummary]
    evidence: List[EvidenceSchema]


# ===========================================
# Misc Schemas
# ===========================================

class PingResponse(BaseModel):
    """Liveness ping for edge devices."""
    message: str = "Server active"


class ErrorResponse(BaseModel):
    """Body of every typed error response."""
    error: str = Field(description="Machine-readable error code")
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
