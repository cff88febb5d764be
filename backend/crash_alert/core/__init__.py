"""
Crash Alert - Core Package

Contains the central orchestration logic and domain types:
- types: Domain value objects (Coordinate, Facility, Incident, ...)
- coordinates: Coordinate normalizer
- resolver: Nearest facility per category
- incidents: Incident logger and stores
- pipeline: Ingestion orchestrator
"""

from .types import (
    Coordinate,
    EvidenceRef,
    Facility,
    FacilityCategory,
    Incident,
    IncidentId,
    IngestionResult,
    NearbyFacility,
    Resolution,
    ResolvedFacility,
)
from .coordinates import normalize_coordinate
from .resolver import FacilityResolver
from .incidents import (
    IncidentLogger,
    IncidentStore,
    InMemoryIncidentStore,
    create_incident_store,
)
from .pipeline import IngestionPipeline, create_pipeline

__all__ = [
    # Pipeline
    "IngestionPipeline",
    "create_pipeline",
    # Types
    "Coordinate",
    "EvidenceRef",
    "Facility",
    "FacilityCategory",
    "Incident",
    "IncidentId",
    "IngestionResult",
    "NearbyFacility",
    "Resolution",
    "ResolvedFacility",
    # Components
    "normalize_coordinate",
    "FacilityResolver",
    "IncidentLogger",
    "IncidentStore",
    "InMemoryIncidentStore",
    "create_incident_store",
]
