"""
Crash Alert - REST API Routes

Endpoints for crash ingestion, incident lookup and facility management.

Architecture:
    Crash ingestion flows through the IngestionPipeline, accessed via
    dependency injection from app.state. Facility endpoints talk to the
    pipeline's repositories directly; incident endpoints go through its
    incident logger. Typed errors propagate to the CrashAlertError handler
    registered in main.py.
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status

from crash_alert.config import Settings
from crash_alert.core.coordinates import normalize_coordinate
from crash_alert.core.exceptions import FacilityConflict, IncidentNotFound, RepositoryUnavailable
from crash_alert.core.pipeline import IngestionPipeline
from crash_alert.core.types import (
    EvidenceRef,
    Facility,
    FacilityCategory as DomainCategory,
    Incident,
    NearbyFacility,
    ResolvedFacility,
)
from crash_alert.repositories.base import FacilityRepository
from crash_alert.repositories.seed import parse_facility
from crash_alert.services.uploads import IncomingUpload

from .schemas import (
    CrashUploadResponse,
    EvidenceSchema,
    FacilityCategory,
    FacilityCreateRequest,
    FacilitySchema,
    FacilitySummary,
    IncidentSchema,
    NearbyFacilitySchema,
    PingResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])


# =============================================================================
# Dependencies
# =============================================================================

def get_pipeline(request: Request) -> IngestionPipeline:
    """Dependency to get the ingestion pipeline from app state."""
    return request.app.state.pipeline


def get_settings(request: Request) -> Settings:
    """Dependency to get settings from app state."""
    return request.app.state.settings


def get_repository(
    category: FacilityCategory,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> FacilityRepository:
    """Dependency resolving the repository for the path's category."""
    return pipeline.repositories[DomainCategory(category.value)]


# =============================================================================
# Converters (Domain -> API Schema)
# =============================================================================

def summary_to_schema(entry: ResolvedFacility) -> FacilitySummary:
    return FacilitySummary(
        id=entry.facility.id,
        name=entry.facility.name,
        category=entry.category.value,
        distance_meters=entry.distance_meters,
    )


def evidence_to_schema(ref: EvidenceRef) -> EvidenceSchema:
    return EvidenceSchema(**ref.to_dict())


def incident_to_schema(incident: Incident) -> IncidentSchema:
    return IncidentSchema(
        id=incident.id,
        coordinates=incident.coordinate.as_pair(),
        timestamp=incident.timestamp,
        facilities=[summary_to_schema(entry) for entry in incident.facilities],
        evidence=[evidence_to_schema(ref) for ref in incident.evidence],
    )


def facility_to_schema(facility: Facility) -> FacilitySchema:
    return FacilitySchema(
        id=facility.id,
        name=facility.name,
        category=facility.category.value,
        longitude=facility.location.longitude,
        latitude=facility.location.latitude,
        address=facility.address,
        phone=facility.phone,
    )


def nearby_to_schema(entry: NearbyFacility) -> NearbyFacilitySchema:
    return NearbyFacilitySchema(
        **facility_to_schema(entry.facility).model_dump(),
        distance_meters=entry.distance_meters,
    )


def _collect_uploads(fields: Dict[str, Optional[UploadFile]]) -> List[IncomingUpload]:
    """Turn the multipart file fields that were actually sent into IncomingUploads."""
    uploads = []
    for field_name, upload in fields.items():
        # Starlette injects its own UploadFile, which fastapi.UploadFile subclasses
        if upload is None or not getattr(upload, "filename", None):
            continue
        uploads.append(
            IncomingUpload(
                field_name=field_name,
                filename=upload.filename,
                content_type=upload.content_type or "application/octet-stream",
                stream=upload.file,
                declared_size=getattr(upload, "size", None),
            )
        )
    return uploads


# =============================================================================
# Crash Ingestion
# =============================================================================

@router.get("/crash/ping", response_model=PingResponse)
async def ping():
    """Connectivity check for edge devices."""
    return PingResponse()


@router.post("/crash/upload", response_model=CrashUploadResponse)
async def upload_crash(
    coordinates: Optional[str] = Form(
        default=None,
        description='JSON location: [longitude, latitude] or {"lat": .., "lng": ..}',
    ),
    file1: Optional[UploadFile] = File(default=None),
    file2: Optional[UploadFile] = File(default=None),
    file3: Optional[UploadFile] = File(default=None),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """
    Ingest a crash event detected by an edge device.

    The request is multipart: a `coordinates` form field holding the
    location as a JSON string, plus up to three evidence files.

    The pipeline will:
    1. Validate evidence fields
    2. Normalize the coordinate
    3. Store evidence
    4. Resolve the nearest hospital, police station and fire station
    5. Record the incident

    Errors:
    - 400: malformed coordinates or rejected evidence
    - 503: no facility category could be resolved
    - 502: the incident could not be recorded
    """
    uploads = _collect_uploads({"file1": file1, "file2": file2, "file3": file3})
    result = await pipeline.ingest(coordinates, uploads=uploads, source="rest")
    incident = result.incident

    return CrashUploadResponse(
        incident_id=incident.id,
        facilities=[summary_to_schema(entry) for entry in incident.facilities],
        unresolved=[category.value for category in result.resolution.unresolved],
        evidence=[evidence_to_schema(ref) for ref in incident.evidence],
    )


# =============================================================================
# Incidents
# =============================================================================

@router.get("/incidents", response_model=List[IncidentSchema], tags=["incidents"])
async def list_incidents(
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum incidents to return"),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Most recent incidents first."""
    incidents = await pipeline.incident_logger.list_recent(limit=limit)
    return [incident_to_schema(incident) for incident in incidents]


@router.get("/incidents/{incident_id}", response_model=IncidentSchema, tags=["incidents"])
async def get_incident(
    incident_id: str,
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Fetch one logged incident by id."""
    incident = await pipeline.incident_logger.get(incident_id)
    if incident is None:
        raise IncidentNotFound(f"Incident {incident_id} not found", details={"incident_id": incident_id})
    return incident_to_schema(incident)


# =============================================================================
# Facilities
# =============================================================================

@router.get("/facilities/{category}", response_model=List[FacilitySchema], tags=["facilities"])
async def list_facilities(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    repository: FacilityRepository = Depends(get_repository),
):
    """List facilities of one category, ordered by name."""
    facilities = await repository.list_facilities(limit=limit, offset=offset)
    return [facility_to_schema(facility) for facility in facilities]


@router.post(
    "/facilities/{category}",
    response_model=FacilitySchema,
    status_code=status.HTTP_201_CREATED,
    tags=["facilities"],
)
async def create_facility(
    request: FacilityCreateRequest,
    repository: FacilityRepository = Depends(get_repository),
):
    """
    Register a facility.

    The location accepts the same shapes as crash coordinates.
    """
    record = request.model_dump()
    record["id"] = request.id or uuid.uuid4().hex
    facility = parse_facility(record, repository.category, index=0)

    try:
        await repository.add(facility)
    except ValueError as e:
        raise FacilityConflict(facility.category.value, facility.id) from e

    logger.info("Facility registered: %s/%s", facility.category.value, facility.id)
    return facility_to_schema(facility)


@router.get(
    "/facilities/{category}/nearby",
    response_model=List[NearbyFacilitySchema],
    tags=["facilities"],
)
async def nearby_facilities(
    lat: float = Query(..., description="Latitude in decimal degrees"),
    lng: float = Query(..., description="Longitude in decimal degrees"),
    limit: int = Query(default=5, ge=1, le=50),
    radius_meters: Optional[float] = Query(default=None, gt=0),
    repository: FacilityRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
):
    """
    Facilities of one category ordered by distance from a point.

    Without `radius_meters` the configured search radius applies.
    """
    coordinate = normalize_coordinate({"lat": lat, "lng": lng})
    radius = radius_meters if radius_meters is not None else settings.search_radius

    try:
        found = await asyncio.wait_for(
            repository.find_nearby(coordinate, repository.category, limit, max_radius_meters=radius),
            timeout=settings.repository_timeout_seconds,
        )
    except asyncio.TimeoutError:
        raise RepositoryUnavailable(
            repository.category.value,
            f"timed out after {settings.repository_timeout_seconds:.1f}s",
        )
    return [nearby_to_schema(entry) for entry in found]
