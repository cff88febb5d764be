"""
Crash Alert - Ingestion Pipeline Orchestrator

Central orchestration layer for crash-event ingestion. The HTTP route is a
thin adapter over IngestionPipeline.ingest().

Architecture:
    The pipeline follows a staged processing model:

    1. UPLOAD CHECK: Validate evidence fields and media types (no IO)
    2. NORMALIZE: Parse the raw coordinate payload
    3. EVIDENCE: Store evidence attachments
    4. RESOLVE: Nearest facility per category (concurrent)
    5. RECORD: Persist the incident
    6. OUTPUT: Return IngestionResult

    Any stage failure stops the remaining stages. Nothing touches a
    repository or store before normalization succeeds, and evidence stored
    for a request that fails later is discarded.

Design Principles:
    - Stateless: No per-request state on the pipeline itself
    - Injected collaborators: resolver, incident logger and uploader are
      passed in, so tests run against fakes
    - Typed failures: every error reaching the caller is a CrashAlertError
      subclass or an unclassified bug

Usage:
    from crash_alert.core.pipeline import create_pipeline
    from crash_alert.config import get_settings

    pipeline = create_pipeline(get_settings())
    await pipeline.startup()

    result = await pipeline.ingest('{"lat": -6.2, "lng": 106.8}', uploads=[])
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Sequence

from crash_alert.config import Settings
from crash_alert.core.coordinates import normalize_coordinate
from crash_alert.core.exceptions import CrashAlertError
from crash_alert.core.incidents import IncidentLogger
from crash_alert.core.logging import LogContext, mask_coordinate
from crash_alert.core.resolver import FacilityResolver
from crash_alert.core.types import (
    FacilityCategory,
    IngestionResult,
    PipelineContext,
)
from crash_alert.repositories.base import FacilityRepository
from crash_alert.services.uploads import EvidenceUploader, IncomingUpload

logger = logging.getLogger(__name__)


# =============================================================================
# Pipeline Metrics (for observability)
# =============================================================================

@dataclass
class PipelineMetrics:
    """Metrics for a single pipeline execution."""
    request_id: str
    evidence_files: int = 0
    resolve_ms: Optional[float] = None
    record_ms: Optional[float] = None
    total_ms: Optional[float] = None
    resolved: int = 0
    unresolved: int = 0
    success: bool = True
    error_stage: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "evidence_files": self.evidence_files,
            "resolve_ms": round(self.resolve_ms, 2) if self.resolve_ms else None,
            "record_ms": round(self.record_ms, 2) if self.record_ms else None,
            "total_ms": round(self.total_ms, 2) if self.total_ms else None,
            "resolved": self.resolved,
            "unresolved": self.unresolved,
            "success": self.success,
            "error_stage": self.error_stage,
            "error_code": self.error_code,
        }


# =============================================================================
# Ingestion Pipeline
# =============================================================================

class IngestionPipeline:
    """
    Orchestrates normalization, facility resolution and incident logging.

    Attributes:
        resolver: Nearest-facility resolver
        incident_logger: Incident persistence
        uploader: Evidence storage collaborator
        settings: Application configuration
    """

    def __init__(
        self,
        resolver: FacilityResolver,
        incident_logger: IncidentLogger,
        uploader: EvidenceUploader,
        settings: Settings,
    ):
        self._resolver = resolver
        self._incident_logger = incident_logger
        self._uploader = uploader
        self._settings = settings

        # Metrics callback (for monitoring systems)
        self._metrics_callback: Optional[Callable[[PipelineMetrics], None]] = None

        logger.info(
            "IngestionPipeline initialized: radius=%s, repository_timeout=%.1fs",
            f"{resolver.max_radius_meters:.0f}m" if resolver.max_radius_meters else "unbounded",
            settings.repository_timeout_seconds,
        )

    @property
    def resolver(self) -> FacilityResolver:
        return self._resolver

    @property
    def incident_logger(self) -> IncidentLogger:
        return self._incident_logger

    @property
    def repositories(self) -> Dict[FacilityCategory, FacilityRepository]:
        return self._resolver.repositories

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def ingest(
        self,
        raw_coordinates: Any,
        uploads: Sequence[IncomingUpload] = (),
        source: str = "rest",
    ) -> IngestionResult:
        """
        Run one crash event through the pipeline.

        Args:
            raw_coordinates: Location payload as sent by the device
            uploads: Evidence attachments (up to three)
            source: Origin of the request, for logs

        Returns:
            IngestionResult with the recorded incident and the resolution

        Raises:
            UploadRejected, InvalidCoordinate: client input errors
            ResolutionFailed: every facility category failed
            PersistenceFailure: incident (or evidence) was not stored
        """
        request_id = self._generate_request_id()
        start_time = time.perf_counter()
        ctx = PipelineContext(
            request_id=request_id,
            start_time=datetime.now(timezone.utc),
            source=source,
        )
        metrics = PipelineMetrics(request_id=request_id, evidence_files=len(uploads))
        stage = "upload_check"

        try:
            self._uploader.validate(uploads)

            stage = "normalize"
            ctx.coordinate = normalize_coordinate(raw_coordinates)
            self._log_input(ctx, len(uploads))

            stage = "evidence"
            ctx.evidence = tuple(await self._uploader.save(uploads))

            stage = "resolve"
            resolve_start = time.perf_counter()
            ctx.resolution = await self._resolver.resolve(ctx.coordinate)
            metrics.resolve_ms = (time.perf_counter() - resolve_start) * 1000
            metrics.resolved = len(ctx.resolution.facilities)
            metrics.unresolved = len(ctx.resolution.unresolved)

            stage = "record"
            record_start = time.perf_counter()
            incident = await self._incident_logger.record(
                ctx.coordinate,
                ctx.resolution.facilities,
                ctx.evidence,
            )
            metrics.record_ms = (time.perf_counter() - record_start) * 1000
            metrics.total_ms = (time.perf_counter() - start_time) * 1000

            with LogContext(correlation_id=request_id, incident_id=incident.id):
                self._log_output(ctx, metrics)

            return IngestionResult(incident=incident, resolution=ctx.resolution)

        except Exception as e:
            metrics.success = False
            metrics.error_stage = stage
            metrics.error_code = e.code if isinstance(e, CrashAlertError) else type(e).__name__
            metrics.total_ms = (time.perf_counter() - start_time) * 1000

            if ctx.evidence:
                await self._uploader.discard(ctx.evidence)

            if isinstance(e, CrashAlertError) and e.status_code < 500:
                logger.info("[%s] Rejected at %s: %s", request_id, stage, e.message)
            else:
                logger.error("[%s] Ingestion failed at %s: %s", request_id, stage, e)
            raise
        finally:
            self._emit_metrics(metrics)

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    def set_metrics_callback(self, callback: Callable[[PipelineMetrics], None]) -> None:
        """
        Set callback for metrics emission.

        Called after every ingestion (success or failure).
        """
        self._metrics_callback = callback

    def _emit_metrics(self, metrics: PipelineMetrics) -> None:
        """Emit metrics to callback if configured."""
        if self._metrics_callback:
            try:
                self._metrics_callback(metrics)
            except Exception as e:
                logger.warning("Metrics emission failed: %s", e)

    def _log_input(self, ctx: PipelineContext, evidence_count: int) -> None:
        logger.info(
            "[%s] Crash event received: location=%s, evidence=%d, source=%s",
            ctx.request_id,
            mask_coordinate(ctx.coordinate.as_pair(), self._settings.anonymize_logs),
            evidence_count,
            ctx.source,
        )

    def _log_output(self, ctx: PipelineContext, metrics: PipelineMetrics) -> None:
        resolution = ctx.resolution
        logger.info(
            "[%s] Facilities notified: %s; total_ms=%.1f",
            ctx.request_id,
            ", ".join(
                f"{entry.category.value}={entry.facility.name} ({entry.distance_meters:.0f}m)"
                for entry in resolution.facilities
            ) or "none in range",
            metrics.total_ms or 0,
            extra={"data": {
                "coordinates": mask_coordinate(ctx.coordinate.as_pair(), self._settings.anonymize_logs),
                "metrics": metrics.to_dict(),
            }},
        )
        if resolution.unresolved:
            logger.warning(
                "[%s] Degraded resolution, unresolved: %s",
                ctx.request_id,
                ", ".join(c.value for c in resolution.unresolved),
            )

    # -------------------------------------------------------------------------
    # Utilities
    # -------------------------------------------------------------------------

    def _generate_request_id(self) -> str:
        """Generate unique request ID for tracking."""
        return f"req_{uuid.uuid4().hex[:12]}"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def startup(self) -> None:
        """
        Initialize pipeline resources.

        Loads the facility seed file into empty repositories when configured.
        """
        seed_path = self._settings.facility_seed_path
        if seed_path:
            from crash_alert.repositories.seed import seed_repositories

            await seed_repositories(self.repositories, seed_path)

        counts: Dict[str, Any] = {}
        for category, repository in self.repositories.items():
            try:
                counts[category.value] = await repository.count()
            except CrashAlertError as e:
                # Ingestion still serves the other categories
                logger.warning("Facility repository %s unavailable at startup: %s", category.value, e.message)
                counts[category.value] = "unavailable"
        logger.info("Pipeline startup complete: facilities=%s", counts)

    async def shutdown(self) -> None:
        logger.info("Pipeline shutdown complete")


# =============================================================================
# Factory Function
# =============================================================================

def create_pipeline(
    settings: Settings,
    engine=None,
    repositories: Optional[Dict[FacilityCategory, FacilityRepository]] = None,
    uploader: Optional[EvidenceUploader] = None,
) -> IngestionPipeline:
    """
    Factory function to create a configured IngestionPipeline.

    Selects implementations based on settings.storage_backend:
    - "memory": in-memory repositories and incident store
    - "sql": SQL repositories and incident store on `engine`

    Args:
        settings: Application settings
        engine: Shared SQLAlchemy engine (storage_backend="sql")
        repositories: Override repositories (default: create from settings)
        uploader: Override evidence uploader (default: local directory)

    Returns:
        Configured IngestionPipeline instance
    """
    from crash_alert.core.incidents import create_incident_store
    from crash_alert.repositories import create_repositories
    from crash_alert.services.uploads import LocalEvidenceStore

    if repositories is None:
        repositories = create_repositories(settings, engine=engine)

    resolver = FacilityResolver(
        repositories,
        max_radius_meters=settings.search_radius,
        timeout_seconds=settings.repository_timeout_seconds,
    )
    incident_logger = IncidentLogger(
        create_incident_store(settings, engine=engine),
        max_radius_meters=settings.search_radius,
    )

    if uploader is None:
        uploader = LocalEvidenceStore(
            upload_dir=settings.upload_dir,
            max_bytes=settings.upload_max_bytes,
            allowed_types=settings.allowed_upload_types,
            max_files=settings.upload_max_files,
        )

    logger.info(
        "Pipeline configured: storage=%s, repositories=%s, uploader=%s",
        settings.storage_backend,
        type(next(iter(repositories.values()))).__name__,
        type(uploader).__name__,
    )

    return IngestionPipeline(
        resolver=resolver,
        incident_logger=incident_logger,
        uploader=uploader,
        settings=settings,
    )
