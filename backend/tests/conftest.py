"""
Crash Alert - Test Configuration and Fixtures

Shared fixtures for all test modules.
"""

import asyncio
import json
import os
import sys
from typing import Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

# Ensure backend package is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from crash_alert.config import Settings
from crash_alert.core.exceptions import RepositoryUnavailable
from crash_alert.core.incidents import IncidentLogger, InMemoryIncidentStore
from crash_alert.core.pipeline import IngestionPipeline
from crash_alert.core.resolver import FacilityResolver
from crash_alert.core.types import (
    Coordinate,
    Facility,
    FacilityCategory,
    FacilityId,
    NearbyFacility,
)
from crash_alert.repositories.memory import InMemoryFacilityRepository
from crash_alert.services.uploads import LocalEvidenceStore


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests requiring a database file")


# =============================================================================
# Sample Data
# =============================================================================

# Central Jakarta; every seeded facility is within a few km
CRASH_SITE = Coordinate(longitude=106.8272, latitude=-6.1754)

SAMPLE_FACILITIES = {
    FacilityCategory.HOSPITAL: [
        ("rs-tarakan", "RSUD Tarakan", 106.8107, -6.1717),
        ("rs-cipto", "RSUPN Cipto Mangunkusumo", 106.8456, -6.1963),
        ("rs-fatmawati", "RSUP Fatmawati", 106.7942, -6.2924),
    ],
    FacilityCategory.POLICE: [
        ("pol-gambir", "Polsek Gambir", 106.8230, -6.1700),
        ("pol-metro", "Polda Metro Jaya", 106.8094, -6.2243),
    ],
    FacilityCategory.FIRE_STATION: [
        ("dk-pusat", "Damkar Jakarta Pusat", 106.8383, -6.1682),
    ],
}


def make_facility(
    facility_id: str,
    name: str,
    category: FacilityCategory,
    longitude: float,
    latitude: float,
) -> Facility:
    return Facility(
        id=FacilityId(facility_id),
        name=name,
        category=category,
        location=Coordinate(longitude=longitude, latitude=latitude),
    )


def build_repositories(
    records: Optional[Dict[FacilityCategory, list]] = None,
) -> Dict[FacilityCategory, InMemoryFacilityRepository]:
    records = SAMPLE_FACILITIES if records is None else records
    return {
        category: InMemoryFacilityRepository(
            category,
            [make_facility(fid, name, category, lng, lat) for fid, name, lng, lat in records.get(category, [])],
        )
        for category in FacilityCategory.ordered()
    }


# =============================================================================
# Fake Repositories
# =============================================================================

class FailingRepository:
    """Repository whose queries always fail."""

    def __init__(self, category: FacilityCategory, error: Optional[Exception] = None):
        self._category = category
        self._error = error or RepositoryUnavailable(category.value, "connection refused")
        self.calls = 0

    @property
    def category(self) -> FacilityCategory:
        return self._category

    async def find_nearby(self, coordinate, category, limit, max_radius_meters=None) -> List[NearbyFacility]:
        self.calls += 1
        raise self._error

    async def add(self, facility):
        raise self._error

    async def list_facilities(self, limit=100, offset=0):
        raise self._error

    async def count(self) -> int:
        raise self._error


class SlowRepository(InMemoryFacilityRepository):
    """In-memory repository that stalls before answering."""

    def __init__(self, category: FacilityCategory, delay_seconds: float, facilities=()):
        super().__init__(category, facilities)
        self.delay_seconds = delay_seconds

    async def find_nearby(self, coordinate, category, limit, max_radius_meters=None):
        await asyncio.sleep(self.delay_seconds)
        return await super().find_nearby(coordinate, category, limit, max_radius_meters)


class CountingRepository(InMemoryFacilityRepository):
    """In-memory repository that counts proximity queries."""

    def __init__(self, category: FacilityCategory, facilities=()):
        super().__init__(category, facilities)
        self.calls = 0

    async def find_nearby(self, coordinate, category, limit, max_radius_meters=None):
        self.calls += 1
        return await super().find_nearby(coordinate, category, limit, max_radius_meters)


class FailingIncidentStore(InMemoryIncidentStore):
    """Incident store that rejects every append."""

    def __init__(self, error: Exception):
        super().__init__()
        self._error = error

    async def append(self, incident) -> None:
        raise self._error


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        app_env="testing",
        app_debug=True,
        app_log_level="WARNING",  # Reduce noise in tests
        storage_backend="memory",
        upload_dir=str(tmp_path / "uploads"),
        upload_max_bytes=1024,
        search_radius_meters=50000.0,
        repository_timeout_seconds=0.5,
        storage_timeout_seconds=0.5,
        anonymize_logs=True,
    )


@pytest.fixture
def seed_file(tmp_path) -> str:
    """Write SAMPLE_FACILITIES in seed-file format."""
    payload = {
        category.value: [
            {
                "id": fid,
                "name": name,
                "location": {"type": "Point", "coordinates": [lng, lat]},
            }
            for fid, name, lng, lat in records
        ]
        for category, records in SAMPLE_FACILITIES.items()
    }
    path = tmp_path / "facilities.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def repositories() -> Dict[FacilityCategory, InMemoryFacilityRepository]:
    """Repositories seeded with SAMPLE_FACILITIES."""
    return build_repositories()


@pytest.fixture
def incident_store() -> InMemoryIncidentStore:
    return InMemoryIncidentStore(lock_timeout_seconds=0.5)


@pytest.fixture
def uploader(test_settings: Settings) -> LocalEvidenceStore:
    return LocalEvidenceStore(
        upload_dir=test_settings.upload_dir,
        max_bytes=test_settings.upload_max_bytes,
        allowed_types=test_settings.allowed_upload_types,
        max_files=test_settings.upload_max_files,
    )


def build_pipeline(
    settings: Settings,
    repositories,
    uploader: LocalEvidenceStore,
    store=None,
) -> IngestionPipeline:
    resolver = FacilityResolver(
        repositories,
        max_radius_meters=settings.search_radius,
        timeout_seconds=settings.repository_timeout_seconds,
    )
    incident_logger = IncidentLogger(
        store if store is not None else InMemoryIncidentStore(),
        max_radius_meters=settings.search_radius,
    )
    return IngestionPipeline(
        resolver=resolver,
        incident_logger=incident_logger,
        uploader=uploader,
        settings=settings,
    )


@pytest.fixture
def pipeline(
    test_settings: Settings,
    repositories,
    uploader: LocalEvidenceStore,
    incident_store: InMemoryIncidentStore,
) -> IngestionPipeline:
    """
    Create a test pipeline on seeded in-memory repositories.

    Fully functional; evidence goes to a temporary directory.
    """
    return build_pipeline(test_settings, repositories, uploader, incident_store)


# =============================================================================
# FastAPI App Fixture
# =============================================================================

@pytest.fixture
def app(test_settings: Settings, pipeline: IngestionPipeline):
    """Create a FastAPI app instance around the test pipeline."""
    # Import here so the module-level app is built after sys.path is set
    from main import create_app

    return create_app(test_settings, pipeline=pipeline)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as c:
        yield c
