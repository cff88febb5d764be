"""
Crash Alert - Facility Repositories

One repository per FacilityCategory, selected by settings.storage_backend:
- "memory": InMemoryFacilityRepository
- "sql": SqlFacilityRepository over a shared pooled Engine
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from sqlalchemy.engine import Engine

from crash_alert.config import Settings
from crash_alert.core.exceptions import ConfigurationError
from crash_alert.core.types import FacilityCategory

from .base import FacilityRepository
from .memory import InMemoryFacilityRepository
from .seed import load_seed_file, parse_facility, seed_repositories
from .sql import SqlFacilityRepository

logger = logging.getLogger(__name__)

__all__ = [
    "FacilityRepository",
    "InMemoryFacilityRepository",
    "SqlFacilityRepository",
    "create_repositories",
    "load_seed_file",
    "parse_facility",
    "seed_repositories",
]


def create_repositories(
    settings: Settings,
    engine: Optional[Engine] = None,
) -> Dict[FacilityCategory, FacilityRepository]:
    """
    Create one repository per category based on settings.

    Args:
        settings: Application settings
        engine: Shared engine, required when storage_backend="sql"
    """
    backend = settings.storage_backend.lower()

    if backend == "sql":
        if engine is None:
            raise ConfigurationError("storage_backend='sql' requires a database engine")
        logger.info("Using SqlFacilityRepository for all categories")
        return {c: SqlFacilityRepository(engine, c) for c in FacilityCategory.ordered()}

    if backend != "memory":
        raise ConfigurationError(f"Unknown storage_backend: {settings.storage_backend}")

    logger.info("Using InMemoryFacilityRepository for all categories")
    return {c: InMemoryFacilityRepository(c) for c in FacilityCategory.ordered()}
