"""
Facility seed loading.

Seed files hold one collection per category:

    {
      "hospital": [
        {"id": "rs-1", "name": "RSUD Tarakan",
         "location": {"type": "Point", "coordinates": [106.81, -6.17]},
         "address": "...", "phone": "..."}
      ],
      "police": [...],
      "fire_station": [...]
    }

"location" may also be a bare [lng, lat] pair or a {lat, lng} mapping.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping

from crash_alert.core.coordinates import normalize_coordinate
from crash_alert.core.exceptions import ConfigurationError, InvalidCoordinate
from crash_alert.core.types import Facility, FacilityCategory, FacilityId
from crash_alert.repositories.base import FacilityRepository

logger = logging.getLogger(__name__)


def parse_facility(record: Mapping[str, Any], category: FacilityCategory, index: int) -> Facility:
    """Build a Facility from one seed/API record."""
    location = record.get("location")
    if isinstance(location, Mapping) and "coordinates" in location:
        location = location["coordinates"]
    name = record.get("name")
    if not name:
        raise ValueError(f"{category.value}[{index}] has no name")
    return Facility(
        id=FacilityId(str(record.get("id") or f"{category.value}-{index}")),
        name=str(name),
        category=category,
        location=normalize_coordinate(location),
        address=record.get("address"),
        phone=record.get("phone"),
    )


def load_seed_file(path: str) -> Dict[FacilityCategory, List[Facility]]:
    """
    Read and validate a seed file.

    Raises:
        ConfigurationError: if the file is missing or any record is invalid
    """
    seed_path = Path(path)
    try:
        raw = json.loads(seed_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot read facility seed file {path}: {e}")
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Facility seed file must map categories to lists")

    facilities: Dict[FacilityCategory, List[Facility]] = {c: [] for c in FacilityCategory.ordered()}
    for key, records in raw.items():
        try:
            category = FacilityCategory(key)
        except ValueError:
            raise ConfigurationError(f"Unknown facility category in seed file: {key}")
        for index, record in enumerate(records):
            try:
                facilities[category].append(parse_facility(record, category, index))
            except (InvalidCoordinate, ValueError, AttributeError) as e:
                raise ConfigurationError(f"Invalid {key} record #{index}: {e}")
    return facilities


async def seed_repositories(
    repositories: Mapping[FacilityCategory, FacilityRepository],
    path: str,
) -> int:
    """
    Load a seed file into empty repositories.

    Repositories that already hold facilities are left untouched.
    Returns the number of facilities added.
    """
    facilities = load_seed_file(path)
    added = 0
    for category, records in facilities.items():
        repository = repositories[category]
        if await repository.count() > 0:
            logger.info("Skipping seed for %s: repository not empty", category.value)
            continue
        for facility in records:
            await repository.add(facility)
            added += 1
    logger.info("Seeded %d facilities from %s", added, path)
    return added
