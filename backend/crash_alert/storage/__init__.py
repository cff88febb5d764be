"""SQL storage backend: engine factory and table definitions."""

from .database import (
    create_db_engine,
    facilities_table,
    incident_evidence_table,
    incident_facilities_table,
    incidents_table,
    init_db,
    metadata,
)

__all__ = [
    "create_db_engine",
    "facilities_table",
    "incident_evidence_table",
    "incident_facilities_table",
    "incidents_table",
    "init_db",
    "metadata",
]
