"""
Database connection and schema for the SQL storage backend.

One Engine per process; its connection pool is the only state shared between
requests. Every repository/store call checks out its own connection.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine, make_url

logger = logging.getLogger(__name__)

metadata = MetaData()

facilities_table = Table(
    "facilities",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("category", String(32), nullable=False),
    Column("name", Text, nullable=False),
    Column("longitude", Float, nullable=False),
    Column("latitude", Float, nullable=False),
    Column("address", Text),
    Column("phone", String(64)),
    Index("ix_facilities_category_lat_lng", "category", "latitude", "longitude"),
)

incidents_table = Table(
    "incidents",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("longitude", Float, nullable=False),
    Column("latitude", Float, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
)

incident_facilities_table = Table(
    "incident_facilities",
    metadata,
    Column("incident_id", String(64), ForeignKey("incidents.id", ondelete="CASCADE"), primary_key=True),
    Column("position", Integer, primary_key=True),
    Column("category", String(32), nullable=False),
    Column("facility_id", String(64), nullable=False),
    Column("facility_name", Text, nullable=False),
    Column("facility_longitude", Float, nullable=False),
    Column("facility_latitude", Float, nullable=False),
    Column("distance_meters", Float, nullable=False),
)

incident_evidence_table = Table(
    "incident_evidence",
    metadata,
    Column("incident_id", String(64), ForeignKey("incidents.id", ondelete="CASCADE"), primary_key=True),
    Column("position", Integer, primary_key=True),
    Column("field_name", String(64), nullable=False),
    Column("storage_ref", Text, nullable=False),
    Column("original_name", Text, nullable=False),
    Column("media_type", String(128), nullable=False),
    Column("size_bytes", Integer, nullable=False),
)


def create_db_engine(
    database_url: str,
    pool_size: int = 5,
    max_overflow: int = 10,
    timeout_seconds: float = 5.0,
) -> Engine:
    """
    Create a pooled engine.

    timeout_seconds bounds both the wait for a pooled connection and, on
    SQLite, the wait for the database write lock.
    """
    url = make_url(database_url)
    kwargs = {"pool_pre_ping": True}

    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"timeout": timeout_seconds, "check_same_thread": False}
        in_memory = url.database in (None, "", ":memory:")
        if not in_memory:
            kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_timeout=timeout_seconds)
    else:
        kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=timeout_seconds,
            pool_recycle=1800,
        )

    engine = create_engine(url, **kwargs)
    logger.info("Database engine created: backend=%s", url.get_backend_name())
    return engine


def init_db(engine: Engine) -> None:
    """Create tables if they do not exist."""
    metadata.create_all(engine)
