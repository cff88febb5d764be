"""
Crash Alert - Backend Application Package

This package contains the core backend logic:
- API routes for crash ingestion, incidents and facilities
- Ingestion pipeline orchestration
- Facility repositories and incident storage
- Evidence upload handling
"""

__version__ = "0.1.0"
