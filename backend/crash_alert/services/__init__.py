"""
Crash Alert - Services Package

Contains collaborator interfaces and implementations used by the core:
- Evidence uploads (validation and storage of attachments)

Design Pattern:
    Each service defines a Protocol (interface) and one or more implementations.
    The pipeline is configured with concrete implementations at startup,
    enabling dependency injection and easy testing/swapping of components.
"""

from .uploads import (
    EVIDENCE_FIELDS,
    EvidenceUploader,
    IncomingUpload,
    LocalEvidenceStore,
)

__all__ = [
    "EVIDENCE_FIELDS",
    "EvidenceUploader",
    "IncomingUpload",
    "LocalEvidenceStore",
]
