"""
Crash Alert - Exception Hierarchy

Structured exceptions for consistent error handling across the system.
All exceptions include error codes and HTTP status codes for API responses.
"""

from typing import Dict, Optional


class CrashAlertError(Exception):
    """Base exception for all Crash Alert errors."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# =============================================================================
# Validation Errors (client input)
# =============================================================================

class ValidationError(CrashAlertError):
    """Input validation error."""
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidCoordinate(ValidationError):
    """Coordinate payload is malformed, incomplete or out of range."""
    code = "INVALID_COORDINATE"

    def __init__(self, reason: str):
        super().__init__(f"Invalid coordinate: {reason}", details={"reason": reason})
        self.reason = reason


class UploadRejected(ValidationError):
    """An evidence attachment violates upload constraints."""
    code = "UPLOAD_REJECTED"

    def __init__(self, reason: str, field: Optional[str] = None):
        details = {"reason": reason}
        if field:
            details["field"] = field
        super().__init__(f"Upload rejected: {reason}", details=details)
        self.reason = reason
        self.field = field


# =============================================================================
# Facility Lookup Errors
# =============================================================================

class FacilityLookupError(CrashAlertError):
    """Error while querying facility repositories."""
    code = "FACILITY_LOOKUP_ERROR"
    status_code = 503


class RepositoryUnavailable(FacilityLookupError):
    """A facility repository could not be reached or timed out."""
    code = "REPOSITORY_UNAVAILABLE"

    def __init__(self, category: str, cause: str):
        super().__init__(
            f"Facility repository '{category}' unavailable: {cause}",
            details={"category": category, "cause": cause},
        )
        self.category = category
        self.cause = cause


class ResolutionFailed(FacilityLookupError):
    """Every facility category failed to resolve."""
    code = "RESOLUTION_FAILED"

    def __init__(self, causes: Dict[str, RepositoryUnavailable]):
        super().__init__(
            "No facility category could be resolved",
            details={"causes": {category: err.cause for category, err in causes.items()}},
        )
        self.causes = causes


# =============================================================================
# Persistence Errors
# =============================================================================

class PersistenceFailure(CrashAlertError):
    """Incident could not be durably recorded."""
    code = "PERSISTENCE_FAILURE"
    status_code = 502

    def __init__(self, cause: str):
        super().__init__(
            f"Incident was not recorded: {cause}",
            details={"cause": cause, "recorded": False},
        )
        self.cause = cause


class IncidentNotFound(CrashAlertError):
    """Incident id is not present in the incident store."""
    code = "INCIDENT_NOT_FOUND"
    status_code = 404


class FacilityConflict(CrashAlertError):
    """A facility with the same id is already registered in the category."""
    code = "FACILITY_CONFLICT"
    status_code = 409

    def __init__(self, category: str, facility_id: str):
        super().__init__(
            f"Facility {facility_id} already exists in {category}",
            details={"category": category, "id": facility_id},
        )


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(CrashAlertError):
    """Configuration error."""
    code = "CONFIGURATION_ERROR"
    status_code = 500
