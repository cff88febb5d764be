"""
Crash Alert - Structured Logging

Provides structured JSON logging with context injection for request
correlation IDs and incident IDs. Crash locations are coarsened in log
output when anonymization is enabled.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence


# =============================================================================
# Context Variables
# =============================================================================

# Request-level context
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
incident_id_var: ContextVar[Optional[str]] = ContextVar('incident_id', default=None)


# =============================================================================
# Masking Utilities
# =============================================================================

def mask_coordinate(pair: Sequence[float], anonymize: bool = True) -> List[float]:
    """Round a [lng, lat] pair to 2 decimals (~1km) when anonymizing."""
    if not anonymize:
        return list(pair)
    return [round(value, 2) for value in pair]


def mask_incident_id(iid: Optional[str]) -> Optional[str]:
    """Shorten incident ID to first 8 characters."""
    if not iid:
        return None
    return iid[:8] if len(iid) > 8 else iid


def mask_sensitive_data(data: dict) -> dict:
    """
    Recursively mask sensitive fields in a dictionary.

    Sensitive fields: device identifiers, credentials. Coordinates are
    masked by the caller through mask_coordinate() so the anonymize_logs
    setting alone decides their precision.
    """
    sensitive_keys = {'device_id', 'password', 'token', 'secret'}

    masked = {}
    for key, value in data.items():
        key_lower = key.lower()

        if key_lower in sensitive_keys:
            masked[key] = "[REDACTED]"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value

    return masked


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Structured Formatter
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter that injects context variables and masks sensitive data.

    Output format:
    {
        "timestamp": "2024-11-30T00:00:00.000000+00:00",
        "level": "INFO",
        "logger": "module.submodule",
        "correlation_id": "req_abc123",
        "incident_id": "0f8c2a1b",
        "message": "Human-readable message",
        "data": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": _utc_now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        incident_id = incident_id_var.get()
        if incident_id:
            log_entry["incident_id"] = mask_incident_id(incident_id)

        data = getattr(record, 'data', None)
        if data:
            log_entry["data"] = mask_sensitive_data(data)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.
    Includes timestamp, level, logger, and message with context.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = _utc_now().strftime("%Y-%m-%d %H:%M:%S")

        context_parts = []

        correlation_id = correlation_id_var.get()
        if correlation_id:
            context_parts.append(f"req={correlation_id}")

        incident_id = incident_id_var.get()
        if incident_id:
            context_parts.append(f"incident={mask_incident_id(incident_id)}")

        context_str = f" [{', '.join(context_parts)}]" if context_parts else ""

        message = f"{timestamp} | {record.levelname:<8} | {record.name}{context_str} | {record.getMessage()}"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


# =============================================================================
# Logger Setup
# =============================================================================

def setup_structured_logging(
    level: str = "INFO",
    json_format: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production, False for development)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter())

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


# =============================================================================
# Context Managers
# =============================================================================

class LogContext:
    """
    Context manager for setting log context variables.

    Usage:
        with LogContext(correlation_id="req_abc123"):
            logger.info("Processing request")
    """

    def __init__(
        self,
        correlation_id: Optional[str] = None,
        incident_id: Optional[str] = None,
    ):
        self._values: List[Any] = [
            (correlation_id_var, correlation_id),
            (incident_id_var, incident_id),
        ]
        self._tokens: List[Any] = []

    def __enter__(self):
        for var, value in self._values:
            if value:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
        return False
