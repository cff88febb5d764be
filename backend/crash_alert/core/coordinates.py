"""
Crash Alert - Coordinate Normalizer

Turns the location fragment sent by an edge device into a canonical
Coordinate.

Accepted shapes, tried in this order:
    1. Pair:  [longitude, latitude]
    2. Keyed: {"lat": .., "lng": ..} with the usual spellings
              (latitude/lat, longitude/lng/lon/long)

A str/bytes payload is decoded as JSON first (devices send the field as a
JSON string inside multipart form data). Anything else is rejected.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

from crash_alert.core.exceptions import InvalidCoordinate
from crash_alert.core.types import Coordinate

LATITUDE_KEYS: Tuple[str, ...] = ("latitude", "lat")
LONGITUDE_KEYS: Tuple[str, ...] = ("longitude", "lng", "lon", "long")


@dataclass(frozen=True)
class ParseOutcome:
    """Result of one parse strategy: either a coordinate or a failure reason."""
    coordinate: Optional[Coordinate] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.coordinate is not None

    @classmethod
    def success(cls, coordinate: Coordinate) -> "ParseOutcome":
        return cls(coordinate=coordinate)

    @classmethod
    def failure(cls, reason: str) -> "ParseOutcome":
        return cls(reason=reason)


ParseStrategy = Callable[[Any], Optional[ParseOutcome]]
"""Returns None when the payload is not the strategy's shape."""


# =============================================================================
# Component validation
# =============================================================================

def _component(value: Any, name: str) -> Tuple[Optional[float], Optional[str]]:
    # bool is an int subclass; true/false is never a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None, f"{name} must be a number, got {type(value).__name__}"
    try:
        number = float(value)
    except OverflowError:
        return None, f"{name} out of range"
    if not math.isfinite(number):
        return None, f"{name} must be finite"
    return number, None


def _build(longitude: Any, latitude: Any) -> ParseOutcome:
    lng, error = _component(longitude, "longitude")
    if error:
        return ParseOutcome.failure(error)
    lat, error = _component(latitude, "latitude")
    if error:
        return ParseOutcome.failure(error)
    try:
        return ParseOutcome.success(Coordinate(longitude=lng, latitude=lat))
    except InvalidCoordinate as e:
        return ParseOutcome.failure(e.reason)


# =============================================================================
# Strategies
# =============================================================================

def parse_pair(payload: Any) -> Optional[ParseOutcome]:
    """[longitude, latitude]"""
    if not isinstance(payload, (list, tuple)):
        return None
    if len(payload) != 2:
        return ParseOutcome.failure(
            f"expected [longitude, latitude] pair, got {len(payload)} elements"
        )
    return _build(payload[0], payload[1])


def _lookup(fields: Mapping[str, Any], aliases: Sequence[str]) -> Tuple[bool, Any]:
    for alias in aliases:
        if alias in fields:
            return True, fields[alias]
    return False, None


def parse_keyed(payload: Any) -> Optional[ParseOutcome]:
    """{lat, lng} and spelled-out variants; keys are case-insensitive."""
    if not isinstance(payload, Mapping):
        return None
    fields = {str(key).lower(): value for key, value in payload.items()}

    has_lat, latitude = _lookup(fields, LATITUDE_KEYS)
    has_lng, longitude = _lookup(fields, LONGITUDE_KEYS)
    if not has_lat and not has_lng:
        return ParseOutcome.failure("missing latitude and longitude fields")
    if not has_lat:
        return ParseOutcome.failure("missing latitude field")
    if not has_lng:
        return ParseOutcome.failure("missing longitude field")
    return _build(longitude, latitude)


STRATEGIES: Tuple[ParseStrategy, ...] = (parse_pair, parse_keyed)


# =============================================================================
# Public API
# =============================================================================

def _reject_constant(token: str) -> Any:
    raise ValueError(f"non-finite literal {token}")


def decode_payload(payload: Any) -> Any:
    """Decode a JSON-encoded payload; other values pass through unchanged."""
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidCoordinate("payload is not valid UTF-8")
    if isinstance(payload, str):
        try:
            return json.loads(payload, parse_constant=_reject_constant)
        except ValueError as e:
            raise InvalidCoordinate(f"malformed coordinate encoding ({e})")
        except RecursionError:
            raise InvalidCoordinate("malformed coordinate encoding (nested too deeply)")
    return payload


def normalize_coordinate(payload: Any) -> Coordinate:
    """
    Parse a location payload into a Coordinate.

    Args:
        payload: JSON string/bytes, a [lng, lat] pair, or a lat/lng mapping

    Returns:
        Canonical Coordinate (same numeric values, no rounding)

    Raises:
        InvalidCoordinate: on any malformed, missing, non-numeric or
            out-of-range input
    """
    decoded = decode_payload(payload)
    for strategy in STRATEGIES:
        outcome = strategy(decoded)
        if outcome is None:
            continue
        if outcome.ok:
            return outcome.coordinate
        raise InvalidCoordinate(outcome.reason)
    raise InvalidCoordinate(f"unrecognized coordinate shape ({type(decoded).__name__})")
