"""
Crash Alert - Coordinate Normalizer Tests

Tests for normalize_coordinate():
- Accepted pair and keyed shapes
- JSON string payloads as sent in multipart form data
- Rejection of malformed, missing, non-numeric and out-of-range input

Run with: pytest tests/test_coordinates.py -v
"""

import pytest

from crash_alert.core.coordinates import normalize_coordinate
from crash_alert.core.exceptions import InvalidCoordinate
from crash_alert.core.types import Coordinate


class TestAcceptedShapes:
    """Payload shapes that normalize successfully."""

    def test_pair_is_longitude_first(self):
        coordinate = normalize_coordinate([106.8272, -6.1754])
        assert coordinate == Coordinate(longitude=106.8272, latitude=-6.1754)

    def test_keyed_short_names(self):
        coordinate = normalize_coordinate({"lat": -6.1754, "lng": 106.8272})
        assert coordinate.longitude == 106.8272
        assert coordinate.latitude == -6.1754

    @pytest.mark.parametrize("payload", [
        {"latitude": -6.2, "longitude": 106.8},
        {"lat": -6.2, "lon": 106.8},
        {"Lat": -6.2, "Long": 106.8},
    ])
    def test_keyed_spellings(self, payload):
        assert normalize_coordinate(payload) == Coordinate(longitude=106.8, latitude=-6.2)

    def test_json_string_pair(self):
        assert normalize_coordinate("[106.8, -6.2]") == Coordinate(longitude=106.8, latitude=-6.2)

    def test_json_string_keyed(self):
        coordinate = normalize_coordinate('{"lat": -6.2, "lng": 106.8}')
        assert coordinate.as_pair() == [106.8, -6.2]

    def test_json_bytes(self):
        assert normalize_coordinate(b'{"lat": 1, "lng": 2}') == Coordinate(longitude=2.0, latitude=1.0)

    def test_integers_accepted(self):
        assert normalize_coordinate([0, 0]) == Coordinate(longitude=0.0, latitude=0.0)

    def test_values_are_not_rounded(self):
        coordinate = normalize_coordinate([106.123456789, -6.987654321])
        assert coordinate.longitude == 106.123456789
        assert coordinate.latitude == -6.987654321

    @pytest.mark.parametrize("pair", [[180, 90], [-180, -90], [180.0, -90.0]])
    def test_boundaries_are_inclusive(self, pair):
        assert normalize_coordinate(pair).as_pair() == [float(pair[0]), float(pair[1])]

    def test_extra_keys_ignored(self):
        coordinate = normalize_coordinate({"lat": 1.5, "lng": 2.5, "accuracy": 12})
        assert coordinate == Coordinate(longitude=2.5, latitude=1.5)


class TestRejectedPayloads:
    """Payloads that must raise InvalidCoordinate."""

    @pytest.mark.parametrize("payload", [
        None,
        "",
        "not json",
        "{lat: 1}",
        42,
        "42",
        True,
    ])
    def test_unrecognized_or_malformed(self, payload):
        with pytest.raises(InvalidCoordinate):
            normalize_coordinate(payload)

    @pytest.mark.parametrize("payload", [[1.0], [1.0, 2.0, 3.0], []])
    def test_wrong_pair_arity(self, payload):
        with pytest.raises(InvalidCoordinate, match="pair"):
            normalize_coordinate(payload)

    def test_missing_latitude(self):
        with pytest.raises(InvalidCoordinate, match="missing latitude"):
            normalize_coordinate({"lng": 106.8})

    def test_missing_longitude(self):
        with pytest.raises(InvalidCoordinate, match="missing longitude"):
            normalize_coordinate({"lat": -6.2})

    def test_empty_mapping(self):
        with pytest.raises(InvalidCoordinate, match="missing latitude and longitude"):
            normalize_coordinate({})

    @pytest.mark.parametrize("payload", [
        ["106.8", "-6.2"],
        {"lat": "-6.2", "lng": "106.8"},
        [True, False],
        [None, 1.0],
    ])
    def test_non_numeric_components(self, payload):
        with pytest.raises(InvalidCoordinate, match="must be a number"):
            normalize_coordinate(payload)

    @pytest.mark.parametrize("pair", [[180.0001, 0], [-181, 0], [0, 90.5], [0, -91]])
    def test_out_of_range_is_not_clamped(self, pair):
        with pytest.raises(InvalidCoordinate, match="outside"):
            normalize_coordinate(pair)

    @pytest.mark.parametrize("payload", [
        [float("nan"), 0.0],
        [0.0, float("inf")],
    ])
    def test_non_finite(self, payload):
        with pytest.raises(InvalidCoordinate, match="finite"):
            normalize_coordinate(payload)

    @pytest.mark.parametrize("payload", ["[NaN, 0]", '{"lat": Infinity, "lng": 0}'])
    def test_non_finite_json_literals(self, payload):
        with pytest.raises(InvalidCoordinate, match="malformed"):
            normalize_coordinate(payload)

    def test_error_carries_reason(self):
        with pytest.raises(InvalidCoordinate) as exc_info:
            normalize_coordinate([0, 95])
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "INVALID_COORDINATE"
        assert "95" in exc_info.value.details["reason"]

    @pytest.mark.parametrize("payload", [
        "[" + "9" * 400 + ", 10]",
        '{"lat": 0, "lng": -' + "9" * 400 + "}",
        [10 ** 400, 10],
    ])
    def test_integer_too_large_for_float(self, payload):
        with pytest.raises(InvalidCoordinate, match="out of range"):
            normalize_coordinate(payload)

    def test_deeply_nested_json(self):
        payload = "[" * 100000 + "]" * 100000
        with pytest.raises(InvalidCoordinate, match="malformed"):
            normalize_coordinate(payload)
