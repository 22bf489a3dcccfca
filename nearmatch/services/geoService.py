"""
Geo Service
===========

Geographic value types and pure helpers used by the ranking engine:
great-circle distance, coordinate validation, and the user-facing
distance label.

Uses the haversine formula for great-circle distance between two points
on Earth's surface. Accurate enough for "nearby" radius filtering
(error < 0.5% for distances under 100 km).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from numbers import Real
from typing import Any

# Earth's mean radius in kilometres
EARTH_RADIUS_KM: float = 6371.0


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 point in decimal degrees."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class LocationDescriptor:
    """Whatever is known about a place. Any subset of fields may be set."""

    address: str | None = None
    coordinates: Coordinate | None = None
    city: str | None = None
    province: str | None = None


def haversine_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Calculate the great-circle distance between two points using the
    haversine formula.

    Args:
        lat1: Latitude of point 1 in decimal degrees.
        lon1: Longitude of point 1 in decimal degrees.
        lat2: Latitude of point 2 in decimal degrees.
        lon2: Longitude of point 2 in decimal degrees.

    Returns:
        Distance in kilometres.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in km between two validated coordinates."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def _is_finite_number(value: Any) -> bool:
    # bool is a Real subclass but never a meaningful degree value
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(value)


def is_valid_coordinate(value: Coordinate | LocationDescriptor | None) -> bool:
    """Return True iff ``value`` carries a finite, in-range coordinate.

    Accepts a bare :class:`Coordinate` or a :class:`LocationDescriptor`
    (its ``coordinates`` field is checked). ``None`` and descriptors
    without coordinates are invalid.
    """
    if isinstance(value, LocationDescriptor):
        value = value.coordinates
    if value is None:
        return False

    lat = getattr(value, "latitude", None)
    lng = getattr(value, "longitude", None)
    if not (_is_finite_number(lat) and _is_finite_number(lng)):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def _round_half_up(value: float, places: str = "1") -> Decimal:
    return Decimal(value).quantize(Decimal(places), rounding=ROUND_HALF_UP)


def format_distance(km: float) -> str:
    """Format a distance for display.

    ``< 1 km`` is shown in whole metres (``500m``), ``1-10 km`` with one
    decimal (``5.5km``), and ``>= 10 km`` as whole kilometres (``26km``).
    """
    if km < 1:
        return f"{_round_half_up(km * 1000)}m"
    if km < 10:
        return f"{_round_half_up(km, '0.1')}km"
    return f"{_round_half_up(km)}km"
