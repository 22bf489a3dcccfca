"""
Location Resolver
=================

Turns what a caller knows about a place into a search point. Three
independent strategies are exposed; the matching service decides the
order in which to try them:

  - ``from_coordinate`` -- caller-supplied point, validated passthrough
  - ``from_device``     -- a device/browser positioning capability
  - ``from_address``    -- free-text address via a geocoding capability

Absence of a location is an expected outcome, not an error: every strategy
returns ``None`` on failure, timeout, or when the capability is missing.
Cancellation of the surrounding request is never swallowed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from nearmatch.services.geoService import Coordinate, is_valid_coordinate

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS: float = 10.0
DEFAULT_MAX_AGE_SECONDS: float = 300.0


class DeviceLocation(Protocol):
    """Positioning capability of the client device."""

    async def get_current_position(
        self, timeout_ms: int, maximum_age_ms: int
    ) -> Coordinate | None:
        """Current fix, or a cached one no older than ``maximum_age_ms``."""
        ...


class Geocoder(Protocol):
    """Address-to-coordinate capability."""

    async def resolve(self, address: str) -> Coordinate | None:
        ...


def from_coordinate(coordinate: Coordinate | None) -> Coordinate | None:
    if is_valid_coordinate(coordinate):
        return coordinate
    return None


async def from_device(
    device: DeviceLocation | None,
    *,
    timeout_s: float = DEFAULT_TIMEOUT_SECONDS,
    max_age_s: float = DEFAULT_MAX_AGE_SECONDS,
) -> Coordinate | None:
    """Ask the device for one fix, waiting at most ``timeout_s``."""
    if device is None:
        logger.debug("No device location capability configured")
        return None

    try:
        position = await asyncio.wait_for(
            device.get_current_position(
                timeout_ms=int(timeout_s * 1000),
                maximum_age_ms=int(max_age_s * 1000),
            ),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError:
        logger.warning("Device location timed out after %.1fs", timeout_s)
        return None
    except Exception as exc:
        logger.warning("Device location unavailable: %s", exc)
        return None

    if not is_valid_coordinate(position):
        if position is not None:
            logger.warning("Device returned an invalid position: %s", position)
        return None
    return position


async def from_address(
    geocoder: Geocoder | None,
    address: str | None,
    *,
    timeout_s: float = DEFAULT_TIMEOUT_SECONDS,
) -> Coordinate | None:
    """Geocode ``address``, waiting at most ``timeout_s``."""
    if geocoder is None or not address or not address.strip():
        return None

    try:
        position = await asyncio.wait_for(geocoder.resolve(address), timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.warning("Geocoding timed out after %.1fs", timeout_s)
        return None
    except Exception as exc:
        logger.warning("Geocoding unavailable: %s", exc)
        return None

    return from_coordinate(position)
