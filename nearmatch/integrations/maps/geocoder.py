"""
Mapbox-backed geocoder
======================

Implements the ``Geocoder`` capability used by the location resolver on
top of the raw Mapbox wrapper. Resolves a free-text address to a
:class:`Coordinate`, validating the result and caching it.

Failures are reported as "no location" (``None``), never raised: an
address that cannot be geocoded simply sends the search down the
city/province fallback path.

An in-memory LRU cache (1 000 entries) avoids redundant API calls for
repeated addresses.
"""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from typing import Final

import httpx

from nearmatch.integrations.maps.mapboxService import MapboxError, geocode_address
from nearmatch.services.geoService import Coordinate, is_valid_coordinate

logger = logging.getLogger(__name__)

_CACHE_MAX_SIZE: Final[int] = 1000


# ---------------------------------------------------------------------------
# LRU cache (single-writer assumption in asyncio event loop)
# ---------------------------------------------------------------------------


class _GeocodingCache:
    """Simple LRU cache backed by an ``OrderedDict``.

    Designed for single-threaded asyncio usage; no lock is needed.
    """

    def __init__(self, max_size: int = _CACHE_MAX_SIZE) -> None:
        self._max_size = max_size
        self._store: OrderedDict[str, Coordinate] = OrderedDict()

    def get(self, key: str) -> Coordinate | None:
        if key in self._store:
            self._store.move_to_end(key)
            return self._store[key]
        return None

    def put(self, key: str, value: Coordinate) -> None:
        if key in self._store:
            self._store.move_to_end(key)
            self._store[key] = value
            return
        if len(self._store) >= self._max_size:
            self._store.popitem(last=False)  # evict oldest
        self._store[key] = value

    def clear(self) -> None:
        self._store.clear()

    @property
    def size(self) -> int:
        return len(self._store)


def _cache_key(address: str) -> str:
    """Deterministic cache key from the normalized address string."""
    normalized = " ".join(address.split()).lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class MapboxGeocoder:
    """``Geocoder`` implementation backed by the Mapbox Geocoding API."""

    def __init__(
        self,
        access_token: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        cache_size: int = _CACHE_MAX_SIZE,
    ) -> None:
        self._access_token = access_token
        self._client = client
        self._cache = _GeocodingCache(cache_size)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Geocoding cache cleared")

    @property
    def cache_size(self) -> int:
        return self._cache.size

    async def resolve(self, address: str) -> Coordinate | None:
        """Geocode ``address``; ``None`` when it cannot be resolved."""
        if not address or not address.strip():
            return None

        key = _cache_key(address)
        # Addresses are user data; logs above DEBUG carry only the key prefix
        ref = key[:12]
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Geocoding cache hit for %s", ref)
            return cached

        try:
            data = await geocode_address(
                address, access_token=self._access_token, client=self._client
            )
        except MapboxError as exc:
            logger.warning("Geocoding failed for %s: %s", ref, exc)
            return None
        except Exception as exc:
            logger.error(
                "Unexpected error geocoding %s: %s", ref, exc, exc_info=True
            )
            return None

        if data["lat"] is None or data["lng"] is None:
            logger.info("Geocoding returned no results for %s", ref)
            return None

        coordinate = Coordinate(latitude=data["lat"], longitude=data["lng"])
        if not is_valid_coordinate(coordinate):
            logger.warning("Geocoder returned invalid coordinates for %s", ref)
            return None

        self._cache.put(key, coordinate)
        logger.debug(
            "Geocoded '%s' -> (%.6f, %.6f)",
            address,
            coordinate.latitude,
            coordinate.longitude,
        )
        return coordinate
