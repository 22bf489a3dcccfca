"""
Mapbox API wrapper service
==========================

Async wrapper around the Mapbox forward-geocoding API.

All HTTP calls use httpx with retry logic (3 attempts, exponential backoff).
The access token comes from ``settings.mapbox_access_token`` unless one is
passed explicitly.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import httpx

from nearmatch.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_BASE_URL = "https://api.mapbox.com"

_MAX_RETRIES = 3
_INITIAL_BACKOFF_SECONDS = 0.5  # doubles each retry: 0.5, 1.0, 2.0
_REQUEST_TIMEOUT_SECONDS = 10.0

_GEOCODE_TYPES = "address,place,locality,neighborhood,postcode"


# ---------------------------------------------------------------------------
# Custom exception
# ---------------------------------------------------------------------------


class MapboxError(Exception):
    """Raised when a Mapbox API request fails after all retries or
    returns an error status from the API itself."""

    def __init__(
        self, message: str, status: str | None = None, raw: Any = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.raw = raw


# ---------------------------------------------------------------------------
# Internal HTTP helpers
# ---------------------------------------------------------------------------


async def _request_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None = None,
) -> dict[str, Any] | list[Any]:
    """Execute a GET request with exponential-backoff retry logic.

    Retries on transient HTTP errors (5xx, timeouts, connection errors).
    Does *not* retry on 4xx -- those are surfaced immediately.

    Raises:
        MapboxError: After all retries are exhausted or on non-retryable
            API errors.
    """
    last_exception: Exception | None = None
    backoff = _INITIAL_BACKOFF_SECONDS

    for attempt in range(1, _MAX_RETRIES + 1):
        try:
            response = await client.get(
                url, params=params, timeout=_REQUEST_TIMEOUT_SECONDS
            )

            if 400 <= response.status_code < 500:
                raise MapboxError(
                    f"Mapbox API client error: HTTP {response.status_code}",
                    status=str(response.status_code),
                    raw=response.text,
                )

            if response.status_code >= 500:
                last_exception = MapboxError(
                    f"Mapbox API server error: HTTP {response.status_code}",
                    status=str(response.status_code),
                    raw=response.text,
                )
                logger.warning(
                    "Mapbox API server error on attempt %d/%d: HTTP %d",
                    attempt,
                    _MAX_RETRIES,
                    response.status_code,
                )
                if attempt < _MAX_RETRIES:
                    await asyncio.sleep(backoff)
                    backoff *= 2
                continue

            return response.json()

        except (httpx.TimeoutException, httpx.ConnectError) as exc:
            last_exception = exc
            logger.warning(
                "Mapbox API transport error on attempt %d/%d: %s",
                attempt,
                _MAX_RETRIES,
                exc,
            )
            if attempt < _MAX_RETRIES:
                await asyncio.sleep(backoff)
                backoff *= 2

    raise MapboxError(
        f"Mapbox API request failed after {_MAX_RETRIES} attempts",
        raw=str(last_exception),
    )


def _ensure_access_token(token: str | None) -> str:
    """Return the access token or raise if not configured."""
    token = token if token is not None else settings.mapbox_access_token
    if not token:
        raise MapboxError("MAPBOX_ACCESS_TOKEN is not configured")
    return token


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def geocode_address(
    address: str,
    *,
    access_token: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Forward-geocode a human-readable address to coordinates.

    Uses the Mapbox Geocoding API v5.

    Args:
        address: Full or partial street address string.
        access_token: Override for the configured token.
        client: Optional shared ``httpx.AsyncClient``; a short-lived one is
            created when omitted.

    Returns:
        Dict with keys: lat, lng, formatted_address, place_id, relevance.
        ``lat``/``lng`` are None when Mapbox found nothing.

    Raises:
        MapboxError: On API failure.
    """
    token = _ensure_access_token(access_token)
    url = f"{_BASE_URL}/geocoding/v5/mapbox.places/{quote(address.replace('#', ''), safe='')}.json"
    params = {"access_token": token, "limit": 1, "types": _GEOCODE_TYPES}

    if client is None:
        async with httpx.AsyncClient() as own_client:
            data = await _request_with_retry(own_client, url, params=params)
    else:
        data = await _request_with_retry(client, url, params=params)

    features = data.get("features", []) if isinstance(data, dict) else []
    if not features:
        return {
            "lat": None,
            "lng": None,
            "formatted_address": None,
            "place_id": None,
            "relevance": None,
        }

    best = features[0]
    coords = best.get("center") or [None, None]  # [lng, lat] in GeoJSON

    return {
        "lat": coords[1],
        "lng": coords[0],
        "formatted_address": best.get("place_name"),
        "place_id": best.get("id"),
        "relevance": best.get("relevance"),
    }
