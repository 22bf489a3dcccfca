"""
Provider Matching Service
=========================

Facade that finds, filters, and ranks nearby providers for a search.

One request moves through these states::

    ResolvingLocation -> FetchingCatalog -> Ranking -> Aggregating
        -> MinRatingFilter -> SortFinal -> Done

and, when no search point can be established::

    ResolvingLocation -> CityProvinceFallback -> Done

COORDINATE PATH:
  - fetch every provider/agency from the catalog
  - distance annotation, radius, availability and service filters
  - rating aggregation for the survivors only (one batched lookup)
  - minimum rating, then distance ascending with rating breaking near-ties
  - truncate to ``result_limit``

FALLBACK PATH (no coordinates):
  - fetch providers registered in the same city and province
  - availability and service filters, rating aggregation, minimum rating
  - rating descending, truncate

Only a catalog failure is surfaced to the caller
(``CatalogUnavailableError``). A missing location switches to the fallback
path and a review-store failure degrades to zero ratings.

Key entry points (methods of :class:`MatchingService`):
  - find_nearby     -- coordinate path for a caller-supplied point
  - find_by_region  -- fallback path for a city/province pair
  - match           -- resolve a location descriptor, then dispatch
  - match_for_user  -- match around a user's stored location
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from typing import Any, Collection, Protocol, Sequence

from nearmatch.algorithms.providerRanking import (
    ProviderRecord,
    RankedProvider,
    SearchParameters,
    filter_by_availability,
    filter_by_min_rating,
    filter_by_services,
    rank_nearby,
    sort_by_distance_then_rating,
    sort_by_rating,
)
from nearmatch.core.config import settings
from nearmatch.services import locationResolver
from nearmatch.services.geoService import (
    Coordinate,
    LocationDescriptor,
    is_valid_coordinate,
)
from nearmatch.services.locationResolver import DeviceLocation, Geocoder
from nearmatch.services.ratingAggregator import ReviewStore, apply_ratings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class InvalidCoordinateError(ValueError):
    def __init__(self, coordinate: Any) -> None:
        self.coordinate = coordinate
        super().__init__(f"Invalid search coordinate: {coordinate!r}")


class MatchingUnavailableError(Exception):
    """The search could not produce a meaningful result; retryable."""


class CatalogUnavailableError(MatchingUnavailableError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------

class CatalogStore(Protocol):
    async def fetch_by_role(self, roles: Collection[str]) -> Sequence[ProviderRecord]:
        ...

    async def fetch_by_region(
        self, city: str, province: str
    ) -> Sequence[ProviderRecord]:
        ...


class UserLocationStore(Protocol):
    async def fetch_user_location(self, user_id: str) -> LocationDescriptor | None:
        ...


class MatchState(str, enum.Enum):
    RESOLVING_LOCATION = "resolving_location"
    FETCHING_CATALOG = "fetching_catalog"
    RANKING = "ranking"
    AGGREGATING = "aggregating"
    MIN_RATING_FILTER = "min_rating_filter"
    SORT_FINAL = "sort_final"
    CITY_PROVINCE_FALLBACK = "city_province_fallback"
    DONE = "done"


def default_search_parameters(**overrides: Any) -> SearchParameters:
    """Search parameters seeded from application settings."""
    values: dict[str, Any] = {
        "max_distance_km": settings.default_max_distance_km,
        "result_limit": settings.default_result_limit,
    }
    values.update(overrides)
    return SearchParameters(**values)


async def _discard(task: asyncio.Task) -> None:
    """Cancel ``task`` if still running and wait for it to settle."""
    if not task.done():
        task.cancel()
    await asyncio.wait([task])
    if not task.cancelled():
        # Failures were already logged by the task; mark them as seen
        task.exception()


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class MatchingService:
    """Stateless matching facade over injected stores and capabilities."""

    def __init__(
        self,
        catalog: CatalogStore,
        reviews: ReviewStore,
        *,
        geocoder: Geocoder | None = None,
        device: DeviceLocation | None = None,
        user_locations: UserLocationStore | None = None,
        tie_band_km: float | None = None,
        review_batch_size: int | None = None,
        location_timeout_s: float | None = None,
        location_max_age_s: float | None = None,
        provider_roles: Collection[str] | None = None,
        prefetch_catalog: bool = True,
    ) -> None:
        self._catalog = catalog
        self._reviews = reviews
        self._geocoder = geocoder
        self._device = device
        self._user_locations = user_locations
        self._tie_band_km = (
            settings.tie_band_km if tie_band_km is None else tie_band_km
        )
        self._review_batch_size = review_batch_size or settings.review_batch_size
        self._location_timeout_s = (
            settings.location_timeout_seconds
            if location_timeout_s is None
            else location_timeout_s
        )
        self._location_max_age_s = (
            settings.location_max_age_seconds
            if location_max_age_s is None
            else location_max_age_s
        )
        self._provider_roles = frozenset(provider_roles or settings.provider_roles)
        # Stores sharing one AsyncSession cannot run statements concurrently
        self._prefetch_catalog = prefetch_catalog

    # -- Public API ---------------------------------------------------------

    async def find_nearby(
        self,
        point: Coordinate,
        params: SearchParameters | None = None,
    ) -> list[RankedProvider]:
        """Rank providers around ``point``.

        Raises:
            InvalidCoordinateError: ``point`` is missing or out of range.
            CatalogUnavailableError: The catalog store failed.
        """
        if not is_valid_coordinate(point):
            raise InvalidCoordinateError(point)

        params = params or default_search_parameters()
        request_id = self._request_id()
        providers = await self._fetch_by_role(request_id)
        return await self._coordinate_path(request_id, point, providers, params)

    async def find_by_region(
        self,
        city: str,
        province: str,
        params: SearchParameters | None = None,
    ) -> list[RankedProvider]:
        """Rank providers registered in ``city``/``province`` by rating.

        Raises:
            CatalogUnavailableError: The catalog store failed.
        """
        params = params or default_search_parameters()
        request_id = self._request_id()
        return await self._region_path(request_id, city, province, params)

    async def match(
        self,
        descriptor: LocationDescriptor,
        params: SearchParameters | None = None,
    ) -> list[RankedProvider]:
        """Resolve ``descriptor`` to a point and search around it, falling
        back to a city/province search when no point can be established.

        Resolution order: explicit coordinates, then the geocoded address,
        then the device position. With ``prefetch_catalog`` the catalog
        fetch runs while an address or device lookup is in flight; it is
        cancelled if the search falls back to the region path.

        Raises:
            CatalogUnavailableError: The catalog store failed.
        """
        params = params or default_search_parameters()
        request_id = self._request_id()
        self._enter(request_id, MatchState.RESOLVING_LOCATION)

        point = locationResolver.from_coordinate(descriptor.coordinates)
        if point is not None:
            providers = await self._fetch_by_role(request_id)
            return await self._coordinate_path(request_id, point, providers, params)

        if self._can_resolve(descriptor) and self._prefetch_catalog:
            catalog_task = asyncio.create_task(self._fetch_by_role(request_id))
            try:
                point = await self._resolve(descriptor)
                if point is not None:
                    providers = await catalog_task
                    return await self._coordinate_path(
                        request_id, point, providers, params
                    )
            finally:
                await _discard(catalog_task)
        elif self._can_resolve(descriptor):
            point = await self._resolve(descriptor)
            if point is not None:
                providers = await self._fetch_by_role(request_id)
                return await self._coordinate_path(
                    request_id, point, providers, params
                )

        logger.info(
            "Match %s: no search point resolvable, using region fallback "
            "(city=%s, province=%s)",
            request_id,
            descriptor.city,
            descriptor.province,
        )
        if not descriptor.city or not descriptor.province:
            logger.info(
                "Match %s: no city/province either, returning no providers",
                request_id,
            )
            self._enter(request_id, MatchState.DONE)
            return []

        return await self._region_path(
            request_id, descriptor.city, descriptor.province, params
        )

    async def match_for_user(
        self,
        user_id: str,
        params: SearchParameters | None = None,
    ) -> list[RankedProvider]:
        """Search around the location stored on a user's profile.

        A missing store, unknown user, or store failure means no location
        and yields an empty result.
        """
        if self._user_locations is None:
            logger.warning("No user location store configured; user %s", user_id)
            return []

        try:
            descriptor = await self._user_locations.fetch_user_location(user_id)
        except Exception as exc:
            logger.warning("Could not load location for user %s: %s", user_id, exc)
            return []

        if descriptor is None:
            logger.info("User %s has no stored location", user_id)
            return []
        return await self.match(descriptor, params)

    # -- Paths --------------------------------------------------------------

    async def _coordinate_path(
        self,
        request_id: str,
        point: Coordinate,
        providers: Sequence[ProviderRecord],
        params: SearchParameters,
    ) -> list[RankedProvider]:
        self._enter(request_id, MatchState.RANKING)
        nearby = rank_nearby(providers, point, params)

        self._enter(request_id, MatchState.AGGREGATING)
        rated = await apply_ratings(
            nearby, self._reviews, batch_size=self._review_batch_size
        )

        self._enter(request_id, MatchState.MIN_RATING_FILTER)
        rated = filter_by_min_rating(rated, params.min_rating)

        self._enter(request_id, MatchState.SORT_FINAL)
        ordered = sort_by_distance_then_rating(rated, self._tie_band_km)
        results = ordered[: params.result_limit]

        logger.info(
            "Match %s at (%.5f, %.5f): catalog=%d, nearby=%d, rated=%d, returned=%d",
            request_id,
            point.latitude,
            point.longitude,
            len(providers),
            len(nearby),
            len(rated),
            len(results),
        )
        self._enter(request_id, MatchState.DONE)
        return results

    async def _region_path(
        self,
        request_id: str,
        city: str,
        province: str,
        params: SearchParameters,
    ) -> list[RankedProvider]:
        self._enter(request_id, MatchState.CITY_PROVINCE_FALLBACK)
        try:
            providers = await self._catalog.fetch_by_region(city, province)
        except Exception as exc:
            logger.error(
                "Match %s: catalog fetch by region (%s, %s) failed: %s",
                request_id,
                city,
                province,
                exc,
                exc_info=True,
            )
            raise CatalogUnavailableError(
                f"Failed to fetch providers for {city}, {province}"
            ) from exc

        candidates = [RankedProvider.from_record(p) for p in providers]
        candidates = filter_by_availability(candidates, params.include_unavailable)
        candidates = filter_by_services(candidates, params.service_filter)

        rated = await apply_ratings(
            candidates, self._reviews, batch_size=self._review_batch_size
        )
        rated = filter_by_min_rating(rated, params.min_rating)
        results = sort_by_rating(rated)[: params.result_limit]

        logger.info(
            "Match %s in %s, %s: catalog=%d, filtered=%d, returned=%d",
            request_id,
            city,
            province,
            len(providers),
            len(rated),
            len(results),
        )
        self._enter(request_id, MatchState.DONE)
        return results

    # -- Helpers ------------------------------------------------------------

    async def _fetch_by_role(self, request_id: str) -> Sequence[ProviderRecord]:
        self._enter(request_id, MatchState.FETCHING_CATALOG)
        try:
            return await self._catalog.fetch_by_role(self._provider_roles)
        except Exception as exc:
            logger.error(
                "Match %s: catalog fetch failed: %s", request_id, exc, exc_info=True
            )
            raise CatalogUnavailableError("Failed to fetch nearby providers") from exc

    def _can_resolve(self, descriptor: LocationDescriptor) -> bool:
        has_address = bool(descriptor.address and descriptor.address.strip())
        return (has_address and self._geocoder is not None) or self._device is not None

    async def _resolve(self, descriptor: LocationDescriptor) -> Coordinate | None:
        """Address then device, sharing one ``location_timeout_s`` deadline."""
        try:
            return await asyncio.wait_for(
                self._resolve_in_order(descriptor),
                timeout=self._location_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Location resolution exceeded %.1fs budget", self._location_timeout_s
            )
            return None

    async def _resolve_in_order(
        self, descriptor: LocationDescriptor
    ) -> Coordinate | None:
        point = await locationResolver.from_address(
            self._geocoder, descriptor.address, timeout_s=self._location_timeout_s
        )
        if point is not None:
            return point
        return await locationResolver.from_device(
            self._device,
            timeout_s=self._location_timeout_s,
            max_age_s=self._location_max_age_s,
        )

    @staticmethod
    def _request_id() -> str:
        return uuid.uuid4().hex[:8]

    @staticmethod
    def _enter(request_id: str, state: MatchState) -> None:
        logger.debug("Match %s -> %s", request_id, state.value)
