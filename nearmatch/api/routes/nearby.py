"""
Nearby Providers API Routes
===========================

REST endpoints exposing the provider matching service.

Routes:
  POST /api/v1/nearby/find              -- Rank providers around a point
  POST /api/v1/nearby/region            -- Rank providers in a city/province
  POST /api/v1/nearby/match             -- Resolve a location, then rank
  GET  /api/v1/nearby/users/{user_id}   -- Rank around a user's saved location
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from nearmatch.api.deps import MatchingServiceDep
from nearmatch.api.schemas.nearby import (
    FindNearbyRequest,
    MatchRequest,
    NearbyResponse,
    RegionSearchRequest,
    SearchParamsIn,
)
from nearmatch.core.config import settings
from nearmatch.services.matchingService import (
    InvalidCoordinateError,
    MatchingUnavailableError,
)

router = APIRouter(prefix="/nearby", tags=["Nearby"])


def _unavailable(exc: MatchingUnavailableError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"{exc}. Please try again.",
    )


# ---------------------------------------------------------------------------
# POST /api/v1/nearby/find -- Coordinate search
# ---------------------------------------------------------------------------

@router.post(
    "/find",
    response_model=NearbyResponse,
    summary="Find providers near a point",
    description=(
        "Ranks providers within the search radius of the given point, "
        "closest first, with rating breaking near-ties."
    ),
)
async def find_nearby(
    service: MatchingServiceDep,
    body: FindNearbyRequest,
) -> NearbyResponse:
    try:
        results = await service.find_nearby(body.to_coordinate(), body.to_parameters())
    except InvalidCoordinateError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )
    except MatchingUnavailableError as exc:
        raise _unavailable(exc)
    return NearbyResponse.from_results(results)


# ---------------------------------------------------------------------------
# POST /api/v1/nearby/region -- City/province search
# ---------------------------------------------------------------------------

@router.post(
    "/region",
    response_model=NearbyResponse,
    summary="Find providers in a city and province",
)
async def find_by_region(
    service: MatchingServiceDep,
    body: RegionSearchRequest,
) -> NearbyResponse:
    try:
        results = await service.find_by_region(
            body.city, body.province, body.to_parameters()
        )
    except MatchingUnavailableError as exc:
        raise _unavailable(exc)
    return NearbyResponse.from_results(results)


# ---------------------------------------------------------------------------
# POST /api/v1/nearby/match -- Descriptor search
# ---------------------------------------------------------------------------

@router.post(
    "/match",
    response_model=NearbyResponse,
    summary="Find providers from any known location details",
    description=(
        "Uses coordinates when given, otherwise geocodes the address; "
        "falls back to a city/province search when no point can be found."
    ),
)
async def match(
    service: MatchingServiceDep,
    body: MatchRequest,
) -> NearbyResponse:
    try:
        results = await service.match(body.to_descriptor(), body.to_parameters())
    except MatchingUnavailableError as exc:
        raise _unavailable(exc)
    return NearbyResponse.from_results(results)


# ---------------------------------------------------------------------------
# GET /api/v1/nearby/users/{user_id} -- Search around a stored location
# ---------------------------------------------------------------------------

@router.get(
    "/users/{user_id}",
    response_model=NearbyResponse,
    summary="Find providers near a user's saved location",
)
async def match_for_user(
    service: MatchingServiceDep,
    user_id: str,
    max_distance_km: float = Query(
        default=settings.default_max_distance_km,
        ge=0,
        le=settings.max_search_radius_km,
    ),
    result_limit: int = Query(
        default=settings.default_result_limit, ge=1, le=settings.max_result_limit
    ),
    include_unavailable: bool = Query(default=False),
    service_filter: list[str] = Query(default=[]),
    min_rating: float = Query(default=0, ge=0, le=5),
) -> NearbyResponse:
    params = SearchParamsIn(
        max_distance_km=max_distance_km,
        result_limit=result_limit,
        include_unavailable=include_unavailable,
        service_filter=service_filter,
        min_rating=min_rating,
    ).to_parameters()
    try:
        results = await service.match_for_user(user_id, params)
    except MatchingUnavailableError as exc:
        raise _unavailable(exc)
    return NearbyResponse.from_results(results)
