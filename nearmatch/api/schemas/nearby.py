"""
Pydantic v2 schemas for the Nearby Providers API
================================================

Request bodies for coordinate, region and descriptor searches, and the
ranked provider result returned by all of them.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from nearmatch.algorithms.providerRanking import RankedProvider, SearchParameters
from nearmatch.core.config import settings
from nearmatch.services.geoService import Coordinate, LocationDescriptor


# ---------------------------------------------------------------------------
# Search requests
# ---------------------------------------------------------------------------

class SearchParamsIn(BaseModel):
    """Filters shared by every search request."""

    max_distance_km: float = Field(
        default=settings.default_max_distance_km,
        ge=0,
        le=settings.max_search_radius_km,
        description="Search radius in km (coordinate searches only)",
    )
    result_limit: int = Field(
        default=settings.default_result_limit,
        ge=1,
        le=settings.max_result_limit,
        description="Maximum number of providers to return",
    )
    include_unavailable: bool = Field(
        default=False, description="Include providers marked unavailable"
    )
    service_filter: list[str] = Field(
        default_factory=list,
        description="Keep providers offering a service containing any of these terms",
    )
    min_rating: float = Field(default=0, ge=0, le=5, description="Minimum mean rating")

    def to_parameters(self) -> SearchParameters:
        return SearchParameters(
            max_distance_km=self.max_distance_km,
            result_limit=self.result_limit,
            include_unavailable=self.include_unavailable,
            service_filter=frozenset(t for t in self.service_filter if t.strip()),
            min_rating=self.min_rating,
        )


class FindNearbyRequest(SearchParamsIn):
    """Search around an explicit point."""

    lat: float = Field(ge=-90, le=90, description="Latitude")
    lng: float = Field(ge=-180, le=180, description="Longitude")

    def to_coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.lat, longitude=self.lng)


class RegionSearchRequest(SearchParamsIn):
    """Search by city and province when no coordinates are known."""

    city: str = Field(min_length=1, max_length=100)
    province: str = Field(min_length=1, max_length=100)


class MatchRequest(SearchParamsIn):
    """Search from whatever location information the caller has."""

    address: Optional[str] = Field(default=None, max_length=500)
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    city: Optional[str] = Field(default=None, max_length=100)
    province: Optional[str] = Field(default=None, max_length=100)

    def to_descriptor(self) -> LocationDescriptor:
        coordinates = None
        if self.lat is not None and self.lng is not None:
            coordinates = Coordinate(latitude=self.lat, longitude=self.lng)
        return LocationDescriptor(
            address=self.address,
            coordinates=coordinates,
            city=self.city,
            province=self.province,
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class RankedProviderOut(BaseModel):
    """A provider annotated with distance and rating."""

    id: str
    name: str
    role: str
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    services: list[str]
    availability: Optional[str] = None
    verified: bool
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    distance_km: Optional[float] = Field(
        default=None, description="Haversine distance from the search point in km"
    )
    distance_label: Optional[str] = None
    rating: float = Field(description="Mean review rating, 0 when unrated")
    review_count: int

    @classmethod
    def from_ranked(cls, provider: RankedProvider) -> "RankedProviderOut":
        location = provider.location
        coords = location.coordinates
        return cls(
            id=provider.id,
            name=provider.name,
            role=provider.role.value,
            bio=provider.bio,
            photo_url=provider.photo_url,
            services=sorted(provider.services),
            availability=provider.availability.value if provider.availability else None,
            verified=provider.verified,
            address=location.address,
            city=location.city,
            province=location.province,
            lat=coords.latitude if coords else None,
            lng=coords.longitude if coords else None,
            distance_km=provider.distance_km,
            distance_label=provider.distance_label,
            rating=round(provider.rating, 2),
            review_count=provider.review_count,
        )


class NearbyResponse(BaseModel):
    count: int
    results: list[RankedProviderOut]

    @classmethod
    def from_results(cls, results: list[RankedProvider]) -> "NearbyResponse":
        return cls(
            count=len(results),
            results=[RankedProviderOut.from_ranked(r) for r in results],
        )
