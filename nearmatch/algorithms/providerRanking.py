"""
Provider Ranking Algorithm
==========================

Orders catalog providers around a query point:

  1. Annotate each provider with its haversine distance and display label
  2. Stable sort -- providers with a distance first, closest first;
     providers without coordinates keep their input order at the end
  3. Keep providers inside the search radius
  4. Drop unavailable providers unless explicitly requested
  5. Keep providers offering at least one requested service

Minimum-rating filtering happens after rating aggregation, and the final
ordering blends distance with rating: providers whose distances differ by
less than the tie band are ordered by rating descending.

All functions are pure. Inputs are never mutated; annotated copies are
returned.
"""

from __future__ import annotations

import enum
import functools
from dataclasses import dataclass, field, replace
from typing import Iterable, Sequence

from nearmatch.services.geoService import (
    Coordinate,
    LocationDescriptor,
    distance,
    format_distance,
    is_valid_coordinate,
)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_MAX_DISTANCE_KM: float = 50.0
DEFAULT_RESULT_LIMIT: int = 20
DEFAULT_TIE_BAND_KM: float = 5.0
MAX_RATING: float = 5.0


class ProviderRole(str, enum.Enum):
    PROVIDER = "provider"
    AGENCY = "agency"


class Availability(str, enum.Enum):
    AVAILABLE = "available"
    LIMITED = "limited"
    UNAVAILABLE = "unavailable"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderRecord:
    """A provider or agency as supplied by the catalog store."""

    id: str
    name: str
    role: ProviderRole = ProviderRole.PROVIDER
    bio: str | None = None
    photo_url: str | None = None
    services: frozenset[str] = frozenset()
    availability: Availability | None = Availability.AVAILABLE
    location: LocationDescriptor = field(default_factory=LocationDescriptor)
    verified: bool = False


@dataclass(frozen=True)
class RankedProvider(ProviderRecord):
    """A provider record annotated with distance and rating."""

    distance_km: float | None = None
    distance_label: str | None = None
    rating: float = 0.0
    review_count: int = 0

    @classmethod
    def from_record(cls, record: ProviderRecord) -> "RankedProvider":
        if isinstance(record, RankedProvider):
            return record
        return cls(
            id=record.id,
            name=record.name,
            role=record.role,
            bio=record.bio,
            photo_url=record.photo_url,
            services=record.services,
            availability=record.availability,
            location=record.location,
            verified=record.verified,
        )


@dataclass(frozen=True)
class SearchParameters:
    """Caller-controlled knobs for a single search."""

    max_distance_km: float = DEFAULT_MAX_DISTANCE_KM
    result_limit: int = DEFAULT_RESULT_LIMIT
    include_unavailable: bool = False
    service_filter: frozenset[str] = frozenset()
    min_rating: float = 0.0

    def __post_init__(self) -> None:
        if self.max_distance_km < 0:
            raise ValueError(
                f"max_distance_km must be >= 0, got {self.max_distance_km}"
            )
        if self.result_limit < 0:
            raise ValueError(f"result_limit must be >= 0, got {self.result_limit}")
        if not 0 <= self.min_rating <= MAX_RATING:
            raise ValueError(
                f"min_rating must be between 0 and {MAX_RATING}, got {self.min_rating}"
            )
        if not isinstance(self.service_filter, frozenset):
            object.__setattr__(self, "service_filter", frozenset(self.service_filter))


# ---------------------------------------------------------------------------
# Distance annotation and ordering
# ---------------------------------------------------------------------------

def annotate_distance(
    provider: ProviderRecord,
    query_point: Coordinate | None,
) -> RankedProvider:
    """Return a ranked copy of ``provider`` with distance fields filled in
    when both the query point and the provider's coordinates are valid."""
    ranked = RankedProvider.from_record(provider)
    coords = provider.location.coordinates
    if not (is_valid_coordinate(query_point) and is_valid_coordinate(coords)):
        return replace(ranked, distance_km=None, distance_label=None)

    km = distance(query_point, coords)
    return replace(ranked, distance_km=km, distance_label=format_distance(km))


def sort_providers_by_distance(
    providers: Iterable[ProviderRecord],
    query_point: Coordinate | None,
) -> list[RankedProvider]:
    """Annotate every provider and order them closest first.

    Providers without a distance are placed after all others in their
    original relative order (``list.sort`` is stable).
    """
    annotated = [annotate_distance(p, query_point) for p in providers]
    annotated.sort(
        key=lambda r: (r.distance_km is None, r.distance_km or 0.0)
    )
    return annotated


def filter_by_radius(
    providers: Iterable[RankedProvider],
    max_distance_km: float,
) -> list[RankedProvider]:
    """Keep providers with a known distance inside the radius."""
    return [
        p for p in providers
        if p.distance_km is not None and p.distance_km <= max_distance_km
    ]


def get_nearby_providers(
    providers: Iterable[ProviderRecord],
    query_point: Coordinate | None,
    max_distance_km: float = DEFAULT_MAX_DISTANCE_KM,
) -> list[RankedProvider]:
    """Providers within ``max_distance_km`` of ``query_point``, closest first."""
    return filter_by_radius(
        sort_providers_by_distance(providers, query_point), max_distance_km
    )


# ---------------------------------------------------------------------------
# Attribute filters
# ---------------------------------------------------------------------------

def filter_by_availability(
    providers: Iterable[RankedProvider],
    include_unavailable: bool = False,
) -> list[RankedProvider]:
    if include_unavailable:
        return list(providers)
    return [p for p in providers if p.availability != Availability.UNAVAILABLE]


def _offers_any(services: Iterable[str], terms: Sequence[str]) -> bool:
    return any(term in service.lower() for service in services for term in terms)


def filter_by_services(
    providers: Iterable[RankedProvider],
    service_filter: Iterable[str],
) -> list[RankedProvider]:
    """Keep providers with at least one service containing any filter term
    (case-insensitive substring match). An empty filter keeps everyone."""
    terms = sorted({t.lower() for t in service_filter})
    if not terms:
        return list(providers)
    return [p for p in providers if _offers_any(p.services, terms)]


def filter_by_min_rating(
    providers: Iterable[RankedProvider],
    min_rating: float,
) -> list[RankedProvider]:
    return [p for p in providers if p.rating >= min_rating]


# ---------------------------------------------------------------------------
# Final ordering
# ---------------------------------------------------------------------------

def _compare_distance_then_rating(
    a: RankedProvider,
    b: RankedProvider,
    tie_band_km: float,
) -> float:
    if a.distance_km is not None and b.distance_km is not None:
        diff = a.distance_km - b.distance_km
        if abs(diff) < tie_band_km:
            return b.rating - a.rating
        return diff
    return b.rating - a.rating


def sort_by_distance_then_rating(
    providers: Iterable[RankedProvider],
    tie_band_km: float = DEFAULT_TIE_BAND_KM,
) -> list[RankedProvider]:
    """Order by distance ascending, except that providers within
    ``tie_band_km`` of each other are ordered by rating descending.

    The band comparison is not transitive, so the result depends on the
    input order; callers pass the distance-sorted list to keep it
    deterministic.
    """
    return sorted(
        providers,
        key=functools.cmp_to_key(
            lambda a, b: _compare_distance_then_rating(a, b, tie_band_km)
        ),
    )


def sort_by_rating(providers: Iterable[RankedProvider]) -> list[RankedProvider]:
    """Rating descending; equal ratings keep their input order."""
    return sorted(providers, key=lambda p: -p.rating)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def rank_nearby(
    providers: Sequence[ProviderRecord],
    query_point: Coordinate | None,
    params: SearchParameters,
) -> list[RankedProvider]:
    """Run the distance stage of the pipeline (steps 1-5).

    An invalid or missing query point yields no distances, so nothing
    survives the radius filter.
    """
    nearby = get_nearby_providers(providers, query_point, params.max_distance_km)
    nearby = filter_by_availability(nearby, params.include_unavailable)
    return filter_by_services(nearby, params.service_filter)
