"""
Shared pytest fixtures for NearMatch unit tests.

Provides a small provider catalog laid out due north of a fixed origin,
plus in-memory catalog/review stores and a ready-wired matching service.
"""

import pytest

from nearmatch.algorithms.providerRanking import Availability, ProviderRole
from nearmatch.services.matchingService import MatchingService
from tests.fakes import FakeCatalogStore, FakeReviewStore, make_provider


# ---------------------------------------------------------------------------
# Catalog fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def catalog_providers():
    """Providers at ~1, ~3, ~15 and ~30 km, one unavailable at ~2 km, and
    one with no coordinates at all."""
    return [
        make_provider("p-30km", km=30.0, services=("House Cleaning",)),
        make_provider("p-1km", km=1.0, services=("Plumbing", "Drain repair")),
        make_provider("p-no-coords", km=None, services=("Plumbing",)),
        make_provider(
            "p-2km-unavailable",
            km=2.0,
            availability=Availability.UNAVAILABLE,
            services=("Plumbing",),
        ),
        make_provider(
            "a-3km",
            km=3.0,
            role=ProviderRole.AGENCY,
            services=("Electrical wiring",),
            verified=True,
        ),
        make_provider("p-15km", km=15.0, services=("Aircon Cleaning",), city="Quezon City"),
    ]


@pytest.fixture
def review_ratings():
    return {
        "p-1km": [4.0, 5.0],
        "a-3km": [5.0, 5.0, 4.0],
        "p-15km": [3.0],
        "p-30km": [2.0, 4.0],
        "p-no-coords": [5.0],
    }


@pytest.fixture
def catalog_store(catalog_providers) -> FakeCatalogStore:
    return FakeCatalogStore(catalog_providers)


@pytest.fixture
def review_store(review_ratings) -> FakeReviewStore:
    return FakeReviewStore(review_ratings)


@pytest.fixture
def matching_service(catalog_store, review_store) -> MatchingService:
    return MatchingService(catalog_store, review_store, tie_band_km=5.0)
