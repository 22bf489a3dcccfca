"""
SQL-backed catalog and review stores
====================================

Async SQLAlchemy implementations of the collaborator interfaces consumed
by the matching service:

  - SqlCatalogStore   -- provider/agency rows by role or by city+province,
                         and a user's stored location
  - SqlReviewStore    -- published review ratings for a batch of providers

Rows are converted into immutable ``ProviderRecord`` snapshots; nothing
returned here is attached to the session.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Collection, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nearmatch.algorithms.providerRanking import (
    Availability,
    ProviderRecord,
    ProviderRole,
)
from nearmatch.models.review import Review, ReviewStatus
from nearmatch.models.user import User, UserRole, VerificationStatus
from nearmatch.services.geoService import Coordinate, LocationDescriptor

logger = logging.getLogger(__name__)

UNNAMED_PROVIDER = "Unnamed Provider"

_CATALOG_ROLES: frozenset[UserRole] = frozenset({UserRole.PROVIDER, UserRole.AGENCY})


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

def location_from_user(user: User) -> LocationDescriptor:
    """Build a descriptor; coordinates only when both columns are set."""
    coordinates = None
    if user.latitude is not None and user.longitude is not None:
        coordinates = Coordinate(
            latitude=float(user.latitude),
            longitude=float(user.longitude),
        )
    return LocationDescriptor(
        address=user.address,
        coordinates=coordinates,
        city=user.city,
        province=user.province,
    )


def provider_from_user(user: User) -> ProviderRecord:
    return ProviderRecord(
        id=user.id,
        name=user.display_name or UNNAMED_PROVIDER,
        role=ProviderRole(user.role.value),
        bio=user.bio,
        photo_url=user.photo_url,
        services=frozenset(s for s in (user.key_services or []) if isinstance(s, str)),
        availability=(
            Availability(user.availability_status.value)
            if user.availability_status is not None
            else None
        ),
        location=location_from_user(user),
        verified=user.verification_status == VerificationStatus.VERIFIED,
    )


def _catalog_roles(roles: Collection[str]) -> list[UserRole]:
    selected = []
    for role in roles:
        try:
            user_role = UserRole(role)
        except ValueError:
            logger.warning("Ignoring unknown catalog role '%s'", role)
            continue
        if user_role in _CATALOG_ROLES:
            selected.append(user_role)
    return selected


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class SqlCatalogStore:
    """Provider catalog backed by the ``users`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def fetch_by_role(self, roles: Collection[str]) -> list[ProviderRecord]:
        user_roles = _catalog_roles(roles)
        if not user_roles:
            return []

        stmt = select(User).where(User.role.in_(user_roles)).order_by(User.id)
        rows = (await self._db.execute(stmt)).scalars().all()
        return [provider_from_user(u) for u in rows]

    async def fetch_by_region(self, city: str, province: str) -> list[ProviderRecord]:
        stmt = (
            select(User)
            .where(
                User.role.in_(list(_CATALOG_ROLES)),
                User.city == city,
                User.province == province,
            )
            .order_by(User.id)
        )
        rows = (await self._db.execute(stmt)).scalars().all()
        return [provider_from_user(u) for u in rows]

    async def fetch_user_location(self, user_id: str) -> LocationDescriptor | None:
        user = await self._db.get(User, user_id)
        if user is None:
            return None
        return location_from_user(user)


class SqlReviewStore:
    """Published review ratings backed by the ``reviews`` table.

    Issues a single ``IN`` query per call; callers are expected to keep
    ``provider_ids`` under the backend's parameter limit.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def fetch_ratings_for(
        self, provider_ids: Sequence[str]
    ) -> dict[str, list[float]]:
        if not provider_ids:
            return {}

        stmt = select(Review.provider_id, Review.rating).where(
            Review.provider_id.in_(list(provider_ids)),
            Review.status == ReviewStatus.PUBLISHED,
        )
        rows = (await self._db.execute(stmt)).all()

        ratings: dict[str, list[float]] = defaultdict(list)
        for provider_id, rating in rows:
            ratings[provider_id].append(float(rating))
        return dict(ratings)
