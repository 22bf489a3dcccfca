"""
Shared FastAPI dependencies for the NearMatch API.

Provides the async database session dependency used by all route handlers
and the per-request ``MatchingService`` wired to SQL-backed stores.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from nearmatch.core.config import settings
from nearmatch.integrations.maps import MapboxGeocoder
from nearmatch.services.matchingService import MatchingService
from nearmatch.services.providerStore import SqlCatalogStore, SqlReviewStore

# ---------------------------------------------------------------------------
# Async engine & session factory
# ---------------------------------------------------------------------------
# The engine is created on first use and shared for the process lifetime.
# The session factory produces lightweight ``AsyncSession`` instances that
# are scoped to a single request via the ``get_db`` dependency below.
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    engine = create_async_engine(
        settings.database_url,
        echo=settings.sql_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session that is automatically closed after the
    request completes.

    Usage in a route::

        @router.get("/items")
        async def list_items(db: DBSession):
            ...
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DBSession = Annotated[AsyncSession, Depends(get_db)]


# ---------------------------------------------------------------------------
# Matching service
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_geocoder() -> MapboxGeocoder | None:
    """Process-wide geocoder (its address cache outlives requests).
    ``None`` when no Mapbox token is configured."""
    if not settings.mapbox_access_token:
        return None
    return MapboxGeocoder(settings.mapbox_access_token)


async def get_matching_service(db: DBSession) -> MatchingService:
    catalog = SqlCatalogStore(db)
    return MatchingService(
        catalog,
        SqlReviewStore(db),
        geocoder=get_geocoder(),
        user_locations=catalog,
        prefetch_catalog=False,
    )


MatchingServiceDep = Annotated[MatchingService, Depends(get_matching_service)]
