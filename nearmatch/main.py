"""NearMatch API -- Main Application Entry Point

Creates the FastAPI application, configures CORS middleware, and registers
the API route modules under the /api/v1 prefix.

Run with::

    uvicorn nearmatch.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nearmatch.api.routes import nearby
from nearmatch.core.config import settings


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.get("/health", tags=["Health"])
    async def health():
        """Lightweight health check for load balancers and readiness probes."""
        return {"status": "ok", "version": settings.app_version}

    application.include_router(nearby.router, prefix=settings.api_v1_prefix)
    return application


app = create_app()
