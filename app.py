"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from backend.controllers.booking_controller import router as booking_router
from backend.controllers.floorplan_controller import router as floorplan_router
from backend.controllers.notification_controller import router as notification_router
from backend.repository.data_repository import DataRepository
from backend.services.booking_service import BookingLedgerService
from backend.services.catalog_service import ResourceCatalogService
from backend.services.notification_service import CascadeNotifier, NotificationService
from backend.services.recommendation_service import RecommendationService
from backend.utils.clock import Clock, utc_now
from backend.utils.config import Settings, get_settings
from backend.utils.locks import KeyedLockRegistry
from backend.utils.logger import get_logger


logger = get_logger(__name__)
request_logger = get_logger("floorbook.requests")


def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Catalog and ledger share one lock registry so that every writer of a
    floor plan aggregate goes through the same per-floor exclusive section.
    """
    settings = settings or get_settings()
    clock = clock or utc_now

    # --- Repository (SQLite connection factory) ---
    repository = DataRepository(settings)
    locks = KeyedLockRegistry()

    # --- Services (business logic, no direct DB access) ---
    notifier = CascadeNotifier(repository, clock=clock)
    catalog_service = ResourceCatalogService(
        repository=repository,
        notifier=notifier,
        settings=settings,
        locks=locks,
        clock=clock,
    )
    booking_service = BookingLedgerService(
        repository=repository,
        settings=settings,
        locks=locks,
        clock=clock,
    )
    recommendation_service = RecommendationService(
        repository=repository,
        settings=settings,
    )
    notification_service = NotificationService(repository)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        request_logger.info(
            "%s %s | status=%s | duration_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000.0,
        )
        return response

    # --- Routers ---
    app.include_router(floorplan_router)
    app.include_router(booking_router)
    app.include_router(notification_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.catalog_service = catalog_service
    app.state.booking_service = booking_service
    app.state.recommendation_service = recommendation_service
    app.state.notification_service = notification_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema must exist before the optional demo seed.
    """
    repository: DataRepository = app.state.repository
    settings: Settings = app.state.settings

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo floor plans (skipped if any floor exists)")
        repository.seed_demo_floor_plans_if_empty()

    logger.info("Startup complete, system ready")


# Module-level app object for uvicorn
app = create_app()
