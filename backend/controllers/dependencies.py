"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import Header, HTTPException, Request, status

from backend.domain.errors import (
    AuthorizationError,
    FloorbookError,
    NotFoundError,
    SchedulingConflict,
    UniquenessConflict,
    ValidationError,
    VersionConflict,
)
from backend.domain.models import Actor
from backend.services.booking_service import BookingLedgerService
from backend.services.catalog_service import ResourceCatalogService
from backend.services.notification_service import NotificationService
from backend.services.recommendation_service import RecommendationService


_STATUS_BY_ERROR: list[tuple[type[FloorbookError], int, str]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST, "validation_error"),
    (UniquenessConflict, status.HTTP_409_CONFLICT, "uniqueness_conflict"),
    (SchedulingConflict, status.HTTP_409_CONFLICT, "scheduling_conflict"),
    (VersionConflict, status.HTTP_409_CONFLICT, "version_conflict"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (AuthorizationError, status.HTTP_403_FORBIDDEN, "authorization_error"),
]


def to_http_exception(exc: FloorbookError) -> HTTPException:
    """Translate a domain error into a structured HTTP error body."""
    for error_type, status_code, error_kind in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code, error_kind = status.HTTP_400_BAD_REQUEST, "error"

    detail: dict[str, Any] = {"error": error_kind, "message": str(exc)}
    if isinstance(exc, UniquenessConflict):
        detail["field"] = exc.field
        detail["value"] = exc.value
    elif isinstance(exc, ValidationError) and exc.field is not None:
        detail["field"] = exc.field
    elif isinstance(exc, VersionConflict):
        detail["stored_version"] = exc.stored_version
        detail["client_version"] = exc.client_version
    return HTTPException(status_code=status_code, detail=detail)


async def get_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: str = Header(default="user"),
) -> Actor:
    """Identity forwarded by the upstream gateway after it verified the caller."""
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    return Actor(user_id=x_user_id.strip(), role=x_user_role.strip().lower())


def _service_from_state(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} service is not initialized",
        )
    return service


def get_catalog_service(request: Request) -> ResourceCatalogService:
    return _service_from_state(request, "catalog_service", "Catalog")


def get_booking_service(request: Request) -> BookingLedgerService:
    return _service_from_state(request, "booking_service", "Booking")


def get_recommendation_service(request: Request) -> RecommendationService:
    return _service_from_state(request, "recommendation_service", "Recommendation")


def get_notification_service(request: Request) -> NotificationService:
    return _service_from_state(request, "notification_service", "Notification")
