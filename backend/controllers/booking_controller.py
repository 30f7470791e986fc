"""HTTP controller layer for bookings and resource recommendations."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator

from backend.controllers.dependencies import (
    get_actor,
    get_booking_service,
    get_recommendation_service,
    to_http_exception,
)
from backend.domain.constraints import ensure_utc
from backend.domain.errors import FloorbookError
from backend.domain.models import Actor, ResourceKind
from backend.services.booking_service import BookingLedgerService
from backend.services.recommendation_service import RecommendationService
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["bookings"])


class CreateBookingRequest(BaseModel):
    floor_id: str = Field(min_length=1)
    resource_id: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime


class CreateBookingResponse(BaseModel):
    booking_id: str


class CancelBookingResponse(BaseModel):
    booking_id: str
    status: str = "CANCELLED"


class ActiveBookingResponse(BaseModel):
    booking_id: str
    kind: ResourceKind
    resource_id: str
    resource_name: str
    floor_id: str
    floor_name: str
    floor_number: int
    start_time: datetime
    end_time: datetime


class RecommendRequest(BaseModel):
    kind: ResourceKind = ResourceKind.ROOM
    start_time: datetime
    end_time: datetime
    min_capacity: int = Field(default=1, ge=1)
    floor_number: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def validate_interval(self) -> "RecommendRequest":
        if ensure_utc(self.end_time) <= ensure_utc(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class RankedCandidateResponse(BaseModel):
    resource_id: str
    display_name: str
    kind: ResourceKind
    floor_id: str
    floor_name: str
    floor_number: int
    capacity: int = Field(ge=1)
    distance: float = Field(ge=0.0)
    usage_count: int = Field(ge=0)
    score: float = Field(ge=0.0)


@router.post(
    "/bookings",
    response_model=CreateBookingResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    payload: CreateBookingRequest,
    actor: Actor = Depends(get_actor),
    service: BookingLedgerService = Depends(get_booking_service),
) -> CreateBookingResponse:
    """Reserve a room or desk for the caller; overlapping requests get 409."""
    try:
        booking_id = service.create(
            floor_id=payload.floor_id,
            resource_id=payload.resource_id,
            start_time=payload.start_time,
            end_time=payload.end_time,
            user_id=actor.user_id,
        )
    except FloorbookError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        ) from exc
    return CreateBookingResponse(booking_id=booking_id)


@router.delete(
    "/bookings/{booking_id}",
    response_model=CancelBookingResponse,
    status_code=status.HTTP_200_OK,
)
def cancel_booking(
    booking_id: str,
    kind: ResourceKind = Query(...),
    actor: Actor = Depends(get_actor),
    service: BookingLedgerService = Depends(get_booking_service),
) -> CancelBookingResponse:
    try:
        service.cancel(booking_id=booking_id, user_id=actor.user_id, kind=kind)
    except FloorbookError as exc:
        raise to_http_exception(exc) from exc
    return CancelBookingResponse(booking_id=booking_id)


@router.get(
    "/bookings/mine",
    response_model=list[ActiveBookingResponse],
    status_code=status.HTTP_200_OK,
)
def list_my_bookings(
    actor: Actor = Depends(get_actor),
    service: BookingLedgerService = Depends(get_booking_service),
) -> list[ActiveBookingResponse]:
    return [
        ActiveBookingResponse(
            booking_id=item.booking_id,
            kind=item.kind,
            resource_id=item.resource_id,
            resource_name=item.resource_name,
            floor_id=item.floor_id,
            floor_name=item.floor_name,
            floor_number=item.floor_number,
            start_time=item.start_time,
            end_time=item.end_time,
        )
        for item in service.list_active_for_user(actor.user_id)
    ]


@router.post(
    "/recommendations",
    response_model=list[RankedCandidateResponse],
    status_code=status.HTTP_200_OK,
)
def recommend(
    payload: RecommendRequest,
    actor: Actor = Depends(get_actor),
    service: RecommendationService = Depends(get_recommendation_service),
) -> list[RankedCandidateResponse]:
    """Rank free resources for the interval by distance and the caller's history."""
    try:
        ranked = service.recommend(
            kind=payload.kind,
            start_time=payload.start_time,
            end_time=payload.end_time,
            min_capacity=payload.min_capacity,
            user_id=actor.user_id,
            floor_number=payload.floor_number,
        )
    except FloorbookError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected recommendation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute recommendations",
        ) from exc
    return [
        RankedCandidateResponse(
            resource_id=item.resource_id,
            display_name=item.display_name,
            kind=item.kind,
            floor_id=item.floor_id,
            floor_name=item.floor_name,
            floor_number=item.floor_number,
            capacity=item.capacity,
            distance=item.distance,
            usage_count=item.usage_count,
            score=item.score,
        )
        for item in ranked
    ]
