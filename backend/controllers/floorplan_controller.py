"""HTTP controller layer for floor plan publishing."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field, field_validator

from backend.controllers.dependencies import get_actor, get_catalog_service, to_http_exception
from backend.domain.constraints import MAX_STORED_INTEGER
from backend.domain.errors import FloorbookError
from backend.domain.models import Actor, Coordinates, Desk, FloorPlan, Room
from backend.services.catalog_service import ResourceCatalogService
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["floorplans"])


class CoordinatesPayload(BaseModel):
    x: float = 0.0
    y: float = 0.0


class RoomPayload(BaseModel):
    room_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    capacity: int = Field(ge=1, le=MAX_STORED_INTEGER)
    coordinates: CoordinatesPayload = Field(default_factory=CoordinatesPayload)

    @field_validator("room_id", mode="before")
    @classmethod
    def coerce_room_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value


class DeskPayload(BaseModel):
    desk_id: str = Field(min_length=1)
    coordinates: CoordinatesPayload = Field(default_factory=CoordinatesPayload)


class FloorPlanUpsertRequest(BaseModel):
    """Create when `floor_id` is absent, otherwise replace the floor's layout."""

    floor_id: Optional[str] = None
    name: str = Field(min_length=1)
    floor_number: int = Field(ge=0, le=MAX_STORED_INTEGER)
    version: Optional[int] = Field(default=None, ge=1, le=MAX_STORED_INTEGER)
    rooms: list[RoomPayload] = Field(default_factory=list)
    desks: list[DeskPayload] = Field(default_factory=list)


class FloorPlanWriteResponse(BaseModel):
    floor_id: str
    version: int = Field(ge=1)
    created: bool
    notifications_sent: int = Field(ge=0)
    affected_users: int = Field(ge=0)


class FloorPlanDeleteResponse(BaseModel):
    notifications_sent: int = Field(ge=0)
    affected_users: int = Field(ge=0)


class BookedIntervalResponse(BaseModel):
    start_time: datetime
    end_time: datetime


class RoomResponse(BaseModel):
    room_id: str
    name: str
    capacity: int
    coordinates: CoordinatesPayload
    booked_intervals: list[BookedIntervalResponse]


class DeskResponse(BaseModel):
    desk_id: str
    capacity: int
    coordinates: CoordinatesPayload
    booked_intervals: list[BookedIntervalResponse]


class FloorPlanResponse(BaseModel):
    floor_id: str
    name: str
    floor_number: int
    version: int
    last_updated: Optional[datetime]
    rooms: list[RoomResponse]
    desks: list[DeskResponse]


def _booked(resource: Room | Desk) -> list[BookedIntervalResponse]:
    return [
        BookedIntervalResponse(start_time=b.interval.start, end_time=b.interval.end)
        for b in resource.bookings
    ]


def _to_response(plan: FloorPlan) -> FloorPlanResponse:
    return FloorPlanResponse(
        floor_id=plan.floor_id,
        name=plan.name,
        floor_number=plan.floor_number,
        version=plan.version,
        last_updated=plan.last_updated,
        rooms=[
            RoomResponse(
                room_id=room.resource_id,
                name=room.name,
                capacity=room.capacity,
                coordinates=CoordinatesPayload(x=room.coordinates.x, y=room.coordinates.y),
                booked_intervals=_booked(room),
            )
            for room in plan.rooms
        ],
        desks=[
            DeskResponse(
                desk_id=desk.resource_id,
                capacity=desk.capacity,
                coordinates=CoordinatesPayload(x=desk.coordinates.x, y=desk.coordinates.y),
                booked_intervals=_booked(desk),
            )
            for desk in plan.desks
        ],
    )


@router.get(
    "/floorplans",
    response_model=list[FloorPlanResponse],
    status_code=status.HTTP_200_OK,
)
def list_floor_plans(
    _: Actor = Depends(get_actor),
    service: ResourceCatalogService = Depends(get_catalog_service),
) -> list[FloorPlanResponse]:
    return [_to_response(plan) for plan in service.list_floor_plans()]


@router.get(
    "/floorplans/{floor_id}",
    response_model=FloorPlanResponse,
    status_code=status.HTTP_200_OK,
)
def get_floor_plan(
    floor_id: str,
    _: Actor = Depends(get_actor),
    service: ResourceCatalogService = Depends(get_catalog_service),
) -> FloorPlanResponse:
    try:
        return _to_response(service.get_floor_plan(floor_id))
    except FloorbookError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    "/floorplans",
    response_model=FloorPlanWriteResponse,
    status_code=status.HTTP_200_OK,
)
def create_or_update_floor_plan(
    payload: FloorPlanUpsertRequest,
    response: Response,
    actor: Actor = Depends(get_actor),
    service: ResourceCatalogService = Depends(get_catalog_service),
) -> FloorPlanWriteResponse:
    """Publish a floor plan; removed resources cancel and notify their bookings."""
    try:
        result = service.create_or_update(
            actor,
            floor_id=payload.floor_id,
            name=payload.name,
            floor_number=payload.floor_number,
            rooms=[
                Room(
                    resource_id=room.room_id,
                    name=room.name,
                    capacity=room.capacity,
                    coordinates=Coordinates(x=room.coordinates.x, y=room.coordinates.y),
                )
                for room in payload.rooms
            ],
            desks=[
                Desk(
                    resource_id=desk.desk_id,
                    coordinates=Coordinates(x=desk.coordinates.x, y=desk.coordinates.y),
                )
                for desk in payload.desks
            ],
            client_version=payload.version,
        )
    except FloorbookError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected floor plan write failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save floor plan",
        ) from exc

    if result.created:
        response.status_code = status.HTTP_201_CREATED
    return FloorPlanWriteResponse(
        floor_id=result.floor_id,
        version=result.version,
        created=result.created,
        notifications_sent=result.notifications_sent,
        affected_users=result.affected_users,
    )


@router.delete(
    "/floorplans/{floor_id}",
    response_model=FloorPlanDeleteResponse,
    status_code=status.HTTP_200_OK,
)
def delete_floor_plan(
    floor_id: str,
    actor: Actor = Depends(get_actor),
    service: ResourceCatalogService = Depends(get_catalog_service),
) -> FloorPlanDeleteResponse:
    try:
        result = service.delete(actor, floor_id)
    except FloorbookError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected floor plan delete failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete floor plan",
        ) from exc
    return FloorPlanDeleteResponse(
        notifications_sent=result.notifications_sent,
        affected_users=result.affected_users,
    )
