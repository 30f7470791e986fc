"""HTTP controller layer for the per-user notification inbox."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_actor, get_notification_service, to_http_exception
from backend.domain.errors import FloorbookError
from backend.domain.models import Actor
from backend.services.notification_service import NotificationService


router = APIRouter(tags=["notifications"])


class NotificationResponse(BaseModel):
    notification_id: int
    message: str
    reason: str
    created_at: datetime
    is_read: bool


class MarkReadRequest(BaseModel):
    notification_id: Optional[int] = Field(default=None, gt=0)


class MarkReadResponse(BaseModel):
    dismissed: int = Field(ge=0)


@router.get(
    "/notifications",
    response_model=list[NotificationResponse],
    status_code=status.HTTP_200_OK,
)
def list_notifications(
    actor: Actor = Depends(get_actor),
    service: NotificationService = Depends(get_notification_service),
) -> list[NotificationResponse]:
    """Unread notifications, newest first."""
    return [
        NotificationResponse(
            notification_id=item.notification_id,
            message=item.message,
            reason=item.reason,
            created_at=item.created_at,
            is_read=item.is_read,
        )
        for item in service.list_unread(actor.user_id)
    ]


@router.put(
    "/notifications/read",
    response_model=MarkReadResponse,
    status_code=status.HTTP_200_OK,
)
def mark_notifications_read(
    payload: MarkReadRequest,
    actor: Actor = Depends(get_actor),
    service: NotificationService = Depends(get_notification_service),
) -> MarkReadResponse:
    try:
        dismissed = service.mark_read(actor.user_id, payload.notification_id)
    except FloorbookError as exc:
        raise to_http_exception(exc) from exc
    return MarkReadResponse(dismissed=dismissed)
