"""Cascade cancellation notices and the per-user notification inbox.

`CascadeNotifier` never opens its own transaction: the catalog hands it the
connection of the structural write, so the notification batch and the removal
of the resources commit or roll back together.
"""

from __future__ import annotations

import sqlite3
from enum import Enum
from typing import Optional, Sequence

from backend.domain.errors import NotFoundError
from backend.domain.models import (
    CascadeResult,
    FloorPlan,
    Notification,
    NotificationDraft,
    Resource,
    ResourceKind,
)
from backend.repository.data_repository import DataRepository
from backend.utils.clock import Clock, utc_now
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class RemovalReason(str, Enum):
    RESOURCE_REMOVED = "resource_removed"
    FLOOR_DELETED = "floor_deleted"


REASON_TAGS = {
    (RemovalReason.RESOURCE_REMOVED, ResourceKind.ROOM): "Room Deleted by Admin",
    (RemovalReason.RESOURCE_REMOVED, ResourceKind.DESK): "Desk Removed by Admin",
    (RemovalReason.FLOOR_DELETED, ResourceKind.ROOM): "Floor Plan Deleted by Admin",
    (RemovalReason.FLOOR_DELETED, ResourceKind.DESK): "Floor Plan Deleted by Admin",
}


def _resource_label(resource: Resource) -> str:
    if resource.kind is ResourceKind.ROOM:
        return f"Room {resource.name}"
    return resource.name


def build_cancellation_message(
    floor: FloorPlan,
    resource: Resource,
    reason: RemovalReason,
) -> str:
    label = _resource_label(resource)
    if reason is RemovalReason.FLOOR_DELETED:
        return (
            f"Urgent: Your booking for {label} (Floor {floor.floor_number}, {floor.name}) "
            "has been cancelled because the entire floor was removed."
        )
    return (
        f"Urgent: Your booking for {label} (Floor {floor.floor_number}, {floor.name}) "
        f"has been cancelled because the {resource.kind.value} was removed."
    )


class CascadeNotifier:
    """Turns removed resources into one notice per still-relevant booking."""

    def __init__(
        self,
        repository: DataRepository,
        clock: Optional[Clock] = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or utc_now

    def build_notifications(
        self,
        *,
        floor: FloorPlan,
        removed: Sequence[Resource],
        reason: RemovalReason,
    ) -> list[NotificationDraft]:
        now = self._clock()
        drafts: list[NotificationDraft] = []
        for resource in removed:
            for booking in resource.bookings:
                if booking.interval.end <= now:
                    continue
                drafts.append(
                    NotificationDraft(
                        user_id=booking.user_id,
                        message=build_cancellation_message(floor, resource, reason),
                        reason=REASON_TAGS[(reason, resource.kind)],
                        created_at=now,
                    )
                )
        return drafts

    def notify_removed(
        self,
        conn: sqlite3.Connection,
        *,
        floor: FloorPlan,
        removed: Sequence[Resource],
        reason: RemovalReason,
    ) -> CascadeResult:
        """Persist the whole batch on `conn`; the caller owns commit/rollback."""
        drafts = self.build_notifications(floor=floor, removed=removed, reason=reason)
        sent = self._repository.insert_notifications(conn, drafts)
        affected_users = len({draft.user_id for draft in drafts})
        if sent:
            logger.info(
                "Cascade notifications staged | floor_id=%s | reason=%s | removed=%s | "
                "notifications=%s | affected_users=%s",
                floor.floor_id,
                reason.value,
                len(removed),
                sent,
                affected_users,
            )
        return CascadeResult(notifications_sent=sent, affected_users=affected_users)


class NotificationService:
    """Read and dismiss side of the notification table."""

    def __init__(self, repository: DataRepository) -> None:
        self._repository = repository

    def list_unread(self, user_id: str) -> list[Notification]:
        with self._repository.read_snapshot() as conn:
            return self._repository.list_unread_notifications(conn, user_id)

    def mark_read(self, user_id: str, notification_id: Optional[int] = None) -> int:
        """Dismiss one notification, or every unread one when no id is given."""
        with self._repository.write_transaction() as conn:
            if notification_id is None:
                return self._repository.mark_all_notifications_read(conn, user_id)
            if not self._repository.mark_notification_read(
                conn,
                user_id=user_id,
                notification_id=notification_id,
            ):
                raise NotFoundError("Notification not found")
            return 1
