"""Domain models for floor plans, bookings and recommendations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar, Iterator, Optional, Union


class ResourceKind(str, Enum):
    ROOM = "room"
    DESK = "desk"


@dataclass(frozen=True)
class Actor:
    """Already-authenticated caller identity handed in by the routing layer."""

    user_id: str
    role: str


@dataclass(frozen=True)
class Coordinates:
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class TimeInterval:
    """Half-open interval `[start, end)` in UTC."""

    start: datetime
    end: datetime

    def overlaps(self, other: "TimeInterval") -> bool:
        return self.start < other.end and self.end > other.start


@dataclass(frozen=True)
class Booking:
    booking_id: str
    user_id: str
    interval: TimeInterval
    created_at: datetime


@dataclass(frozen=True)
class Room:
    kind: ClassVar[ResourceKind] = ResourceKind.ROOM

    resource_id: str
    name: str
    capacity: int
    coordinates: Coordinates = field(default_factory=Coordinates)
    bookings: tuple[Booking, ...] = ()

    @property
    def display_name(self) -> str:
        return self.name


@dataclass(frozen=True)
class Desk:
    kind: ClassVar[ResourceKind] = ResourceKind.DESK

    resource_id: str
    coordinates: Coordinates = field(default_factory=Coordinates)
    bookings: tuple[Booking, ...] = ()

    @property
    def capacity(self) -> int:
        return 1

    @property
    def name(self) -> str:
        return f"Desk {self.resource_id}"

    @property
    def display_name(self) -> str:
        return self.name


Resource = Union[Room, Desk]


@dataclass(frozen=True)
class FloorPlan:
    floor_id: str
    name: str
    floor_number: int
    version: int
    rooms: tuple[Room, ...] = ()
    desks: tuple[Desk, ...] = ()
    last_updated: Optional[datetime] = None

    def resources(self, kind: Optional[ResourceKind] = None) -> Iterator[Resource]:
        """Yield rooms then desks, in their stored order."""
        if kind in (None, ResourceKind.ROOM):
            yield from self.rooms
        if kind in (None, ResourceKind.DESK):
            yield from self.desks

    def find_resource(self, resource_id: str) -> Optional[Resource]:
        for resource in self.resources():
            if resource.resource_id == resource_id:
                return resource
        return None


@dataclass(frozen=True)
class UsageEntry:
    resource_id: str
    count: int
    last_booked: datetime


@dataclass(frozen=True)
class Notification:
    notification_id: int
    user_id: str
    message: str
    reason: str
    created_at: datetime
    is_read: bool = False


@dataclass(frozen=True)
class NotificationDraft:
    user_id: str
    message: str
    reason: str
    created_at: datetime


@dataclass(frozen=True)
class ActiveBooking:
    """Booking projection for the "my bookings" view."""

    booking_id: str
    kind: ResourceKind
    resource_id: str
    resource_name: str
    floor_id: str
    floor_name: str
    floor_number: int
    start_time: datetime
    end_time: datetime


@dataclass(frozen=True)
class CascadeResult:
    notifications_sent: int
    affected_users: int


@dataclass(frozen=True)
class FloorPlanWriteResult:
    floor_id: str
    version: int
    created: bool
    notifications_sent: int = 0
    affected_users: int = 0


@dataclass(frozen=True)
class RankedCandidate:
    resource_id: str
    display_name: str
    kind: ResourceKind
    floor_id: str
    floor_name: str
    floor_number: int
    capacity: int
    distance: float
    usage_count: int
    score: float
