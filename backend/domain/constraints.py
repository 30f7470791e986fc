"""Domain-level validation rules for floor plans, intervals and scoring."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterable, Sequence

from backend.domain.errors import UniquenessConflict, ValidationError
from backend.domain.models import Coordinates, Desk, ResourceKind, Room, TimeInterval


_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")

# Largest value an SQLite INTEGER column holds.
MAX_STORED_INTEGER = 2**63 - 1


@dataclass(frozen=True)
class RecommendationWeights:
    base_score: float
    vertical_penalty: float
    usage_weight: float


def validate_recommendation_weights(weights: RecommendationWeights) -> None:
    if weights.base_score <= 0.0:
        raise ValueError("base_score must be > 0")
    if weights.vertical_penalty < 0.0:
        raise ValueError("vertical_penalty must be >= 0")
    if weights.usage_weight < 0.0:
        raise ValueError("usage_weight must be >= 0")


def normalize_name(value: str) -> str:
    """Strip non-alphanumerics and lower-case, so 'Floor-1' == 'floor 1'."""
    return _NON_ALPHANUMERIC.sub("", value).lower()


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def intervals_overlap(first: TimeInterval, second: TimeInterval) -> bool:
    """Half-open overlap test shared by booking and recommendation paths."""
    return first.overlaps(second)


def interval_is_free(interval: TimeInterval, booked: Iterable[TimeInterval]) -> bool:
    return not any(intervals_overlap(interval, existing) for existing in booked)


def _validate_coordinates(coordinates: Coordinates, label: str) -> None:
    for axis in (coordinates.x, coordinates.y):
        if not math.isfinite(axis):
            raise ValidationError(f"{label} coordinates must be finite numbers", field="coordinates")


def validate_floor_plan_fields(
    *,
    name: str,
    floor_number: int,
    rooms: Iterable[Room],
    desks: Iterable[Desk],
) -> None:
    """Field-level checks that need no stored state."""
    if not name or not name.strip():
        raise ValidationError("name must be a non-empty string", field="name")
    if not normalize_name(name):
        raise ValidationError("name must contain at least one letter or digit", field="name")
    if isinstance(floor_number, bool) or not isinstance(floor_number, int):
        raise ValidationError("floor_number must be an integer", field="floor_number")
    if floor_number < 0:
        raise ValidationError("floor_number must be >= 0", field="floor_number")
    if floor_number > MAX_STORED_INTEGER:
        raise ValidationError(f"floor_number must be <= {MAX_STORED_INTEGER}", field="floor_number")

    for room in rooms:
        if not room.resource_id or not room.resource_id.strip():
            raise ValidationError("room id must be a non-empty string", field="room_id")
        if not room.name or not room.name.strip():
            raise ValidationError(f"Room '{room.resource_id}' needs a name", field="room_name")
        if (
            isinstance(room.capacity, bool)
            or not isinstance(room.capacity, int)
            or not 1 <= room.capacity <= MAX_STORED_INTEGER
        ):
            raise ValidationError(
                f"Room '{room.resource_id}' capacity must be an integer between 1 and {MAX_STORED_INTEGER}",
                field="capacity",
            )
        _validate_coordinates(room.coordinates, f"Room '{room.resource_id}'")

    for desk in desks:
        if not desk.resource_id or not desk.resource_id.strip():
            raise ValidationError("desk id must be a non-empty string", field="desk_id")
        _validate_coordinates(desk.coordinates, f"Desk '{desk.resource_id}'")


def canonical_rooms(rooms: Sequence[Room]) -> list[Room]:
    """Strip surrounding whitespace from room ids so " 101" and "101" are one id."""
    return [
        room if room.resource_id == room.resource_id.strip()
        else replace(room, resource_id=room.resource_id.strip())
        for room in rooms
    ]


def validate_client_version(client_version: int) -> None:
    if isinstance(client_version, bool) or not isinstance(client_version, int):
        raise ValidationError("version must be an integer", field="version")
    if not 1 <= client_version <= MAX_STORED_INTEGER:
        raise ValidationError(
            f"version must be between 1 and {MAX_STORED_INTEGER}",
            field="version",
        )


def validate_floor_resources(
    *,
    rooms: Iterable[Room],
    desks: Iterable[Desk],
    desk_id_pattern: str,
) -> None:
    """Per-floor uniqueness and desk id format checks."""
    seen_room_names: set[str] = set()
    seen_local_ids: set[str] = set()
    for room in rooms:
        normalized = normalize_name(room.name)
        if normalized in seen_room_names:
            raise UniquenessConflict(
                "room_name",
                room.name,
                f"Duplicate room name '{room.name}' found on this floor",
            )
        seen_room_names.add(normalized)
        if room.resource_id in seen_local_ids:
            raise UniquenessConflict(
                "room_id",
                room.resource_id,
                f"Duplicate room id '{room.resource_id}' found on this floor",
            )
        seen_local_ids.add(room.resource_id)

    pattern = re.compile(desk_id_pattern)
    seen_desk_ids: set[str] = set()
    for desk in desks:
        normalized = normalize_name(desk.resource_id)
        if normalized in seen_desk_ids:
            raise UniquenessConflict(
                "desk_id",
                desk.resource_id,
                f"Duplicate desk id '{desk.resource_id}' found on this floor",
            )
        seen_desk_ids.add(normalized)
        if desk.resource_id in seen_local_ids:
            raise UniquenessConflict(
                "desk_id",
                desk.resource_id,
                f"Desk id '{desk.resource_id}' is already used by a room on this floor",
            )
        seen_local_ids.add(desk.resource_id)
        if not pattern.fullmatch(desk.resource_id):
            raise ValidationError(
                f"Desk id '{desk.resource_id}' must match {desk_id_pattern} (e.g. S-1, S-45)",
                field="desk_id",
            )


def validate_booking_interval(
    interval: TimeInterval,
    *,
    now: datetime,
    clock_skew_seconds: int,
) -> None:
    if interval.end <= interval.start:
        raise ValidationError("End time must be after start time", field="end_time")
    if (now - interval.start).total_seconds() > clock_skew_seconds:
        raise ValidationError("Cannot book a time in the past", field="start_time")


def required_capacity(kind: ResourceKind, min_capacity: int) -> int:
    """Desks always seat exactly one person."""
    if kind is ResourceKind.DESK:
        return 1
    return max(1, min_capacity)
