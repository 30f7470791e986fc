"""Tests for floor plan, interval and scoring validation rules.

Covers the field checks, the per-floor uniqueness branches and the
half-open interval semantics shared by booking and recommendation.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.domain.constraints import (
    MAX_STORED_INTEGER,
    RecommendationWeights,
    canonical_rooms,
    ensure_utc,
    interval_is_free,
    intervals_overlap,
    normalize_name,
    required_capacity,
    validate_booking_interval,
    validate_client_version,
    validate_floor_plan_fields,
    validate_floor_resources,
    validate_recommendation_weights,
)
from backend.domain.errors import UniquenessConflict, ValidationError
from backend.domain.models import Coordinates, Desk, ResourceKind, Room, TimeInterval


DESK_PATTERN = r"^S-\d+$"
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def interval(start_hour: int, end_hour: int) -> TimeInterval:
    return TimeInterval(
        start=datetime(2026, 3, 2, start_hour, tzinfo=timezone.utc),
        end=datetime(2026, 3, 2, end_hour, tzinfo=timezone.utc),
    )


def valid_weights(**overrides) -> RecommendationWeights:
    """Return the default scoring weights, optionally overriding fields."""
    defaults = {"base_score": 1000.0, "vertical_penalty": 20.0, "usage_weight": 10.0}
    defaults.update(overrides)
    return RecommendationWeights(**defaults)


# --- Name normalization ---

@pytest.mark.parametrize(
    "first, second",
    [("Floor-1", "floor 1"), ("Main Hall", "mainhall"), ("  R&D  ", "rd")],
)
def test_normalized_names_collide(first: str, second: str) -> None:
    assert normalize_name(first) == normalize_name(second)


def test_ensure_utc_handles_naive_and_offset_values() -> None:
    naive = datetime(2026, 3, 2, 10, 0)
    offset = datetime(2026, 3, 2, 12, 0, tzinfo=timezone(timedelta(hours=2)))

    assert ensure_utc(naive) == datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
    assert ensure_utc(offset).tzinfo == timezone.utc
    assert ensure_utc(offset).hour == 10


# --- Half-open intervals ---

def test_touching_intervals_do_not_overlap() -> None:
    assert not intervals_overlap(interval(10, 11), interval(11, 12))
    assert not intervals_overlap(interval(11, 12), interval(10, 11))


def test_partial_and_containing_intervals_overlap() -> None:
    assert intervals_overlap(interval(10, 12), interval(11, 13))
    assert intervals_overlap(interval(9, 14), interval(10, 11))
    assert intervals_overlap(interval(10, 11), interval(10, 11))


def test_interval_is_free_against_booked_list() -> None:
    booked = [interval(8, 10), interval(12, 13)]

    assert interval_is_free(interval(10, 12), booked)
    assert not interval_is_free(interval(9, 11), booked)
    assert interval_is_free(interval(9, 11), [])


# --- Booking interval validation ---

def test_end_before_or_equal_start_raises() -> None:
    with pytest.raises(ValidationError, match="End time must be after start time"):
        validate_booking_interval(interval(11, 11), now=NOW, clock_skew_seconds=60)


def test_start_in_the_past_beyond_skew_raises() -> None:
    past = TimeInterval(start=NOW - timedelta(seconds=61), end=NOW + timedelta(hours=1))

    with pytest.raises(ValidationError, match="Cannot book a time in the past"):
        validate_booking_interval(past, now=NOW, clock_skew_seconds=60)


def test_start_within_skew_passes() -> None:
    recent = TimeInterval(start=NOW - timedelta(seconds=60), end=NOW + timedelta(hours=1))
    validate_booking_interval(recent, now=NOW, clock_skew_seconds=60)


# --- Floor plan fields ---

def test_valid_floor_fields_pass() -> None:
    validate_floor_plan_fields(
        name="Ground",
        floor_number=0,
        rooms=[Room(resource_id="101", name="Atrium", capacity=4)],
        desks=[Desk(resource_id="S-1")],
    )


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"name": "", "floor_number": 0}, "name"),
        ({"name": "---", "floor_number": 0}, "name"),
        ({"name": "Ground", "floor_number": -1}, "floor_number"),
        ({"name": "Ground", "floor_number": True}, "floor_number"),
    ],
)
def test_invalid_floor_fields_raise(kwargs, field: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_floor_plan_fields(rooms=[], desks=[], **kwargs)
    assert exc_info.value.field == field


def test_room_capacity_must_be_positive_integer() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_floor_plan_fields(
            name="Ground",
            floor_number=0,
            rooms=[Room(resource_id="101", name="Atrium", capacity=0)],
            desks=[],
        )
    assert exc_info.value.field == "capacity"


def test_non_finite_coordinates_raise() -> None:
    with pytest.raises(ValidationError):
        validate_floor_plan_fields(
            name="Ground",
            floor_number=0,
            rooms=[],
            desks=[Desk(resource_id="S-1", coordinates=Coordinates(float("nan"), 0.0))],
        )


# --- Per-floor resource rules ---

def test_duplicate_room_names_conflict_after_normalization() -> None:
    rooms = [
        Room(resource_id="101", name="Board Room", capacity=4),
        Room(resource_id="102", name="board-room", capacity=6),
    ]
    with pytest.raises(UniquenessConflict) as exc_info:
        validate_floor_resources(rooms=rooms, desks=[], desk_id_pattern=DESK_PATTERN)
    assert exc_info.value.field == "room_name"


def test_duplicate_room_ids_conflict() -> None:
    rooms = [
        Room(resource_id="101", name="A", capacity=4),
        Room(resource_id="101", name="B", capacity=4),
    ]
    with pytest.raises(UniquenessConflict) as exc_info:
        validate_floor_resources(rooms=rooms, desks=[], desk_id_pattern=DESK_PATTERN)
    assert exc_info.value.field == "room_id"


def test_duplicate_desk_ids_conflict() -> None:
    with pytest.raises(UniquenessConflict) as exc_info:
        validate_floor_resources(
            rooms=[],
            desks=[Desk(resource_id="S-1"), Desk(resource_id="S-1")],
            desk_id_pattern=DESK_PATTERN,
        )
    assert exc_info.value.field == "desk_id"


def test_desk_id_reusing_a_room_id_conflicts() -> None:
    with pytest.raises(UniquenessConflict):
        validate_floor_resources(
            rooms=[Room(resource_id="S-1", name="Odd", capacity=2)],
            desks=[Desk(resource_id="S-1")],
            desk_id_pattern=DESK_PATTERN,
        )


@pytest.mark.parametrize("desk_id", ["S1", "s-1", "D-4", "S-", "S-1a"])
def test_desk_ids_outside_pattern_raise(desk_id: str) -> None:
    with pytest.raises(ValidationError):
        validate_floor_resources(rooms=[], desks=[Desk(resource_id=desk_id)], desk_id_pattern=DESK_PATTERN)


def test_valid_resources_pass() -> None:
    validate_floor_resources(
        rooms=[Room(resource_id="101", name="Atrium", capacity=4)],
        desks=[Desk(resource_id="S-1"), Desk(resource_id="S-45")],
        desk_id_pattern=DESK_PATTERN,
    )


# --- Capacity and weights ---

def test_desks_always_require_capacity_one() -> None:
    assert required_capacity(ResourceKind.DESK, 8) == 1
    assert required_capacity(ResourceKind.ROOM, 8) == 8


def test_valid_weights_pass() -> None:
    validate_recommendation_weights(valid_weights())


@pytest.mark.parametrize(
    "overrides",
    [{"base_score": 0.0}, {"vertical_penalty": -1.0}, {"usage_weight": -0.5}],
)
def test_invalid_weights_raise(overrides) -> None:
    with pytest.raises(ValueError):
        validate_recommendation_weights(valid_weights(**overrides))


def test_canonical_rooms_strip_surrounding_whitespace() -> None:
    rooms = [
        Room(resource_id=" 101", name="A", capacity=4),
        Room(resource_id="102", name="B", capacity=4),
    ]

    canonical = canonical_rooms(rooms)

    assert [room.resource_id for room in canonical] == ["101", "102"]
    assert canonical[1] is rooms[1]


@pytest.mark.parametrize("version", [0, 2**63, True])
def test_client_version_out_of_range_raises(version) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_client_version(version)
    assert exc_info.value.field == "version"


def test_floor_number_beyond_stored_range_raises() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_floor_plan_fields(name="Sky", floor_number=MAX_STORED_INTEGER + 1, rooms=[], desks=[])
    assert exc_info.value.field == "floor_number"
