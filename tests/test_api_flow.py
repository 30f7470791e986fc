from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from app import create_app
from backend.utils.config import get_settings


NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
SUPERADMIN = {"X-User-Id": "root-1", "X-User-Role": "SuperAdmin"}
ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob", "X-User-Role": "user"}


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _iso(hour: int) -> str:
    return f"2026-03-02T{hour:02d}:00:00Z"


def _build_test_settings(tmp_path, filename: str, seed_demo_data: bool = False):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        seed_demo_data=seed_demo_data,
    )


def _ground_floor_payload(**overrides):
    payload = {
        "name": "Ground Floor",
        "floor_number": 0,
        "rooms": [
            {"room_id": 101, "name": "Atrium", "capacity": 8, "coordinates": {"x": 3, "y": 4}},
            {"room_id": "102", "name": "Focus", "capacity": 2, "coordinates": {"x": 10, "y": 0}},
        ],
        "desks": [{"desk_id": "S-1", "coordinates": {"x": 1, "y": 1}}],
    }
    payload.update(overrides)
    return payload


def test_requests_without_identity_are_rejected(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "api_identity.db"), clock=_Clock(NOW))

    with TestClient(app) as client:
        response = client.get("/floorplans")

    assert response.status_code == 401


def test_startup_seeds_demo_floors_once(tmp_path):
    settings = _build_test_settings(tmp_path, "api_seed.db", seed_demo_data=True)

    with TestClient(create_app(settings, clock=_Clock(NOW))) as client:
        first = client.get("/floorplans", headers=ALICE).json()
    with TestClient(create_app(settings, clock=_Clock(NOW))) as client:
        second = client.get("/floorplans", headers=ALICE).json()

    assert [plan["floor_number"] for plan in first] == [0, 1]
    assert [plan["floor_id"] for plan in second] == [plan["floor_id"] for plan in first]
    assert [room["room_id"] for room in first[0]["rooms"]] == ["101", "102"]
    assert [desk["desk_id"] for desk in first[1]["desks"]] == ["S-1", "S-2", "S-3"]


def test_booking_and_floor_plan_end_to_end_flow(tmp_path):
    clock = _Clock(NOW)
    app = create_app(_build_test_settings(tmp_path, "api_flow.db"), clock=clock)

    with TestClient(app) as client:
        created = client.post("/floorplans", json=_ground_floor_payload(), headers=ADMIN)
        assert created.status_code == 201
        body = created.json()
        assert body["version"] == 1
        assert body["created"] is True
        floor_id = body["floor_id"]

        duplicate = client.post("/floorplans", json=_ground_floor_payload(name="ground-floor", floor_number=4), headers=ADMIN)
        assert duplicate.status_code == 409
        assert duplicate.json()["detail"]["error"] == "uniqueness_conflict"
        assert duplicate.json()["detail"]["field"] == "name"

        bad_desk = client.post(
            "/floorplans",
            json=_ground_floor_payload(name="Annex", floor_number=5, rooms=[], desks=[{"desk_id": "D1"}]),
            headers=ADMIN,
        )
        assert bad_desk.status_code == 400
        assert bad_desk.json()["detail"]["field"] == "desk_id"

        booked = client.post(
            "/bookings",
            json={"floor_id": floor_id, "resource_id": "101", "start_time": _iso(10), "end_time": _iso(11)},
            headers=ALICE,
        )
        assert booked.status_code == 201
        alice_booking = booked.json()["booking_id"]

        clash = client.post(
            "/bookings",
            json={"floor_id": floor_id, "resource_id": "101", "start_time": "2026-03-02T10:30:00Z", "end_time": _iso(12)},
            headers=BOB,
        )
        assert clash.status_code == 409
        assert clash.json()["detail"]["error"] == "scheduling_conflict"

        past = client.post(
            "/bookings",
            json={"floor_id": floor_id, "resource_id": "102", "start_time": _iso(6), "end_time": _iso(7)},
            headers=BOB,
        )
        assert past.status_code == 400

        desk = client.post(
            "/bookings",
            json={"floor_id": floor_id, "resource_id": "S-1", "start_time": _iso(13), "end_time": _iso(14)},
            headers=BOB,
        )
        assert desk.status_code == 201

        mine = client.get("/bookings/mine", headers=ALICE).json()
        assert [(item["resource_id"], item["resource_name"]) for item in mine] == [("101", "Atrium")]

        recommended = client.post(
            "/recommendations",
            json={"kind": "room", "start_time": _iso(10), "end_time": _iso(11)},
            headers=ALICE,
        )
        assert recommended.status_code == 200
        assert [item["resource_id"] for item in recommended.json()] == ["102"]

        later = client.post(
            "/recommendations",
            json={"kind": "room", "start_time": _iso(15), "end_time": _iso(16), "min_capacity": 1},
            headers=ALICE,
        ).json()
        assert [item["resource_id"] for item in later] == ["101", "102"]
        assert later[0]["score"] == 1005.0

        inverted = client.post(
            "/recommendations",
            json={"kind": "desk", "start_time": _iso(11), "end_time": _iso(10)},
            headers=ALICE,
        )
        assert inverted.status_code == 422

        foreign_cancel = client.delete(f"/bookings/{alice_booking}", params={"kind": "room"}, headers=BOB)
        assert foreign_cancel.status_code == 404

        updated = client.post(
            "/floorplans",
            json=_ground_floor_payload(floor_id=floor_id, version=1, desks=[]),
            headers=ADMIN,
        )
        assert updated.status_code == 200
        assert updated.json()["version"] == 2
        assert updated.json()["notifications_sent"] == 1
        assert updated.json()["affected_users"] == 1

        stale = client.post(
            "/floorplans",
            json=_ground_floor_payload(floor_id=floor_id, version=1, name="Lobby"),
            headers=ADMIN,
        )
        assert stale.status_code == 409
        assert stale.json()["detail"]["error"] == "version_conflict"
        assert stale.json()["detail"]["stored_version"] == 2

        forced = client.post(
            "/floorplans",
            json=_ground_floor_payload(floor_id=floor_id, version=1, name="Lobby"),
            headers=SUPERADMIN,
        )
        assert forced.status_code == 200
        assert forced.json()["version"] == 3

        plan = client.get(f"/floorplans/{floor_id}", headers=ALICE).json()
        assert plan["name"] == "Lobby"
        assert plan["rooms"][0]["booked_intervals"] == [
            {"start_time": "2026-03-02T10:00:00Z", "end_time": "2026-03-02T11:00:00Z"}
        ]

        bob_inbox = client.get("/notifications", headers=BOB).json()
        assert len(bob_inbox) == 1
        assert bob_inbox[0]["reason"] == "Desk Removed by Admin"

        forbidden = client.delete(f"/floorplans/{floor_id}", headers=ALICE)
        assert forbidden.status_code == 403

        clock.now = NOW + timedelta(minutes=1)
        deleted = client.delete(f"/floorplans/{floor_id}", headers=ADMIN)
        assert deleted.status_code == 200
        assert deleted.json() == {"notifications_sent": 1, "affected_users": 1}

        assert client.get(f"/floorplans/{floor_id}", headers=ALICE).status_code == 404
        assert client.get("/bookings/mine", headers=ALICE).json() == []

        alice_inbox = client.get("/notifications", headers=ALICE).json()
        assert [item["reason"] for item in alice_inbox] == ["Floor Plan Deleted by Admin"]
        dismissed = client.put(
            "/notifications/read",
            json={"notification_id": alice_inbox[0]["notification_id"]},
            headers=ALICE,
        )
        assert dismissed.json() == {"dismissed": 1}
        assert client.get("/notifications", headers=ALICE).json() == []

        missing = client.put("/notifications/read", json={"notification_id": 999}, headers=ALICE)
        assert missing.status_code == 404

        bob_dismissed = client.put("/notifications/read", json={}, headers=BOB)
        assert bob_dismissed.json() == {"dismissed": 1}


def test_cancel_then_rebook_over_http(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "api_rebook.db"), clock=_Clock(NOW))

    with TestClient(app) as client:
        floor_id = client.post("/floorplans", json=_ground_floor_payload(), headers=ADMIN).json()["floor_id"]
        request = {"floor_id": floor_id, "resource_id": "S-1", "start_time": _iso(9), "end_time": _iso(10)}

        booking_id = client.post("/bookings", json=request, headers=ALICE).json()["booking_id"]
        cancelled = client.delete(f"/bookings/{booking_id}", params={"kind": "desk"}, headers=ALICE)
        assert cancelled.status_code == 200
        assert cancelled.json() == {"booking_id": booking_id, "status": "CANCELLED"}

        assert client.post("/bookings", json=request, headers=BOB).status_code == 201


def test_out_of_range_integers_are_rejected_as_client_errors(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "api_int_range.db"), clock=_Clock(NOW))

    with TestClient(app) as client:
        floor_id = client.post("/floorplans", json=_ground_floor_payload(), headers=ADMIN).json()["floor_id"]

        huge_floor = client.post("/floorplans", json=_ground_floor_payload(name="Sky", floor_number=2**63, rooms=[]), headers=ADMIN)
        huge_version = client.post(
            "/floorplans",
            json=_ground_floor_payload(floor_id=floor_id, version=2**63),
            headers=ADMIN,
        )
        padded = client.post(
            "/floorplans",
            json=_ground_floor_payload(
                name="First",
                floor_number=1,
                rooms=[{"room_id": " 101 ", "name": "Other", "capacity": 4}],
                desks=[],
            ),
            headers=ADMIN,
        )

    assert huge_floor.status_code == 422
    assert huge_version.status_code == 422
    assert padded.status_code == 409
    assert padded.json()["detail"]["field"] == "room_id"
    assert padded.json()["detail"]["value"] == "101"
