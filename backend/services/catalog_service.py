"""Floor plan catalog: validated structural writes with optimistic versioning."""

from __future__ import annotations

import sqlite3
from typing import Optional, Sequence
from uuid import uuid4

from backend.domain.constraints import (
    canonical_rooms,
    normalize_name,
    validate_client_version,
    validate_floor_plan_fields,
    validate_floor_resources,
)
from backend.domain.errors import (
    AuthorizationError,
    NotFoundError,
    UniquenessConflict,
    ValidationError,
    VersionConflict,
)
from backend.domain.models import (
    Actor,
    CascadeResult,
    Desk,
    FloorPlan,
    FloorPlanWriteResult,
    Room,
)
from backend.repository.data_repository import DataRepository
from backend.services.notification_service import CascadeNotifier, RemovalReason
from backend.utils.clock import Clock, utc_now
from backend.utils.config import Settings, get_settings
from backend.utils.locks import KeyedLockRegistry
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class ResourceCatalogService:
    """Owns FloorPlan aggregates and their identity/uniqueness invariants."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        notifier: Optional[CascadeNotifier] = None,
        settings: Optional[Settings] = None,
        locks: Optional[KeyedLockRegistry] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._clock = clock or utc_now
        self._notifier = notifier or CascadeNotifier(self._repository, clock=self._clock)
        self._locks = locks or KeyedLockRegistry()

    def list_floor_plans(self) -> list[FloorPlan]:
        with self._repository.read_snapshot() as conn:
            return self._repository.load_floor_plans(conn)

    def get_floor_plan(self, floor_id: str) -> FloorPlan:
        with self._repository.read_snapshot() as conn:
            plan = self._repository.load_floor_plan(conn, floor_id)
        if plan is None:
            raise NotFoundError("Floor plan not found")
        return plan

    def _check_floor_uniqueness(
        self,
        conn: sqlite3.Connection,
        *,
        floor_id: Optional[str],
        name: str,
        floor_number: int,
    ) -> None:
        normalized = normalize_name(name)
        for row in self._repository.list_other_floor_identities(conn, floor_id):
            if str(row["normalized_name"]) == normalized:
                raise UniquenessConflict(
                    "name",
                    name,
                    f"Floor name '{name}' is too similar to existing '{row['name']}'",
                )
            if int(row["floor_number"]) == floor_number:
                raise UniquenessConflict(
                    "floor_number",
                    floor_number,
                    f"Floor number '{floor_number}' is already taken",
                )

    def _check_global_room_ids(
        self,
        conn: sqlite3.Connection,
        *,
        floor_id: Optional[str],
        rooms: Sequence[Room],
    ) -> None:
        owners = self._repository.find_room_id_owners(
            conn,
            [room.resource_id for room in rooms],
            floor_id,
        )
        for room in rooms:
            if room.resource_id in owners:
                raise UniquenessConflict(
                    "room_id",
                    room.resource_id,
                    f"Room id '{room.resource_id}' is already used on floor "
                    f"'{owners[room.resource_id]}'",
                )

    def create_or_update(
        self,
        actor: Actor,
        *,
        name: str,
        floor_number: int,
        rooms: Sequence[Room] = (),
        desks: Sequence[Desk] = (),
        floor_id: Optional[str] = None,
        client_version: Optional[int] = None,
    ) -> FloorPlanWriteResult:
        """Create a floor (version 1) or replace an existing floor's layout.

        Every check runs before the first write. On update, resources absent
        from the submitted layout are cancelled through the cascade notifier in
        the same transaction as the structural commit.
        """
        rooms = canonical_rooms(rooms)
        desks = list(desks)
        validate_floor_plan_fields(
            name=name,
            floor_number=floor_number,
            rooms=rooms,
            desks=desks,
        )
        if floor_id is not None and client_version is None:
            raise ValidationError("version is required when updating a floor plan", field="version")
        if client_version is not None:
            validate_client_version(client_version)
        name = name.strip()

        target_id = floor_id or uuid4().hex
        with self._locks.hold(target_id):
            with self._repository.write_transaction() as conn:
                stored: Optional[FloorPlan] = None
                if floor_id is not None:
                    stored = self._repository.load_floor_plan(conn, floor_id)
                    if stored is None:
                        raise NotFoundError("Floor plan not found")

                self._check_floor_uniqueness(
                    conn,
                    floor_id=floor_id,
                    name=name,
                    floor_number=floor_number,
                )
                validate_floor_resources(
                    rooms=rooms,
                    desks=desks,
                    desk_id_pattern=self._settings.desk_id_regex,
                )
                self._check_global_room_ids(conn, floor_id=floor_id, rooms=rooms)

                now = self._clock()
                if stored is None:
                    self._repository.insert_floor_plan(
                        conn,
                        floor_id=target_id,
                        name=name,
                        floor_number=floor_number,
                        now=now,
                    )
                    self._repository.upsert_resources(conn, target_id, rooms, desks)
                    result = FloorPlanWriteResult(floor_id=target_id, version=1, created=True)
                else:
                    result = self._apply_update(
                        conn,
                        actor=actor,
                        stored=stored,
                        name=name,
                        floor_number=floor_number,
                        rooms=rooms,
                        desks=desks,
                        client_version=int(client_version),
                    )

        logger.info(
            "Floor plan committed | floor_id=%s | version=%s | created=%s | rooms=%s | "
            "desks=%s | notifications=%s",
            result.floor_id,
            result.version,
            result.created,
            len(rooms),
            len(desks),
            result.notifications_sent,
        )
        return result

    def _apply_update(
        self,
        conn: sqlite3.Connection,
        *,
        actor: Actor,
        stored: FloorPlan,
        name: str,
        floor_number: int,
        rooms: list[Room],
        desks: list[Desk],
        client_version: int,
    ) -> FloorPlanWriteResult:
        if client_version < stored.version:
            if actor.role not in self._settings.override_roles:
                logger.info(
                    "Stale floor plan write rejected | floor_id=%s | stored=%s | submitted=%s",
                    stored.floor_id,
                    stored.version,
                    client_version,
                )
                raise VersionConflict(stored.version, client_version)
            logger.warning(
                "Stale floor plan write force-applied | floor_id=%s | stored=%s | submitted=%s | "
                "user_id=%s | role=%s",
                stored.floor_id,
                stored.version,
                client_version,
                actor.user_id,
                actor.role,
            )

        incoming_keys = {(room.kind, room.resource_id) for room in rooms}
        incoming_keys.update((desk.kind, desk.resource_id) for desk in desks)
        removed = [
            resource
            for resource in stored.resources()
            if (resource.kind, resource.resource_id) not in incoming_keys
        ]

        cascade = self._notifier.notify_removed(
            conn,
            floor=stored,
            removed=removed,
            reason=RemovalReason.RESOURCE_REMOVED,
        )
        self._repository.delete_resources(
            conn,
            stored.floor_id,
            [resource.resource_id for resource in removed],
        )
        self._repository.upsert_resources(conn, stored.floor_id, rooms, desks)
        if not self._repository.compare_and_set_floor_plan(
            conn,
            floor_id=stored.floor_id,
            expected_version=stored.version,
            name=name,
            floor_number=floor_number,
            now=self._clock(),
        ):
            raise VersionConflict(stored.version, client_version)

        return FloorPlanWriteResult(
            floor_id=stored.floor_id,
            version=stored.version + 1,
            created=False,
            notifications_sent=cascade.notifications_sent,
            affected_users=cascade.affected_users,
        )

    def delete(self, actor: Actor, floor_id: str) -> CascadeResult:
        """Remove a whole floor; every future booking on it is cancelled and notified."""
        if actor.role not in self._settings.elevated_roles:
            raise AuthorizationError("Not authorized to delete floor plans")

        with self._locks.hold(floor_id):
            with self._repository.write_transaction() as conn:
                stored = self._repository.load_floor_plan(conn, floor_id)
                if stored is None:
                    raise NotFoundError("Floor plan not found")
                cascade = self._notifier.notify_removed(
                    conn,
                    floor=stored,
                    removed=list(stored.resources()),
                    reason=RemovalReason.FLOOR_DELETED,
                )
                self._repository.delete_floor_plan(conn, floor_id)

        logger.info(
            "Floor plan deleted | floor_id=%s | notifications=%s | affected_users=%s",
            floor_id,
            cascade.notifications_sent,
            cascade.affected_users,
        )
        return cascade
