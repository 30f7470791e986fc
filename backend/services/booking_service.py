"""Booking ledger: conflict-free interval reservations per resource."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import uuid4

from backend.domain.constraints import ensure_utc, interval_is_free, validate_booking_interval
from backend.domain.errors import NotFoundError, SchedulingConflict
from backend.domain.models import ActiveBooking, Booking, ResourceKind, TimeInterval
from backend.repository.data_repository import DataRepository
from backend.utils.clock import Clock, utc_now
from backend.utils.config import Settings, get_settings
from backend.utils.locks import KeyedLockRegistry
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class BookingLedgerService:
    """Creates, cancels and lists bookings embedded in floor plan aggregates.

    The overlap scan, the append and the usage counter update happen inside
    the floor's exclusive section and a single write transaction, so two
    concurrent requests for the same slot cannot both commit.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        locks: Optional[KeyedLockRegistry] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._locks = locks or KeyedLockRegistry()
        self._clock = clock or utc_now

    def create(
        self,
        *,
        floor_id: str,
        resource_id: str,
        start_time: datetime,
        end_time: datetime,
        user_id: str,
    ) -> str:
        interval = TimeInterval(start=ensure_utc(start_time), end=ensure_utc(end_time))

        with self._locks.hold(floor_id):
            with self._repository.write_transaction() as conn:
                plan = self._repository.load_floor_plan(conn, floor_id)
                if plan is None:
                    raise NotFoundError("Floor plan not found")
                resource = plan.find_resource(resource_id)
                if resource is None:
                    raise NotFoundError("Room or desk not found")

                now = self._clock()
                validate_booking_interval(
                    interval,
                    now=now,
                    clock_skew_seconds=self._settings.booking_clock_skew_seconds,
                )
                if not interval_is_free(interval, (b.interval for b in resource.bookings)):
                    logger.info(
                        "Booking rejected | floor_id=%s | resource_id=%s | user_id=%s | reason=overlap",
                        floor_id,
                        resource_id,
                        user_id,
                    )
                    raise SchedulingConflict("This resource is already booked for that time")

                booking = Booking(
                    booking_id=uuid4().hex,
                    user_id=user_id,
                    interval=interval,
                    created_at=now,
                )
                self._repository.insert_booking(
                    conn,
                    floor_id=floor_id,
                    resource_id=resource_id,
                    booking=booking,
                )
                self._repository.increment_usage(
                    conn,
                    user_id=user_id,
                    resource_id=resource_id,
                    now=now,
                )

        logger.info(
            "Booking confirmed | booking_id=%s | floor_id=%s | %s=%s | user_id=%s | start=%s | end=%s",
            booking.booking_id,
            floor_id,
            resource.kind.value,
            resource_id,
            user_id,
            interval.start.isoformat(),
            interval.end.isoformat(),
        )
        return booking.booking_id

    def cancel(self, *, booking_id: str, user_id: str, kind: ResourceKind) -> bool:
        """Cancel an owned booking; a foreign booking reads exactly like a missing one."""
        with self._repository.read_snapshot() as conn:
            floor_id = self._repository.find_booking_floor(conn, booking_id)
        if floor_id is None:
            raise NotFoundError("Booking not found or you are not authorized to cancel it")

        with self._locks.hold(floor_id):
            with self._repository.write_transaction() as conn:
                removed = self._repository.delete_owned_booking(
                    conn,
                    booking_id=booking_id,
                    user_id=user_id,
                    kind=kind,
                )
                if not removed:
                    raise NotFoundError("Booking not found or you are not authorized to cancel it")

        logger.info(
            "Booking cancelled | booking_id=%s | floor_id=%s | user_id=%s",
            booking_id,
            floor_id,
            user_id,
        )
        return True

    def list_active_for_user(self, user_id: str) -> list[ActiveBooking]:
        with self._repository.read_snapshot() as conn:
            return self._repository.list_active_bookings_for_user(conn, user_id, self._clock())
