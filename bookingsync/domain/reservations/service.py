"""
Reservation lifecycle

create / cancel / update keep three things consistent:
- capacity: a booking into a bucket re-counts live reservations while holding
  that bucket's lock row, inside the transaction that writes the reservation;
- the external calendar mirror, best effort and only after the local commit;
- the tenant's notification schedules.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Callable, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import DEFAULT_RESERVATION_STATUS, RESERVATION_DURATION_MINUTES
from ...email_service import MailGateway
from ...exceptions import (
    ExternalUnavailable,
    NotFoundError,
    PersistenceError,
    SlotConflictError,
    ValidationError,
)
from ...models import EmailSchedule, Reservation
from ...schemas import CustomerInfo, ReservationCreate, ReservationUpdate
from ...services.google_calendar_service import CalendarEvent, CalendarGateway
from ...shared.persistence import commit_or_raise
from ...shared.timeutils import local_to_utc, to_local, to_utc, utcnow
from ..availability.service import AvailabilityEngine, Bucket, within_window
from ..email.scheduler import NotificationScheduler
from .repository import ReservationRepository

logger = logging.getLogger(__name__)

MIRROR_SYNCED = "synced"
MIRROR_SKIPPED = "skipped"
MIRROR_FAILED = "failed"

_MIDNIGHT = time(0, 0)


@dataclass(frozen=True)
class MirrorOutcome:
    """Result of replicating a local change to the external calendar"""

    status: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != MIRROR_FAILED


@dataclass
class BookingResult:
    reservation: Reservation
    mirror: MirrorOutcome = MirrorOutcome(MIRROR_SKIPPED)
    notifications: list[EmailSchedule] = field(default_factory=list)


def build_event(reservation: Reservation, duration_minutes: int = RESERVATION_DURATION_MINUTES) -> CalendarEvent:
    info = reservation.customer_info or {}
    lines = [
        f"Name: {info.get('name', '')}",
        f"Email: {info.get('email', '')}",
    ]
    for label, key in (("Phone", "phone"), ("Company", "company"), ("Message", "message")):
        if info.get(key):
            lines.append(f"{label}: {info[key]}")
    lines.append(f"Reservation ID: {reservation.id}")

    return CalendarEvent(
        summary=f"Reservation: {info.get('name', '')}",
        description="\n".join(lines),
        start=reservation.datetime,
        end=reservation.datetime + timedelta(minutes=duration_minutes),
    )


def _parse(schema, data):
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e


class ReservationService:
    """Reservation lifecycle manager"""

    def __init__(
        self,
        db: Session,
        gateway: Optional[CalendarGateway] = None,
        mail: Optional[MailGateway] = None,
        tz: Optional[ZoneInfo] = None,
        legacy_hourly: Optional[bool] = None,
        default_status: str = DEFAULT_RESERVATION_STATUS,
    ):
        self.db = db
        self.gateway = gateway
        self.repo = ReservationRepository()
        self.availability = AvailabilityEngine(db, gateway, tz=tz, legacy_hourly=legacy_hourly)
        self.tz = self.availability.tz
        self.calendar = self.availability.calendar
        self.scheduler = NotificationScheduler(db, mail, tz=self.tz) if mail else None
        self.default_status = default_status

    # ---- queries ----

    def get_by_id(self, reservation_id: str) -> Reservation:
        reservation = self.repo.get(self.db, reservation_id)
        if not reservation:
            raise NotFoundError("Reservation", reservation_id)
        return reservation

    def list_by_filters(
        self,
        client_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        status: Optional[str] = None,
    ) -> list[Reservation]:
        """
        Reservations in the local-date range [date_from, date_to] (both
        inclusive). Range queries come back in time order, the unbounded
        admin list newest first.
        """
        if date_from and date_to and date_to < date_from:
            raise ValidationError("date_to must not be before date_from", field="date_to")

        start = local_to_utc(date_from, _MIDNIGHT, self.tz) if date_from else None
        end = local_to_utc(date_to + timedelta(days=1), _MIDNIGHT, self.tz) if date_to else None
        return self.repo.list_by_filters(
            self.db,
            client_id=client_id,
            start=start,
            end=end,
            status=status,
            newest_first=not (date_from or date_to),
        )

    # ---- lifecycle ----

    async def create(
        self, data: Union[ReservationCreate, dict], enforce_window: bool = False
    ) -> BookingResult:
        data = _parse(ReservationCreate, data)
        client_id = data.clientId
        instant = to_utc(data.datetime, self.tz)

        config = self.availability.hours.get(client_id)
        bucket = self.availability.bucket_for(client_id, instant, config)
        if bucket is None:
            raise SlotConflictError("Requested time is outside business hours", client_id)

        if enforce_window:
            local_day = to_local(instant, self.tz).date()
            if instant <= utcnow() or not within_window(config, local_day, self.availability.today()):
                raise ValidationError(
                    f"Reservations must be made {config.min_days_ahead}-{config.max_days_ahead} days in advance",
                    field="datetime",
                )

        reservation = Reservation(
            client_id=client_id,
            datetime=instant,
            status=data.status or self.default_status,
            customer_info=data.customerInfo.model_dump(),
            reminders_sent=[],
        )
        self._book(client_id, bucket, lambda: self.db.add(reservation))
        self.db.refresh(reservation)
        logger.info(f"✅ Reservation {reservation.id} created for client {client_id} at {instant.isoformat()}")

        mirror = await self._mirror(reservation)
        notifications = await self._register_notifications(reservation)
        return BookingResult(reservation=reservation, mirror=mirror, notifications=notifications)

    async def cancel(self, reservation_id: str) -> BookingResult:
        """Cancel a reservation; calling it again is a no-op. Schedules and logs are kept."""
        reservation = self.get_by_id(reservation_id)

        changed = self.repo.mark_cancelled(self.db, reservation_id)
        self.db.refresh(reservation)
        if not changed:
            logger.info(f"Reservation {reservation_id} already cancelled")
            return BookingResult(reservation=reservation)

        logger.info(f"✅ Reservation {reservation_id} cancelled")
        mirror = await self._mirror(reservation, delete=True)
        return BookingResult(reservation=reservation, mirror=mirror)

    async def update(self, reservation_id: str, patch: Union[ReservationUpdate, dict]) -> BookingResult:
        patch = _parse(ReservationUpdate, patch)
        reservation = self.get_by_id(reservation_id)
        if reservation.status == "cancelled":
            raise ValidationError("Cancelled reservations cannot be updated")

        customer_info = None
        if patch.customerInfo is not None:
            merged = {**(reservation.customer_info or {}), **patch.customerInfo.model_dump(exclude_none=True)}
            customer_info = _parse(CustomerInfo, merged).model_dump()

        new_instant = to_utc(patch.datetime, self.tz) if patch.datetime else None
        moved = new_instant is not None and new_instant != reservation.datetime

        def apply():
            if moved:
                reservation.datetime = new_instant
            if customer_info is not None:
                reservation.customer_info = customer_info
            if patch.status:
                reservation.status = patch.status
            reservation.updated_at = utcnow()

        if moved:
            config = self.availability.hours.get(reservation.client_id)
            bucket = self.availability.bucket_for(reservation.client_id, new_instant, config)
            if bucket is None:
                raise SlotConflictError("Requested time is outside business hours", reservation.client_id)
            current = self.availability.bucket_for(reservation.client_id, reservation.datetime, config)
            if _same_bucket(current, bucket):
                apply()
                commit_or_raise(self.db, f"updating reservation {reservation_id}")
            else:
                self._book(reservation.client_id, bucket, apply, exclude_id=reservation_id)
        else:
            apply()
            commit_or_raise(self.db, f"updating reservation {reservation_id}")

        self.db.refresh(reservation)
        logger.info(f"✅ Reservation {reservation_id} updated")

        mirror = await self._mirror(reservation)
        notifications = []
        if moved and self.scheduler:
            notifications = self.scheduler.reschedule_for_reservation(reservation)
        return BookingResult(reservation=reservation, mirror=mirror, notifications=notifications)

    # ---- internals ----

    def _book(
        self, client_id: str, bucket: Bucket, apply: Callable[[], None], exclude_id: Optional[str] = None
    ) -> None:
        """
        Run ``apply`` and commit while holding the bucket lock, provided the
        bucket still has capacity. Raises SlotConflictError when it is full.
        """
        self.repo.ensure_lock_row(self.db, client_id, bucket.start, bucket.minutes)
        try:
            if not self.repo.lock_bucket(self.db, client_id, bucket.start, bucket.minutes):
                self.db.rollback()
                raise PersistenceError(f"Lock row missing for bucket {bucket.start.isoformat()}")

            booked = self.repo.count_active_in_range(self.db, client_id, bucket.start, bucket.end, exclude_id)
            if booked >= bucket.capacity:
                self.db.rollback()
                logger.info(f"⚠️ Bucket {bucket.start.isoformat()} full for client {client_id} ({booked}/{bucket.capacity})")
                raise SlotConflictError("Selected time slot is fully booked", client_id, bucket.start)

            apply()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Database error while booking for client {client_id}: {e}")
            raise PersistenceError("Failed to save reservation") from e

    async def _mirror(self, reservation: Reservation, delete: bool = False) -> MirrorOutcome:
        """Replicate the reservation to the tenant's connected calendar, if any"""
        if self.gateway is None:
            return MirrorOutcome(MIRROR_SKIPPED)
        sync = self.calendar.get_active(reservation.client_id)
        if sync is None:
            return MirrorOutcome(MIRROR_SKIPPED)
        if delete and not reservation.external_event_id:
            return MirrorOutcome(MIRROR_SKIPPED)

        try:
            access_token = await self.calendar.get_credential(sync)
            if delete:
                await self.gateway.delete_event(access_token, sync.calendar_id, reservation.external_event_id)
            elif reservation.external_event_id:
                await self.gateway.update_event(
                    access_token, sync.calendar_id, reservation.external_event_id, build_event(reservation)
                )
            else:
                event_id = await self.gateway.insert_event(access_token, sync.calendar_id, build_event(reservation))
                self.repo.set_external_event_id(self.db, reservation, event_id)
        except ExternalUnavailable as e:
            logger.warning(f"⚠️ Calendar mirror failed for reservation {reservation.id}: {e}")
            self.calendar.record_failure(reservation.client_id, e)
            return MirrorOutcome(MIRROR_FAILED, str(e))

        self.calendar.record_success(reservation.client_id)
        return MirrorOutcome(MIRROR_SYNCED)

    async def _register_notifications(self, reservation: Reservation) -> list[EmailSchedule]:
        if self.scheduler is None:
            return []
        return await self.scheduler.register_for_reservation(reservation)


def _same_bucket(a: Optional[Bucket], b: Bucket) -> bool:
    return a is not None and (a.start, a.minutes) == (b.start, b.minutes)
