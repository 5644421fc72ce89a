"""
Availability engine

Merges a tenant's business hours, its live reservations and (when a calendar
is connected) the busy intervals of the external calendar into bookable
buckets.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ...config import LEGACY_HOURLY_BUCKETS
from ...exceptions import ExternalUnavailable, ValidationError
from ...schemas import SlotResponse
from ...services.google_calendar_service import BusyInterval, CalendarGateway
from ...shared.timeutils import get_zone, to_local, to_utc, utcnow
from ..business_hours import BusinessHoursConfig
from ..business_hours.service import BusinessHoursService
from ..calendar_sync.service import CalendarSyncService
from ..reservations.repository import ReservationRepository

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 92


@dataclass(frozen=True)
class Bucket:
    """One bookable interval; ``start``/``end`` are naive UTC"""

    start: datetime
    end: datetime
    minutes: int
    capacity: int
    local_start: datetime
    local_end: datetime


@dataclass(frozen=True)
class Slot:
    date: date
    start_time: str
    end_time: str
    capacity: int
    booked_count: int
    available: int
    is_available: bool
    blocked: bool = False

    def to_response(self) -> SlotResponse:
        return SlotResponse(
            date=self.date,
            startTime=self.start_time,
            endTime=self.end_time,
            capacity=self.capacity,
            bookedCount=self.booked_count,
            available=self.available,
            isAvailable=self.is_available,
            blocked=self.blocked,
        )


def day_buckets(config: BusinessHoursConfig, day: date, tz: ZoneInfo, legacy_hourly: bool = False) -> list[Bucket]:
    """
    Buckets of ``day`` in order. Only whole buckets inside the open interval
    count; a trailing remainder shorter than the interval is dropped.
    """
    hours = config.hours_for(day)
    if hours is None:
        return []

    minutes = 60 if legacy_hourly else config.slot_interval_minutes
    step = timedelta(minutes=minutes)
    cursor = datetime.combine(day, hours.start)
    close_at = datetime.combine(day, hours.end)

    if legacy_hourly and (cursor.minute or cursor.second):
        cursor = cursor.replace(minute=0, second=0) + timedelta(hours=1)

    buckets = []
    while cursor + step <= close_at:
        local_start = cursor.replace(tzinfo=tz)
        local_end = (cursor + step).replace(tzinfo=tz)
        buckets.append(
            Bucket(
                start=to_utc(cursor, tz),
                end=to_utc(cursor + step, tz),
                minutes=minutes,
                capacity=hours.slot_capacity,
                local_start=local_start,
                local_end=local_end,
            )
        )
        cursor += step
    return buckets


def within_window(config: BusinessHoursConfig, day: date, today: date) -> bool:
    days_ahead = (day - today).days
    return config.min_days_ahead <= days_ahead <= config.max_days_ahead


class AvailabilityEngine:
    """Computes slots per tenant; also the bucket authority for bookings"""

    def __init__(
        self,
        db: Session,
        gateway: Optional[CalendarGateway] = None,
        tz: Optional[ZoneInfo] = None,
        legacy_hourly: Optional[bool] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.tz = tz or get_zone()
        self.legacy_hourly = LEGACY_HOURLY_BUCKETS if legacy_hourly is None else legacy_hourly
        self.hours = BusinessHoursService(db)
        self.repo = ReservationRepository()
        self.calendar = CalendarSyncService(db, gateway)

    def today(self) -> date:
        return to_local(utcnow(), self.tz).date()

    def buckets_for_day(self, config: BusinessHoursConfig, day: date) -> list[Bucket]:
        return day_buckets(config, day, self.tz, self.legacy_hourly)

    def bucket_for(
        self, client_id: str, instant: datetime, config: Optional[BusinessHoursConfig] = None
    ) -> Optional[Bucket]:
        """
        Bucket containing ``instant``, or None when the instant falls outside
        every bucket of its day. Naive input is a stored UTC instant; aware
        input is converted.
        """
        config = config or self.hours.get(client_id)
        utc_instant = to_utc(instant, self.tz) if instant.tzinfo is not None else instant
        local_day = to_local(utc_instant, self.tz).date()

        for bucket in self.buckets_for_day(config, local_day):
            if bucket.start <= utc_instant < bucket.end:
                return bucket
        return None

    async def compute_slots(self, client_id: str, start_date: date, end_date: Optional[date] = None) -> list[Slot]:
        """Slots for every day of [start_date, end_date], both inclusive"""
        end_date = end_date or start_date
        if end_date < start_date:
            raise ValidationError("end date must not be before start date", field="endDate")
        if (end_date - start_date).days >= MAX_RANGE_DAYS:
            raise ValidationError(f"date range is limited to {MAX_RANGE_DAYS} days", field="endDate")

        config = self.hours.get(client_id)
        busy_source = _BusySource(self, client_id)

        slots = []
        day = start_date
        while day <= end_date:
            buckets = self.buckets_for_day(config, day)
            if buckets:
                slots.extend(await self._slots_for_day(client_id, day, buckets, busy_source))
            day += timedelta(days=1)
        return slots

    async def available_times(self, client_id: str, day: date) -> list[str]:
        """Start times (HH:MM, local) still bookable on ``day`` through the public widget"""
        config = self.hours.get(client_id)
        if not within_window(config, day, self.today()):
            return []
        return [slot.start_time for slot in await self.compute_slots(client_id, day) if slot.is_available]

    async def _slots_for_day(self, client_id: str, day: date, buckets: list[Bucket], busy_source) -> list[Slot]:
        day_start, day_end = buckets[0].start, buckets[-1].end
        booked = self.repo.active_datetimes_in_range(self.db, client_id, day_start, day_end)
        busy = await busy_source.fetch(day_start, day_end)

        slots = []
        for bucket in buckets:
            booked_count = sum(1 for at in booked if bucket.start <= at < bucket.end)
            blocked = any(interval.overlaps(bucket.start, bucket.end) for interval in busy)
            available = 0 if blocked else max(0, bucket.capacity - booked_count)
            slots.append(
                Slot(
                    date=day,
                    start_time=bucket.local_start.strftime("%H:%M"),
                    end_time=bucket.local_end.strftime("%H:%M"),
                    capacity=bucket.capacity,
                    booked_count=booked_count,
                    available=available,
                    is_available=available > 0,
                    blocked=blocked,
                )
            )
        return slots


class _BusySource:
    """Busy intervals of the tenant's connected calendar, resolved lazily once per computation"""

    def __init__(self, engine: AvailabilityEngine, client_id: str):
        self.engine = engine
        self.client_id = client_id
        self._sync = None
        self._access_token = None
        self._disabled = engine.gateway is None

    async def _credential(self) -> Optional[str]:
        if self._access_token is None and not self._disabled:
            self._sync = self.engine.calendar.get_active(self.client_id)
            if self._sync is None:
                self._disabled = True
                return None
            try:
                self._access_token = await self.engine.calendar.get_credential(self._sync)
            except ExternalUnavailable as e:
                logger.warning(f"⚠️ Calendar credential unavailable for client {self.client_id}: {e}")
                self._disabled = True
        return self._access_token

    async def fetch(self, start: datetime, end: datetime) -> list[BusyInterval]:
        access_token = await self._credential()
        if access_token is None:
            return []

        try:
            return await self.engine.gateway.list_busy_intervals(access_token, self._sync.calendar_id, start, end)
        except ExternalUnavailable as e:
            logger.warning(f"⚠️ Busy lookup failed for client {self.client_id}, ignoring external calendar: {e}")
            if not e.recoverable:
                self.engine.calendar.record_failure(self.client_id, e)
                self._disabled = True
                self._access_token = None
            return []
