"""Tests for slot computation."""

from datetime import date, datetime, timedelta

import httpx
import pytest

from bookingsync.domain.availability import AvailabilityEngine
from bookingsync.exceptions import ExternalUnavailable, ValidationError
from bookingsync.models_calendar_sync import CalendarSync
from bookingsync.services.google_calendar_service import BusyInterval, GoogleCalendarGateway
from tests.conftest import CLIENT_ID, CLOSED, TOKYO, add_reservation, connect_calendar, seed_hours

MONDAY = date(2025, 3, 10)
SATURDAY = date(2025, 3, 15)


def utc(hour, minute=0, day=MONDAY):
    """Naive UTC instant for a Tokyo wall-clock time on ``day``"""
    return datetime(day.year, day.month, day.day, hour, minute) - timedelta(hours=9)


@pytest.fixture
def availability(db, hours):
    return AvailabilityEngine(db, tz=TOKYO, legacy_hourly=False)


class TestBuckets:
    @pytest.mark.asyncio
    async def test_closed_weekday_has_no_slots(self, availability):
        assert await availability.compute_slots(CLIENT_ID, SATURDAY) == []

    @pytest.mark.asyncio
    async def test_holiday_has_no_slots(self, db):
        seed_hours(db, exceptionalDays=[{"date": MONDAY.isoformat(), "isHoliday": True}])
        engine = AvailabilityEngine(db, tz=TOKYO, legacy_hourly=False)
        assert await engine.compute_slots(CLIENT_ID, MONDAY) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("interval, expected", [(60, 8), (30, 16), (120, 4)])
    async def test_bucket_count(self, db, interval, expected):
        seed_hours(db, interval=interval)
        engine = AvailabilityEngine(db, tz=TOKYO, legacy_hourly=False)
        slots = await engine.compute_slots(CLIENT_ID, MONDAY)
        assert len(slots) == expected
        assert slots[0].start_time == "09:00"
        assert slots[-1].end_time == "17:00"

    @pytest.mark.asyncio
    async def test_partial_trailing_bucket_dropped(self, db):
        seed_hours(db, interval=45)
        engine = AvailabilityEngine(db, tz=TOKYO, legacy_hourly=False)
        slots = await engine.compute_slots(CLIENT_ID, MONDAY)
        assert len(slots) == 10
        assert slots[-1].start_time == "15:45"
        assert slots[-1].end_time == "16:30"

    @pytest.mark.asyncio
    async def test_legacy_hourly_buckets_align_on_the_hour(self, db):
        day = {"isOpen": True, "start": "09:30", "end": "17:00", "slotCapacity": 1}
        seed_hours(db, interval=30, weekly=[day] * 5 + [CLOSED] * 2)
        engine = AvailabilityEngine(db, tz=TOKYO, legacy_hourly=True)

        slots = await engine.compute_slots(CLIENT_ID, MONDAY)
        assert [s.start_time for s in slots] == ["10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00"]

    def test_bucket_for_inside_and_outside_hours(self, availability):
        bucket = availability.bucket_for(CLIENT_ID, datetime(2025, 3, 10, 14, 20, tzinfo=TOKYO))
        assert bucket.start == utc(14)
        assert bucket.end == utc(15)
        assert bucket.capacity == 1

        assert availability.bucket_for(CLIENT_ID, utc(8, 59)) is None
        assert availability.bucket_for(CLIENT_ID, utc(17)) is None
        assert availability.bucket_for(CLIENT_ID, utc(10, day=SATURDAY)) is None

    def test_bucket_for_stored_utc_instant(self, availability):
        bucket = availability.bucket_for(CLIENT_ID, datetime(2025, 3, 10, 5, 0))
        assert bucket is not None
        assert bucket.start == utc(14)
        assert bucket.local_start.strftime("%H:%M") == "14:00"


class TestCounts:
    @pytest.mark.asyncio
    async def test_booked_count_ignores_cancelled(self, db, availability):
        add_reservation(db, utc(14))
        add_reservation(db, utc(14, 30), status="cancelled")

        slots = {s.start_time: s for s in await availability.compute_slots(CLIENT_ID, MONDAY)}
        assert slots["14:00"].booked_count == 1
        assert slots["14:00"].available == 0
        assert not slots["14:00"].is_available
        assert slots["13:00"].available == 1

    @pytest.mark.asyncio
    async def test_available_clamped_at_zero(self, db):
        seed_hours(db, capacity=2)
        for _ in range(3):
            add_reservation(db, utc(10))
        engine = AvailabilityEngine(db, tz=TOKYO, legacy_hourly=False)

        slot = next(s for s in await engine.compute_slots(CLIENT_ID, MONDAY) if s.start_time == "10:00")
        assert slot.booked_count == 3
        assert slot.available == 0

    @pytest.mark.asyncio
    async def test_other_tenants_do_not_count(self, db, availability):
        add_reservation(db, utc(11), client_id="someone-else")
        slot = next(s for s in await availability.compute_slots(CLIENT_ID, MONDAY) if s.start_time == "11:00")
        assert slot.booked_count == 0

    @pytest.mark.asyncio
    async def test_compute_slots_is_idempotent(self, db, availability):
        add_reservation(db, utc(9))
        first = await availability.compute_slots(CLIENT_ID, MONDAY, MONDAY + timedelta(days=6))
        second = await availability.compute_slots(CLIENT_ID, MONDAY, MONDAY + timedelta(days=6))
        assert first == second
        # Monday to Friday open
        assert len(first) == 5 * 8

    @pytest.mark.asyncio
    async def test_inverted_range_rejected(self, availability):
        with pytest.raises(ValidationError):
            await availability.compute_slots(CLIENT_ID, MONDAY, MONDAY - timedelta(days=1))

    @pytest.mark.asyncio
    async def test_oversized_range_rejected(self, availability):
        with pytest.raises(ValidationError):
            await availability.compute_slots(CLIENT_ID, MONDAY, MONDAY + timedelta(days=365))


class TestExternalBusy:
    @pytest.mark.asyncio
    async def test_busy_interval_blocks_overlapping_bucket(self, db, hours, calendar_gateway):
        connect_calendar(db)
        calendar_gateway.busy = [BusyInterval(start=utc(14), end=utc(15))]
        engine = AvailabilityEngine(db, calendar_gateway, tz=TOKYO, legacy_hourly=False)

        slots = {s.start_time: s for s in await engine.compute_slots(CLIENT_ID, MONDAY)}
        assert slots["14:00"].blocked
        assert slots["14:00"].available == 0
        assert not slots["14:00"].is_available
        assert not slots["13:00"].blocked
        assert not slots["15:00"].blocked
        assert calendar_gateway.tokens_used == ["access-1"]

    @pytest.mark.asyncio
    async def test_busy_lookup_once_per_day(self, db, hours, calendar_gateway):
        connect_calendar(db)
        engine = AvailabilityEngine(db, calendar_gateway, tz=TOKYO, legacy_hourly=False)
        await engine.compute_slots(CLIENT_ID, MONDAY, MONDAY + timedelta(days=6))
        # Five open days, weekend skipped
        assert len(calendar_gateway.tokens_used) == 5

    @pytest.mark.asyncio
    async def test_no_sync_means_no_lookup(self, db, hours, calendar_gateway):
        engine = AvailabilityEngine(db, calendar_gateway, tz=TOKYO, legacy_hourly=False)
        await engine.compute_slots(CLIENT_ID, MONDAY)
        assert calendar_gateway.tokens_used == []

    @pytest.mark.asyncio
    async def test_gateway_failure_is_ignored(self, db, hours, calendar_gateway):
        connect_calendar(db)
        calendar_gateway.fail_with = ExternalUnavailable("google_calendar", "timed out")
        engine = AvailabilityEngine(db, calendar_gateway, tz=TOKYO, legacy_hourly=False)

        slots = await engine.compute_slots(CLIENT_ID, MONDAY)
        assert len(slots) == 8
        assert all(s.is_available and not s.blocked for s in slots)
        sync = db.query(CalendarSync).filter(CalendarSync.client_id == CLIENT_ID).one()
        assert sync.sync_status == "active"

    @pytest.mark.asyncio
    async def test_revoked_credential_marks_sync_error(self, db, hours, calendar_gateway):
        connect_calendar(db)
        calendar_gateway.fail_with = ExternalUnavailable("google_calendar", "rejected", recoverable=False)
        engine = AvailabilityEngine(db, calendar_gateway, tz=TOKYO, legacy_hourly=False)

        slots = await engine.compute_slots(CLIENT_ID, MONDAY, MONDAY + timedelta(days=1))
        assert len(slots) == 16
        # Stops asking after the first rejection
        assert len(calendar_gateway.tokens_used) == 1
        sync = db.query(CalendarSync).filter(CalendarSync.client_id == CLIENT_ID).one()
        db.refresh(sync)
        assert sync.sync_status == "error"
        assert "rejected" in sync.last_error

    @pytest.mark.asyncio
    async def test_unreadable_provider_body_is_ignored(self, db, hours):
        connect_calendar(db)
        gateway = GoogleCalendarGateway(
            client_id="client-id",
            client_secret="client-secret",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy error</html>")),
        )
        engine = AvailabilityEngine(db, gateway, tz=TOKYO, legacy_hourly=False)

        slots = await engine.compute_slots(CLIENT_ID, MONDAY)
        assert len(slots) == 8
        assert not any(s.blocked for s in slots)


class TestAvailableTimes:
    @pytest.mark.asyncio
    async def test_lists_only_bookable_starts(self, db, availability):
        day = availability.today() + timedelta(days=14)
        while day.weekday() != 0:
            day += timedelta(days=1)
        add_reservation(db, utc(9, day=day))

        times = await availability.available_times(CLIENT_ID, day)
        assert "09:00" not in times
        assert times[0] == "10:00"
        assert len(times) == 7

    @pytest.mark.asyncio
    async def test_outside_window_is_empty(self, db):
        seed_hours(db, reservationWindow={"minDaysAhead": 1, "maxDaysAhead": 3})
        engine = AvailabilityEngine(db, tz=TOKYO, legacy_hourly=False)
        far = engine.today() + timedelta(days=30)
        assert await engine.available_times(CLIENT_ID, far) == []
        assert await engine.available_times(CLIENT_ID, engine.today()) == []
