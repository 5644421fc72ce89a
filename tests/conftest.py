"""Shared test fixtures and helpers."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BUSINESS_TIMEZONE", "Asia/Tokyo")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

from datetime import datetime, timedelta  # noqa: E402
from typing import Optional  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from bookingsync import models, models_calendar_sync  # noqa: E402, F401
from bookingsync.database import Base, make_engine  # noqa: E402
from bookingsync.domain.business_hours.service import BusinessHoursService  # noqa: E402
from bookingsync.domain.calendar_sync.repository import CalendarSyncRepository  # noqa: E402
from bookingsync.email_service import MailGateway  # noqa: E402
from bookingsync.exceptions import ExternalUnavailable  # noqa: E402
from bookingsync.models import EmailTemplate, Reservation  # noqa: E402
from bookingsync.services.google_calendar_service import (  # noqa: E402
    BusyInterval,
    CalendarEvent,
    CalendarGateway,
    TokenGrant,
)
from bookingsync.shared.crypto import encrypt_token  # noqa: E402
from bookingsync.shared.timeutils import utcnow  # noqa: E402

TOKYO = ZoneInfo("Asia/Tokyo")
CLIENT_ID = "tenant-1"

OPEN_9_TO_5 = {"isOpen": True, "start": "09:00", "end": "17:00", "slotCapacity": 1}
CLOSED = {"isOpen": False, "start": "09:00", "end": "17:00", "slotCapacity": 1}


class FakeCalendarGateway(CalendarGateway):
    """In-memory calendar; set ``fail_with`` to make every call raise it"""

    def __init__(self):
        self.busy: list[BusyInterval] = []
        self.events: dict[str, CalendarEvent] = {}
        self.deleted: list[str] = []
        self.tokens_used: list[str] = []
        self.refreshed: list[str] = []
        self.revoked: list[str] = []
        self.fail_with: Optional[ExternalUnavailable] = None
        self.refresh_fail_with: Optional[ExternalUnavailable] = None

    def _call(self, access_token: str):
        self.tokens_used.append(access_token)
        if self.fail_with:
            raise self.fail_with

    async def list_busy_intervals(self, access_token, calendar_id, start, end):
        self._call(access_token)
        return [interval for interval in self.busy if interval.overlaps(start, end)]

    async def insert_event(self, access_token, calendar_id, event):
        self._call(access_token)
        event_id = f"evt-{len(self.events) + 1}"
        self.events[event_id] = event
        return event_id

    async def update_event(self, access_token, calendar_id, event_id, event):
        self._call(access_token)
        self.events[event_id] = event

    async def delete_event(self, access_token, calendar_id, event_id):
        self._call(access_token)
        self.events.pop(event_id, None)
        self.deleted.append(event_id)

    async def refresh_credential(self, refresh_token):
        self.refreshed.append(refresh_token)
        if self.refresh_fail_with:
            raise self.refresh_fail_with
        return TokenGrant(access_token="access-refreshed", expires_at=utcnow() + timedelta(hours=1))

    async def exchange_code(self, code):
        return TokenGrant(
            access_token=f"access-{code}", expires_at=utcnow() + timedelta(hours=1), refresh_token=f"refresh-{code}"
        )

    async def get_primary_calendar(self, access_token):
        return "owner@example.com", "owner@example.com"

    async def revoke(self, token):
        self.revoked.append(token)


class FakeMailGateway(MailGateway):
    """Records deliveries; ``failures`` holds reasons consumed one per send"""

    def __init__(self, failures: Optional[list[str]] = None, always_fail: Optional[str] = None):
        super().__init__(from_address="Reservations <noreply@example.com>", timeout=5)
        self.sent: list[dict] = []
        self.failures = list(failures or [])
        self.always_fail = always_fail

    def _deliver(self, to, subject, html):
        if self.always_fail:
            raise RuntimeError(self.always_fail)
        if self.failures:
            raise RuntimeError(self.failures.pop(0))
        self.sent.append({"to": to, "subject": subject, "html": html})
        return f"msg-{len(self.sent)}"


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def calendar_gateway():
    return FakeCalendarGateway()


@pytest.fixture
def mail_gateway():
    return FakeMailGateway()


def seed_hours(
    db,
    client_id: str = CLIENT_ID,
    capacity: int = 1,
    interval: int = 60,
    weekly: Optional[list[dict]] = None,
    **extra,
):
    """Weekdays 09:00-17:00, weekend closed, unrestricted reservation window"""
    open_day = {**OPEN_9_TO_5, "slotCapacity": capacity}
    patch = {
        "weeklyHours": weekly or [open_day] * 5 + [CLOSED] * 2,
        "slotIntervalMinutes": interval,
        "reservationWindow": {"minDaysAhead": 0, "maxDaysAhead": 36500},
        **extra,
    }
    return BusinessHoursService(db).update(client_id, patch)


@pytest.fixture
def hours(db):
    return seed_hours(db)


def connect_calendar(db, client_id: str = CLIENT_ID, expires_in: timedelta = timedelta(hours=1)):
    return CalendarSyncRepository.upsert_authorized(
        db,
        client_id,
        calendar_id="primary",
        access_token=encrypt_token("access-1"),
        refresh_token=encrypt_token("refresh-1"),
        token_expiry=utcnow() + expires_in,
        google_user_email="owner@example.com",
    )


def add_template(db, client_id: str = CLIENT_ID, type: str = "reminder", value: int = 30, unit: str = "minutes", **kwargs):
    template = EmailTemplate(
        client_id=client_id,
        name=kwargs.pop("name", f"{type} template"),
        type=type,
        subject=kwargs.pop("subject", "Reminder for {{name}}"),
        body=kwargs.pop("body", "<p>Hi {{name}}, see you on {{date}} at {{time}}.</p>"),
        timing_value=value,
        timing_unit=unit,
        is_active=kwargs.pop("is_active", True),
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def add_reservation(db, at: datetime, client_id: str = CLIENT_ID, status: str = "confirmed", **info):
    """Insert a reservation directly; ``at`` is naive UTC"""
    reservation = Reservation(
        client_id=client_id,
        datetime=at,
        status=status,
        customer_info={"name": "Taro Yamada", "email": "taro@example.com", **info},
        reminders_sent=[],
    )
    db.add(reservation)
    db.commit()
    db.refresh(reservation)
    return reservation
