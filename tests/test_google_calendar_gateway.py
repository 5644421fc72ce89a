"""Tests for the Google Calendar REST gateway against a mocked transport."""

import json
from datetime import datetime

import httpx
import pytest

from bookingsync.exceptions import ExternalUnavailable
from bookingsync.services.google_calendar_service import (
    BusyInterval,
    CalendarEvent,
    GoogleCalendarGateway,
)
from bookingsync.shared.timeutils import utcnow

START = datetime(2025, 3, 10, 0, 0)
END = datetime(2025, 3, 10, 8, 0)


def gateway(handler) -> GoogleCalendarGateway:
    return GoogleCalendarGateway(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://localhost/callback",
        transport=httpx.MockTransport(handler),
    )


def event() -> CalendarEvent:
    return CalendarEvent(
        summary="Reservation: Taro",
        description="Name: Taro",
        start=datetime(2025, 3, 10, 5, 0),
        end=datetime(2025, 3, 10, 6, 0),
        time_zone="Asia/Tokyo",
    )


class TestBusyIntervals:
    @pytest.mark.asyncio
    async def test_parses_busy_blocks(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "calendars": {
                        "primary": {
                            "busy": [
                                {"start": "2025-03-10T14:00:00+09:00", "end": "2025-03-10T15:00:00+09:00"},
                                {"start": "2025-03-10T07:00:00Z", "end": "2025-03-10T07:30:00Z"},
                            ]
                        }
                    }
                },
            )

        busy = await gateway(handler).list_busy_intervals("token-1", "primary", START, END)

        assert busy == [
            BusyInterval(datetime(2025, 3, 10, 5, 0), datetime(2025, 3, 10, 6, 0)),
            BusyInterval(datetime(2025, 3, 10, 7, 0), datetime(2025, 3, 10, 7, 30)),
        ]
        assert seen["auth"] == "Bearer token-1"
        assert seen["body"]["timeMin"] == "2025-03-10T00:00:00+00:00"
        assert seen["body"]["items"] == [{"id": "primary"}]

    @pytest.mark.asyncio
    async def test_calendar_errors_raise(self):
        def handler(request):
            return httpx.Response(200, json={"calendars": {"primary": {"errors": [{"reason": "notFound"}]}}})

        with pytest.raises(ExternalUnavailable) as exc_info:
            await gateway(handler).list_busy_intervals("token-1", "primary", START, END)
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected_credential_is_unrecoverable(self, status):
        def handler(request):
            return httpx.Response(status, json={"error": "invalid_grant"})

        with pytest.raises(ExternalUnavailable) as exc_info:
            await gateway(handler).list_busy_intervals("token-1", "primary", START, END)
        assert not exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_server_error_is_recoverable(self):
        def handler(request):
            return httpx.Response(503, text="backend error")

        with pytest.raises(ExternalUnavailable) as exc_info:
            await gateway(handler).list_busy_intervals("token-1", "primary", START, END)
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_timeout_is_recoverable(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(ExternalUnavailable) as exc_info:
            await gateway(handler).list_busy_intervals("token-1", "primary", START, END)
        assert exc_info.value.recoverable
        assert "timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unreadable_body_is_recoverable(self):
        def handler(request):
            return httpx.Response(200, text="<html>proxy error</html>")

        with pytest.raises(ExternalUnavailable) as exc_info:
            await gateway(handler).list_busy_intervals("token-1", "primary", START, END)
        assert exc_info.value.recoverable
        assert "invalid JSON" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_malformed_busy_entry_raises(self):
        def handler(request):
            return httpx.Response(200, json={"calendars": {"primary": {"busy": [{"start": "2025-03-10T07:00:00Z"}]}}})

        with pytest.raises(ExternalUnavailable) as exc_info:
            await gateway(handler).list_busy_intervals("token-1", "primary", START, END)
        assert exc_info.value.recoverable


class TestEvents:
    @pytest.mark.asyncio
    async def test_insert_returns_event_id(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "google-evt-1"})

        event_id = await gateway(handler).insert_event("token-1", "owner@example.com", event())

        assert event_id == "google-evt-1"
        assert seen["path"].endswith("/calendars/owner@example.com/events")
        assert seen["body"]["start"] == {"dateTime": "2025-03-10T05:00:00+00:00", "timeZone": "Asia/Tokyo"}
        assert seen["body"]["summary"] == "Reservation: Taro"

    @pytest.mark.asyncio
    async def test_insert_without_id_fails(self):
        def handler(request):
            return httpx.Response(200, json={})

        with pytest.raises(ExternalUnavailable):
            await gateway(handler).insert_event("token-1", "primary", event())

    @pytest.mark.asyncio
    async def test_insert_with_unreadable_body_fails(self):
        def handler(request):
            return httpx.Response(200, text="not json")

        with pytest.raises(ExternalUnavailable):
            await gateway(handler).insert_event("token-1", "primary", event())

    @pytest.mark.asyncio
    async def test_update_uses_put(self):
        methods = []

        def handler(request):
            methods.append((request.method, request.url.path))
            return httpx.Response(200, json={"id": "evt"})

        await gateway(handler).update_event("token-1", "primary", "evt", event())
        assert methods == [("PUT", "/calendar/v3/calendars/primary/events/evt")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [204, 404, 410])
    async def test_delete_tolerates_missing_event(self, status):
        def handler(request):
            return httpx.Response(status)

        await gateway(handler).delete_event("token-1", "primary", "evt")

    @pytest.mark.asyncio
    async def test_delete_server_error_raises(self):
        def handler(request):
            return httpx.Response(500)

        with pytest.raises(ExternalUnavailable):
            await gateway(handler).delete_event("token-1", "primary", "evt")


class TestTokens:
    @pytest.mark.asyncio
    async def test_refresh_returns_grant(self):
        seen = {}

        def handler(request):
            seen["form"] = dict(httpx.QueryParams(request.content.decode()))
            return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})

        grant = await gateway(handler).refresh_credential("refresh-1")

        assert grant.access_token == "fresh"
        assert grant.refresh_token is None
        assert grant.expires_at > utcnow()
        assert seen["form"]["grant_type"] == "refresh_token"
        assert seen["form"]["refresh_token"] == "refresh-1"
        assert seen["form"]["client_id"] == "client-id"

    @pytest.mark.asyncio
    async def test_refresh_rejected_grant_is_unrecoverable(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(ExternalUnavailable) as exc_info:
            await gateway(handler).refresh_credential("refresh-1")
        assert not exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_refresh_server_error_is_recoverable(self):
        def handler(request):
            return httpx.Response(502)

        with pytest.raises(ExternalUnavailable) as exc_info:
            await gateway(handler).refresh_credential("refresh-1")
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_refresh_with_unreadable_body_is_recoverable(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(ExternalUnavailable) as exc_info:
            await gateway(handler).refresh_credential("refresh-1")
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_exchange_requires_refresh_token(self):
        def handler(request):
            return httpx.Response(200, json={"access_token": "a", "expires_in": 3600})

        with pytest.raises(ExternalUnavailable):
            await gateway(handler).exchange_code("code-1")

    @pytest.mark.asyncio
    async def test_primary_calendar_and_email(self):
        def handler(request):
            if request.url.path.endswith("/calendarList/primary"):
                return httpx.Response(200, json={"id": "owner@example.com"})
            return httpx.Response(200, json={"email": "owner@example.com"})

        calendar_id, email = await gateway(handler).get_primary_calendar("token-1")
        assert calendar_id == "owner@example.com"
        assert email == "owner@example.com"
