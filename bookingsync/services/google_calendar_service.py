"""
Google Calendar Service
Busy-interval lookup, event creation/update/deletion and OAuth token calls.

Every call takes the credential explicitly; nothing here caches tokens.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote

import httpx

from ..config import (
    BUSINESS_TIMEZONE,
    CALENDAR_API_TIMEOUT,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REDIRECT_URI,
)
from ..exceptions import ExternalUnavailable
from ..shared.timeutils import isoformat_utc, utcnow

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"

SERVICE_NAME = "google_calendar"


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and start < self.end


@dataclass(frozen=True)
class CalendarEvent:
    summary: str
    description: str
    start: datetime
    end: datetime
    time_zone: str = BUSINESS_TIMEZONE

    def to_google(self) -> dict:
        return {
            "summary": self.summary,
            "description": self.description,
            "start": {"dateTime": isoformat_utc(self.start), "timeZone": self.time_zone},
            "end": {"dateTime": isoformat_utc(self.end), "timeZone": self.time_zone},
        }


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    expires_at: datetime
    refresh_token: Optional[str] = None


def _parse_google_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


class CalendarGateway(ABC):
    """External calendar provider used for busy lookups and reservation mirroring"""

    @abstractmethod
    async def list_busy_intervals(
        self, access_token: str, calendar_id: str, start: datetime, end: datetime
    ) -> list[BusyInterval]:
        raise NotImplementedError

    @abstractmethod
    async def insert_event(self, access_token: str, calendar_id: str, event: CalendarEvent) -> str:
        """Create an event. Returns the provider's event id."""
        raise NotImplementedError

    @abstractmethod
    async def update_event(
        self, access_token: str, calendar_id: str, event_id: str, event: CalendarEvent
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def refresh_credential(self, refresh_token: str) -> TokenGrant:
        raise NotImplementedError


class GoogleCalendarGateway(CalendarGateway):
    """Google Calendar v3 over REST"""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        timeout: float = CALENDAR_API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id or GOOGLE_CLIENT_ID
        self.client_secret = client_secret or GOOGLE_CLIENT_SECRET
        self.redirect_uri = redirect_uri or GOOGLE_REDIRECT_URI
        self.timeout = timeout
        self._transport = transport

    async def _request(
        self, method: str, url: str, access_token: Optional[str] = None, **kwargs
    ) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise ExternalUnavailable(SERVICE_NAME, f"{method} {url} timed out") from e
        except httpx.HTTPError as e:
            raise ExternalUnavailable(SERVICE_NAME, f"{method} {url} failed: {e}") from e

        if response.status_code in (401, 403):
            raise ExternalUnavailable(
                SERVICE_NAME,
                f"{method} {url} rejected credential ({response.status_code})",
                recoverable=False,
            )
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str, ok=(200, 201)) -> None:
        if response.status_code not in ok:
            logger.error(f"❌ Google Calendar {action} failed ({response.status_code}): {response.text}")
            raise ExternalUnavailable(SERVICE_NAME, f"{action} failed with status {response.status_code}")

    @staticmethod
    def _json(response: httpx.Response, action: str) -> dict:
        """Decode a success body; anything but a JSON object is a provider failure"""
        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"❌ Google Calendar {action} returned an unreadable body: {response.text[:200]}")
            raise ExternalUnavailable(SERVICE_NAME, f"{action} returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise ExternalUnavailable(SERVICE_NAME, f"{action} returned unexpected payload")
        return payload

    def _events_url(self, calendar_id: str, event_id: Optional[str] = None) -> str:
        url = f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events"
        if event_id:
            url += f"/{quote(event_id, safe='')}"
        return url

    async def list_busy_intervals(
        self, access_token: str, calendar_id: str, start: datetime, end: datetime
    ) -> list[BusyInterval]:
        response = await self._request(
            "POST",
            f"{GOOGLE_CALENDAR_API}/freeBusy",
            access_token=access_token,
            json={
                "timeMin": isoformat_utc(start),
                "timeMax": isoformat_utc(end),
                "items": [{"id": calendar_id}],
            },
        )
        self._raise_for_status(response, "freeBusy query", ok=(200,))

        calendar = (self._json(response, "freeBusy query").get("calendars") or {}).get(calendar_id) or {}
        if calendar.get("errors"):
            raise ExternalUnavailable(SERVICE_NAME, f"freeBusy errors: {calendar['errors']}")

        try:
            return [
                BusyInterval(start=_parse_google_datetime(item["start"]), end=_parse_google_datetime(item["end"]))
                for item in calendar.get("busy", [])
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ExternalUnavailable(SERVICE_NAME, f"freeBusy returned a malformed busy entry: {e!r}") from e

    async def insert_event(self, access_token: str, calendar_id: str, event: CalendarEvent) -> str:
        response = await self._request(
            "POST", self._events_url(calendar_id), access_token=access_token, json=event.to_google()
        )
        self._raise_for_status(response, "event insert")

        event_id = self._json(response, "event insert").get("id")
        if not event_id:
            raise ExternalUnavailable(SERVICE_NAME, "event insert returned no id")
        logger.info(f"✅ Google Calendar event created: {event_id}")
        return event_id

    async def update_event(
        self, access_token: str, calendar_id: str, event_id: str, event: CalendarEvent
    ) -> None:
        response = await self._request(
            "PUT", self._events_url(calendar_id, event_id), access_token=access_token, json=event.to_google()
        )
        self._raise_for_status(response, "event update", ok=(200,))
        logger.info(f"✅ Google Calendar event updated: {event_id}")

    async def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> None:
        response = await self._request("DELETE", self._events_url(calendar_id, event_id), access_token=access_token)
        # 404/410: already gone on the provider side
        self._raise_for_status(response, "event delete", ok=(200, 204, 404, 410))
        logger.info(f"✅ Google Calendar event deleted: {event_id}")

    async def _token_request(self, data: dict, action: str) -> dict:
        response = await self._request(
            "POST",
            GOOGLE_TOKEN_URL,
            data={"client_id": self.client_id, "client_secret": self.client_secret, **data},
        )

        if response.status_code != 200:
            logger.error(f"❌ Token {action} failed: {response.text}")
            # 4xx from the token endpoint means the grant itself is bad
            raise ExternalUnavailable(
                SERVICE_NAME,
                f"token {action} failed with status {response.status_code}",
                recoverable=response.status_code >= 500,
            )
        return self._json(response, f"token {action}")

    async def refresh_credential(self, refresh_token: str) -> TokenGrant:
        tokens = await self._token_request(
            {"refresh_token": refresh_token, "grant_type": "refresh_token"}, "refresh"
        )
        access_token = tokens.get("access_token")
        if not access_token:
            raise ExternalUnavailable(SERVICE_NAME, "no access token in refresh response", recoverable=False)

        return TokenGrant(
            access_token=access_token,
            expires_at=utcnow() + timedelta(seconds=tokens.get("expires_in", 3600)),
            refresh_token=tokens.get("refresh_token"),
        )

    async def exchange_code(self, code: str) -> TokenGrant:
        """Exchange an OAuth authorization code for an access/refresh token pair"""
        tokens = await self._token_request(
            {"code": code, "redirect_uri": self.redirect_uri, "grant_type": "authorization_code"},
            "exchange",
        )
        access_token = tokens.get("access_token")
        refresh_token = tokens.get("refresh_token")
        if not access_token or not refresh_token:
            raise ExternalUnavailable(SERVICE_NAME, "invalid token response", recoverable=False)

        return TokenGrant(
            access_token=access_token,
            expires_at=utcnow() + timedelta(seconds=tokens.get("expires_in", 3600)),
            refresh_token=refresh_token,
        )

    async def get_primary_calendar(self, access_token: str) -> tuple[str, Optional[str]]:
        """Return (calendar_id, google_user_email) of the authorized account"""
        calendar_id = "primary"
        response = await self._request(
            "GET", f"{GOOGLE_CALENDAR_API}/users/me/calendarList/primary", access_token=access_token
        )
        if response.status_code == 200:
            calendar_id = self._json(response, "calendar lookup").get("id", "primary")

        email = None
        response = await self._request("GET", GOOGLE_USERINFO_URL, access_token=access_token)
        if response.status_code == 200:
            email = self._json(response, "userinfo lookup").get("email")
        return calendar_id, email

    async def revoke(self, token: str) -> None:
        response = await self._request("POST", GOOGLE_REVOKE_URL, params={"token": token})
        self._raise_for_status(response, "token revoke", ok=(200,))
