"""
Calendar sync service

Owns the tenant's external-calendar credential: authorization completion,
disconnect, status, and handing a valid access token to each gateway call.
The token is read from the sync record on every call and refreshed in place.
"""

import logging
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from ...config import GOOGLE_CLIENT_ID, GOOGLE_REDIRECT_URI, TOKEN_REFRESH_MARGIN_MINUTES
from ...exceptions import ExternalUnavailable, ValidationError
from ...models_calendar_sync import CalendarSync
from ...schemas import CalendarSyncStatusResponse
from ...services.google_calendar_service import CalendarGateway
from ...shared.crypto import decrypt_token, encrypt_token
from ...shared.timeutils import utcnow
from .repository import CalendarSyncRepository

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/userinfo.email",
]


class CalendarSyncService:
    """Service layer for the per-tenant calendar connection"""

    def __init__(self, db: Session, gateway: Optional[CalendarGateway] = None):
        self.db = db
        self.gateway = gateway
        self.repo = CalendarSyncRepository()

    def get_active(self, client_id: str) -> Optional[CalendarSync]:
        return self.repo.get_active(self.db, client_id)

    def get_status(self, client_id: str) -> CalendarSyncStatusResponse:
        sync = self.repo.get(self.db, client_id)
        if sync is None:
            return CalendarSyncStatusResponse(clientId=client_id, syncStatus="disconnected")

        return CalendarSyncStatusResponse(
            clientId=client_id,
            syncStatus=sync.sync_status,
            syncEnabled=sync.sync_enabled,
            calendarId=sync.calendar_id,
            googleUserEmail=sync.google_user_email,
            lastSyncTime=sync.last_sync_time,
            lastError=sync.last_error,
        )

    @staticmethod
    def build_authorization_url(client_id: str) -> str:
        """URL of the consent screen; the tenant travels in the OAuth state parameter"""
        if not GOOGLE_CLIENT_ID:
            raise ValidationError("Google Calendar is not configured")

        params = {
            "client_id": GOOGLE_CLIENT_ID,
            "redirect_uri": GOOGLE_REDIRECT_URI,
            "response_type": "code",
            "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
            "access_type": "offline",
            # Always show consent so a refresh token is issued
            "prompt": "consent",
            "state": client_id,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def complete_authorization(self, client_id: str, code: str) -> CalendarSync:
        """Exchange the authorization code and activate syncing for the tenant"""
        if not code:
            raise ValidationError("No authorization code provided", field="code")

        grant = await self.gateway.exchange_code(code)
        calendar_id, google_email = await self.gateway.get_primary_calendar(grant.access_token)

        sync = self.repo.upsert_authorized(
            self.db,
            client_id,
            calendar_id=calendar_id,
            access_token=encrypt_token(grant.access_token),
            refresh_token=encrypt_token(grant.refresh_token),
            token_expiry=grant.expires_at,
            google_user_email=google_email,
        )
        logger.info(f"✅ Google Calendar connected for client {client_id} (calendar {calendar_id})")
        return sync

    async def disconnect(self, client_id: str) -> CalendarSync:
        sync = self.repo.get(self.db, client_id)
        if sync is None:
            raise ValidationError("Google Calendar not connected")

        revoke = getattr(self.gateway, "revoke", None)
        if revoke is not None:
            try:
                await revoke(decrypt_token(sync.refresh_token))
            except ExternalUnavailable as e:
                logger.warning(f"Failed to revoke Google tokens for client {client_id}: {e}")

        sync = self.repo.mark_disconnected(self.db, sync)
        logger.info(f"✅ Google Calendar disconnected for client {client_id}")
        return sync

    async def get_credential(self, sync: CalendarSync) -> str:
        """
        Return a usable access token for ``sync``, refreshing it when it
        expires within the refresh margin. A failed refresh puts the sync into
        the error state.
        """
        if sync.token_expiry > utcnow() + timedelta(minutes=TOKEN_REFRESH_MARGIN_MINUTES):
            return decrypt_token(sync.access_token)

        logger.info(f"🔄 Google Calendar token expiring for client {sync.client_id}, refreshing...")
        try:
            grant = await self.gateway.refresh_credential(decrypt_token(sync.refresh_token))
        except ExternalUnavailable as e:
            self.record_failure(sync.client_id, e)
            raise

        self.repo.store_refreshed_token(
            self.db,
            sync,
            access_token=encrypt_token(grant.access_token),
            token_expiry=grant.expires_at,
            refresh_token=encrypt_token(grant.refresh_token) if grant.refresh_token else None,
        )
        logger.info(f"✅ Google Calendar token refreshed for client {sync.client_id}")
        return grant.access_token

    def record_failure(self, client_id: str, error: ExternalUnavailable) -> None:
        if error.recoverable:
            self.repo.record_error(self.db, client_id, str(error))
            return
        logger.error(f"❌ Calendar sync for client {client_id} moved to error state: {error}")
        self.repo.mark_error(self.db, client_id, str(error))

    def record_success(self, client_id: str) -> None:
        self.repo.touch_synced(self.db, client_id)
