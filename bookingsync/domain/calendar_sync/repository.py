"""Calendar sync repository - Database operations for per-tenant sync records"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models_calendar_sync import CalendarSync
from ...shared.persistence import commit_or_raise
from ...shared.timeutils import utcnow


class CalendarSyncRepository:
    """Repository for calendar sync database operations"""

    @staticmethod
    def get(db: Session, client_id: str) -> Optional[CalendarSync]:
        return db.query(CalendarSync).filter(CalendarSync.client_id == client_id).first()

    @staticmethod
    def get_active(db: Session, client_id: str) -> Optional[CalendarSync]:
        return (
            db.query(CalendarSync)
            .filter(
                CalendarSync.client_id == client_id,
                CalendarSync.sync_enabled.is_(True),
                CalendarSync.sync_status == "active",
            )
            .first()
        )

    @staticmethod
    def upsert_authorized(
        db: Session,
        client_id: str,
        calendar_id: str,
        access_token: str,
        refresh_token: str,
        token_expiry: datetime,
        google_user_email: Optional[str] = None,
    ) -> CalendarSync:
        """Store a freshly authorized credential (tokens already encrypted)"""
        sync = CalendarSyncRepository.get(db, client_id)
        if sync is None:
            sync = CalendarSync(client_id=client_id)
            db.add(sync)

        sync.calendar_id = calendar_id
        sync.access_token = access_token
        sync.refresh_token = refresh_token
        sync.token_expiry = token_expiry
        sync.google_user_email = google_user_email
        sync.sync_enabled = True
        sync.sync_status = "active"
        sync.last_sync_time = utcnow()
        sync.last_error = None
        sync.last_error_at = None

        commit_or_raise(db, f"saving calendar authorization for {client_id}")
        db.refresh(sync)
        return sync

    @staticmethod
    def mark_disconnected(db: Session, sync: CalendarSync) -> CalendarSync:
        sync.sync_enabled = False
        sync.sync_status = "disconnected"
        sync.last_sync_time = utcnow()
        sync.last_error = None
        sync.last_error_at = None
        commit_or_raise(db, f"disconnecting calendar sync for {sync.client_id}")
        return sync

    @staticmethod
    def mark_error(db: Session, client_id: str, message: str) -> None:
        """Move the sync to the error state; mirroring stops until re-authorized"""
        CalendarSyncRepository.record_error(db, client_id, message, unrecoverable=True)

    @staticmethod
    def record_error(db: Session, client_id: str, message: str, unrecoverable: bool = False) -> None:
        updates = {CalendarSync.last_error: message[:2000], CalendarSync.last_error_at: utcnow()}
        if unrecoverable:
            updates[CalendarSync.sync_status] = "error"
        db.query(CalendarSync).filter(CalendarSync.client_id == client_id).update(
            updates, synchronize_session="fetch"
        )
        commit_or_raise(db, f"recording calendar sync error for {client_id}")

    @staticmethod
    def touch_synced(db: Session, client_id: str) -> None:
        db.query(CalendarSync).filter(CalendarSync.client_id == client_id).update(
            {
                CalendarSync.last_sync_time: utcnow(),
                CalendarSync.last_error: None,
                CalendarSync.last_error_at: None,
            },
            synchronize_session="fetch",
        )
        commit_or_raise(db, f"recording calendar sync for {client_id}")

    @staticmethod
    def store_refreshed_token(
        db: Session,
        sync: CalendarSync,
        access_token: str,
        token_expiry: datetime,
        refresh_token: Optional[str] = None,
    ) -> CalendarSync:
        sync.access_token = access_token
        sync.token_expiry = token_expiry
        if refresh_token:
            sync.refresh_token = refresh_token
        commit_or_raise(db, f"storing refreshed calendar token for {sync.client_id}")
        return sync
