"""
Google Calendar Sync Models
"""
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from .database import Base
from .shared.timeutils import utcnow

SYNC_STATUSES = ("active", "error", "disconnected")


class CalendarSync(Base):
    __tablename__ = "calendar_syncs"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(String(255), nullable=False, unique=True, index=True)

    calendar_id = Column(String(500), nullable=False, default="primary")
    sync_enabled = Column(Boolean, default=True, nullable=False)
    sync_status = Column(String(20), nullable=False, default="disconnected")
    last_sync_time = Column(DateTime, nullable=True)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    token_expiry = Column(DateTime, nullable=False)

    # Google user info
    google_user_email = Column(String(255), nullable=True)

    last_error = Column(Text, nullable=True)
    last_error_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_active(self) -> bool:
        return bool(self.sync_enabled) and self.sync_status == "active"
