import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base
from .shared.timeutils import utcnow

RESERVATION_STATUSES = ("pending", "confirmed", "cancelled")
TEMPLATE_TYPES = ("confirmation", "reminder", "followup")
TIMING_UNITS = ("minutes", "hours", "days")
SCHEDULE_STATUSES = ("scheduled", "sending", "sent", "failed")
LOG_STATUSES = ("success", "failed")


def generate_reservation_id():
    return str(uuid.uuid4())


class BusinessHours(Base):
    """Weekly opening configuration of one tenant"""

    __tablename__ = "business_hours"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(String(255), unique=True, nullable=False, index=True)

    # Seven entries, Monday first: {"is_open", "start", "end", "slot_capacity"}
    weekly_hours = Column(JSON, nullable=False)
    slot_interval_minutes = Column(Integer, nullable=False, default=60)

    # Reservation window in days ahead of today
    min_days_ahead = Column(Integer, nullable=False, default=1)
    max_days_ahead = Column(Integer, nullable=False, default=30)

    # [{"date": "YYYY-MM-DD", "is_holiday": bool, "note": str}]
    exceptional_days = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (Index("ix_reservations_client_datetime", "client_id", "datetime"),)

    id = Column(String(36), primary_key=True, default=generate_reservation_id)
    client_id = Column(String(255), nullable=False, index=True)

    # Absolute instant, naive UTC
    datetime = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)

    # {"name", "email", "phone", "company", "message"}
    customer_info = Column(JSON, nullable=False)

    external_event_id = Column(String(255), nullable=True)

    # [{"kind": "reminder", "sent_at": iso}]
    reminders_sent = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    email_schedules = relationship("EmailSchedule", back_populates="reservation")


class SlotLock(Base):
    """
    One row per booked bucket, locked by every booking into that bucket.

    The locking UPDATE serializes bookings of the same bucket; capacity is
    then re-counted from live reservations inside the same transaction.
    """

    __tablename__ = "slot_locks"
    __table_args__ = (
        UniqueConstraint("client_id", "bucket_start", "bucket_minutes", name="uq_slot_lock_bucket"),
    )

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(String(255), nullable=False)
    bucket_start = Column(DateTime, nullable=False)
    bucket_minutes = Column(Integer, nullable=False)
    # Bumped by each locking write
    version = Column(Integer, nullable=False, default=0)


class EmailTemplate(Base):
    __tablename__ = "email_templates"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)

    # Offset before the reservation; ignored for confirmation templates
    timing_value = Column(Integer, nullable=False, default=0)
    timing_unit = Column(String(10), nullable=False, default="hours")

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class EmailSchedule(Base):
    """One pending notification of one template for one reservation (kept as audit trail)"""

    __tablename__ = "email_schedules"
    __table_args__ = (Index("ix_email_schedules_status_time", "status", "scheduled_time"),)

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("email_templates.id"), nullable=False)
    reservation_id = Column(String(36), ForeignKey("reservations.id"), nullable=False, index=True)

    scheduled_time = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default="scheduled")
    attempts = Column(Integer, nullable=False, default=0)
    claimed_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    template = relationship("EmailTemplate")
    reservation = relationship("Reservation", back_populates="email_schedules")


class EmailLog(Base):
    """Append-only record of every send attempt"""

    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("email_templates.id"), nullable=True, index=True)
    reservation_id = Column(String(36), ForeignKey("reservations.id"), nullable=True, index=True)
    recipient = Column(String(255), nullable=True)
    subject = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False)
    error = Column(Text, nullable=True)
    sent_at = Column(DateTime, default=utcnow, index=True)
