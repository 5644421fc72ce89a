"""Reservation repository - Database operations for reservations and bucket locks"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Reservation, SlotLock
from ...shared.persistence import commit_or_raise
from ...shared.timeutils import utcnow


class ReservationRepository:
    """Repository for reservation database operations"""

    @staticmethod
    def get(db: Session, reservation_id: str) -> Optional[Reservation]:
        return db.query(Reservation).filter(Reservation.id == reservation_id).first()

    @staticmethod
    def list_by_filters(
        db: Session,
        client_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[str] = None,
        newest_first: bool = False,
    ) -> list[Reservation]:
        """Reservations matching every given filter; ``end`` is exclusive"""
        query = db.query(Reservation)

        if client_id:
            query = query.filter(Reservation.client_id == client_id)
        if start:
            query = query.filter(Reservation.datetime >= start)
        if end:
            query = query.filter(Reservation.datetime < end)
        if status:
            query = query.filter(Reservation.status == status)

        order = Reservation.datetime.desc() if newest_first else Reservation.datetime.asc()
        return query.order_by(order).all()

    @staticmethod
    def active_datetimes_in_range(db: Session, client_id: str, start: datetime, end: datetime) -> list[datetime]:
        """Instants of every non-cancelled reservation in [start, end)"""
        rows = (
            db.query(Reservation.datetime)
            .filter(
                Reservation.client_id == client_id,
                Reservation.status != "cancelled",
                Reservation.datetime >= start,
                Reservation.datetime < end,
            )
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def count_active_in_range(
        db: Session, client_id: str, start: datetime, end: datetime, exclude_id: Optional[str] = None
    ) -> int:
        query = db.query(func.count(Reservation.id)).filter(
            Reservation.client_id == client_id,
            Reservation.status != "cancelled",
            Reservation.datetime >= start,
            Reservation.datetime < end,
        )
        if exclude_id:
            query = query.filter(Reservation.id != exclude_id)
        return query.scalar() or 0

    @staticmethod
    def ensure_lock_row(db: Session, client_id: str, bucket_start: datetime, bucket_minutes: int) -> None:
        """Make sure the lock row of a bucket exists (committed on its own)"""
        exists = (
            db.query(SlotLock.id)
            .filter(
                SlotLock.client_id == client_id,
                SlotLock.bucket_start == bucket_start,
                SlotLock.bucket_minutes == bucket_minutes,
            )
            .first()
        )
        if exists:
            return

        db.add(SlotLock(client_id=client_id, bucket_start=bucket_start, bucket_minutes=bucket_minutes, version=0))
        try:
            db.commit()
        except IntegrityError:
            # Another booking created it first
            db.rollback()

    @staticmethod
    def lock_bucket(db: Session, client_id: str, bucket_start: datetime, bucket_minutes: int) -> bool:
        """
        Take the write lock of a bucket for the current transaction.

        The caller must commit or roll back; until then concurrent bookings of
        the same bucket block on this statement.
        """
        updated = (
            db.query(SlotLock)
            .filter(
                SlotLock.client_id == client_id,
                SlotLock.bucket_start == bucket_start,
                SlotLock.bucket_minutes == bucket_minutes,
            )
            .update({SlotLock.version: SlotLock.version + 1}, synchronize_session=False)
        )
        return updated == 1

    @staticmethod
    def mark_cancelled(db: Session, reservation_id: str) -> bool:
        """Conditional transition to cancelled; False when it already was"""
        updated = (
            db.query(Reservation)
            .filter(Reservation.id == reservation_id, Reservation.status != "cancelled")
            .update({Reservation.status: "cancelled", Reservation.updated_at: utcnow()}, synchronize_session="fetch")
        )
        commit_or_raise(db, f"cancelling reservation {reservation_id}")
        return updated == 1

    @staticmethod
    def set_external_event_id(db: Session, reservation: Reservation, event_id: Optional[str]) -> None:
        reservation.external_event_id = event_id
        commit_or_raise(db, f"storing external event id for reservation {reservation.id}")

    @staticmethod
    def append_reminder(db: Session, reservation: Reservation, kind: str, sent_at: datetime) -> None:
        # Reassign so the JSON column is flagged dirty
        reservation.reminders_sent = [
            *(reservation.reminders_sent or []),
            {"kind": kind, "sent_at": sent_at.isoformat()},
        ]
        commit_or_raise(db, f"recording sent {kind} for reservation {reservation.id}")
