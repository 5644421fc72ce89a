"""Email repository - Database operations for templates, schedules and logs"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import EmailLog, EmailSchedule, EmailTemplate, Reservation
from ...shared.persistence import commit_or_raise
from ...shared.timeutils import utcnow


class EmailRepository:
    """Repository for email database operations"""

    # ---- templates ----

    @staticmethod
    def get_template(db: Session, template_id: int) -> Optional[EmailTemplate]:
        return db.query(EmailTemplate).filter(EmailTemplate.id == template_id).first()

    @staticmethod
    def list_templates(db: Session, client_id: str, active_only: bool = False) -> list[EmailTemplate]:
        query = db.query(EmailTemplate).filter(EmailTemplate.client_id == client_id)
        if active_only:
            query = query.filter(EmailTemplate.is_active.is_(True))
        return query.order_by(EmailTemplate.id.asc()).all()

    @staticmethod
    def create_template(db: Session, **data) -> EmailTemplate:
        template = EmailTemplate(**data)
        db.add(template)
        commit_or_raise(db, "creating email template")
        db.refresh(template)
        return template

    @staticmethod
    def update_template(db: Session, template: EmailTemplate, **updates) -> EmailTemplate:
        for key, value in updates.items():
            if value is not None and hasattr(template, key):
                setattr(template, key, value)
        commit_or_raise(db, f"updating email template {template.id}")
        db.refresh(template)
        return template

    @staticmethod
    def deactivate_template(db: Session, template: EmailTemplate) -> EmailTemplate:
        # Schedules and logs reference templates, so they are never deleted
        template.is_active = False
        commit_or_raise(db, f"deactivating email template {template.id}")
        return template

    # ---- schedules ----

    @staticmethod
    def get_schedule(db: Session, schedule_id: int) -> Optional[EmailSchedule]:
        return db.query(EmailSchedule).filter(EmailSchedule.id == schedule_id).first()

    @staticmethod
    def latest_schedule(db: Session, template_id: int, reservation_id: str) -> Optional[EmailSchedule]:
        return (
            db.query(EmailSchedule)
            .filter(EmailSchedule.template_id == template_id, EmailSchedule.reservation_id == reservation_id)
            .order_by(EmailSchedule.created_at.desc(), EmailSchedule.id.desc())
            .first()
        )

    @staticmethod
    def create_schedule(
        db: Session,
        template_id: int,
        reservation_id: str,
        scheduled_time: datetime,
        status: str = "scheduled",
        claimed_at: Optional[datetime] = None,
    ) -> EmailSchedule:
        schedule = EmailSchedule(
            template_id=template_id,
            reservation_id=reservation_id,
            scheduled_time=scheduled_time,
            status=status,
            attempts=1 if status == "sending" else 0,
            claimed_at=claimed_at,
        )
        db.add(schedule)
        commit_or_raise(db, f"scheduling email template {template_id} for reservation {reservation_id}")
        db.refresh(schedule)
        return schedule

    @staticmethod
    def due_schedule_ids(db: Session, now: datetime, stale_before: datetime) -> list[int]:
        """Due scheduled records, plus sending claims abandoned before ``stale_before``"""
        rows = (
            db.query(EmailSchedule.id)
            .filter(
                or_(
                    (EmailSchedule.status == "scheduled") & (EmailSchedule.scheduled_time <= now),
                    (EmailSchedule.status == "sending") & (EmailSchedule.claimed_at < stale_before),
                )
            )
            .order_by(EmailSchedule.scheduled_time.asc())
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def failed_schedule_ids(db: Session, max_attempts: int = 0) -> list[int]:
        query = (
            db.query(EmailSchedule.id)
            .join(Reservation, EmailSchedule.reservation_id == Reservation.id)
            .filter(EmailSchedule.status == "failed", Reservation.status != "cancelled")
        )
        if max_attempts > 0:
            query = query.filter(EmailSchedule.attempts < max_attempts)
        return [row[0] for row in query.order_by(EmailSchedule.scheduled_time.asc()).all()]

    @staticmethod
    def pending_for_reservation(db: Session, reservation_id: str) -> list[EmailSchedule]:
        return (
            db.query(EmailSchedule)
            .filter(EmailSchedule.reservation_id == reservation_id, EmailSchedule.status == "scheduled")
            .all()
        )

    @staticmethod
    def reschedule(db: Session, schedule_id: int, scheduled_time: datetime) -> bool:
        """Move a schedule that has not been claimed yet"""
        updated = (
            db.query(EmailSchedule)
            .filter(EmailSchedule.id == schedule_id, EmailSchedule.status == "scheduled")
            .update(
                {EmailSchedule.scheduled_time: scheduled_time, EmailSchedule.updated_at: utcnow()},
                synchronize_session=False,
            )
        )
        commit_or_raise(db, f"rescheduling email schedule {schedule_id}")
        return updated == 1

    @staticmethod
    def claim(db: Session, schedule_id: int, now: datetime, *conditions) -> bool:
        """
        Compare-and-swap a schedule into ``sending``. Only the caller whose
        UPDATE matched the row may send it.
        """
        updated = (
            db.query(EmailSchedule)
            .filter(EmailSchedule.id == schedule_id, *conditions)
            .update(
                {
                    EmailSchedule.status: "sending",
                    EmailSchedule.claimed_at: now,
                    EmailSchedule.attempts: EmailSchedule.attempts + 1,
                    EmailSchedule.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        commit_or_raise(db, f"claiming email schedule {schedule_id}")
        return updated == 1

    @staticmethod
    def finish(
        db: Session,
        schedule: EmailSchedule,
        status: str,
        error: Optional[str] = None,
        sent_at: Optional[datetime] = None,
    ) -> EmailSchedule:
        schedule.status = status
        schedule.last_error = error
        schedule.claimed_at = None
        if sent_at:
            schedule.sent_at = sent_at
        commit_or_raise(db, f"marking email schedule {schedule.id} as {status}")
        return schedule

    # ---- logs ----

    @staticmethod
    def add_log(
        db: Session,
        status: str,
        recipient: Optional[str],
        subject: Optional[str] = None,
        template_id: Optional[int] = None,
        reservation_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> EmailLog:
        log = EmailLog(
            template_id=template_id,
            reservation_id=reservation_id,
            recipient=recipient,
            subject=subject,
            status=status,
            error=error,
            sent_at=utcnow(),
        )
        db.add(log)
        commit_or_raise(db, "writing email log")
        return log

    @staticmethod
    def list_logs(
        db: Session,
        client_id: Optional[str] = None,
        template_id: Optional[int] = None,
        reservation_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> list[EmailLog]:
        query = db.query(EmailLog)
        if client_id:
            query = query.join(EmailTemplate, EmailLog.template_id == EmailTemplate.id).filter(
                EmailTemplate.client_id == client_id
            )
        if template_id:
            query = query.filter(EmailLog.template_id == template_id)
        if reservation_id:
            query = query.filter(EmailLog.reservation_id == reservation_id)
        if status:
            query = query.filter(EmailLog.status == status)
        return query.order_by(EmailLog.sent_at.desc(), EmailLog.id.desc()).limit(limit).all()
