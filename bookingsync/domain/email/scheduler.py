"""
Notification scheduler

Turns each active template of a tenant into an absolute send time for a
reservation, persists it, and delivers due records from the periodic sweep.
Every delivery goes through a status compare-and-swap so a record is sent by
at most one caller at a time.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ...config import EMAIL_CLAIM_TIMEOUT_MINUTES, EMAIL_RETRY_MAX_ATTEMPTS
from ...email_service import MailGateway
from ...exceptions import PersistenceError, ValidationError
from ...models import EmailSchedule, Reservation
from ...shared.timeutils import get_zone, utcnow
from ..reservations.repository import ReservationRepository
from .rendering import render
from .repository import EmailRepository

logger = logging.getLogger(__name__)

RESERVATION_CANCELLED = "reservation cancelled"
RESERVATION_MISSING = "reservation not found"

_UNIT_DELTAS = {
    "minutes": lambda value: timedelta(minutes=value),
    "hours": lambda value: timedelta(hours=value),
    "days": lambda value: timedelta(days=value),
}


@dataclass
class SweepReport:
    claimed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    schedule_ids: list[int] = field(default_factory=list)


def calculate_scheduled_time(reservation_time: datetime, value: int, unit: str) -> datetime:
    """Fire time ``value`` ``unit`` before the reservation"""
    try:
        delta = _UNIT_DELTAS[unit](value)
    except KeyError:
        raise ValidationError(f"Invalid timing unit: {unit}", field="timing.unit") from None
    return reservation_time - delta


class NotificationScheduler:
    def __init__(
        self,
        db: Session,
        mail: MailGateway,
        tz: Optional[ZoneInfo] = None,
        max_attempts: int = EMAIL_RETRY_MAX_ATTEMPTS,
        claim_timeout_minutes: int = EMAIL_CLAIM_TIMEOUT_MINUTES,
    ):
        self.db = db
        self.mail = mail
        self.tz = tz or get_zone()
        self.max_attempts = max_attempts
        self.claim_timeout = timedelta(minutes=claim_timeout_minutes)
        self.repo = EmailRepository()
        self.reservations = ReservationRepository()

    calculate_scheduled_time = staticmethod(calculate_scheduled_time)

    async def register_for_reservation(
        self, reservation: Reservation, now: Optional[datetime] = None
    ) -> list[EmailSchedule]:
        """
        Create one schedule per active template of the reservation's tenant.

        Confirmations, and reminders whose fire time has already passed, are
        claimed on creation and sent right away; the rest wait for the sweep.
        """
        now = now or utcnow()
        schedules = []

        for template in self.repo.list_templates(self.db, reservation.client_id, active_only=True):
            if template.type == "confirmation":
                fire_at = now
            else:
                fire_at = calculate_scheduled_time(reservation.datetime, template.timing_value, template.timing_unit)

            if fire_at <= now:
                schedule = self.repo.create_schedule(
                    self.db, template.id, reservation.id, fire_at, status="sending", claimed_at=now
                )
                await self._deliver_isolated(schedule)
            else:
                schedule = self.repo.create_schedule(self.db, template.id, reservation.id, fire_at)
                logger.info(f"📅 Email scheduled for {fire_at.isoformat()} (template {template.id}, reservation {reservation.id})")
            schedules.append(schedule)

        return schedules

    async def sweep_due(self, now: Optional[datetime] = None) -> SweepReport:
        """Send every schedule due at ``now``; future and finished records are left alone"""
        now = now or utcnow()
        stale_before = now - self.claim_timeout
        report = SweepReport()

        candidates = self.repo.due_schedule_ids(self.db, now, stale_before)
        logger.info(f"Found {len(candidates)} emails to send")

        for schedule_id in candidates:
            claimed = self._claim(
                schedule_id,
                now,
                (
                    ((EmailSchedule.status == "scheduled") & (EmailSchedule.scheduled_time <= now))
                    | ((EmailSchedule.status == "sending") & (EmailSchedule.claimed_at < stale_before))
                ),
            )
            await self._run_claimed(schedule_id, claimed, report)

        if report.claimed:
            logger.info(f"✅ Email sweep done: {report.sent} sent, {report.failed} failed")
        return report

    async def retry_failed(self, now: Optional[datetime] = None) -> SweepReport:
        """Resend failed schedules; records at the attempt cap stay failed"""
        now = now or utcnow()
        report = SweepReport()

        conditions = [EmailSchedule.status == "failed"]
        if self.max_attempts > 0:
            conditions.append(EmailSchedule.attempts < self.max_attempts)

        for schedule_id in self.repo.failed_schedule_ids(self.db, self.max_attempts):
            claimed = self._claim(schedule_id, now, *conditions)
            await self._run_claimed(schedule_id, claimed, report)

        if report.claimed:
            logger.info(f"🔄 Email retry done: {report.sent} sent, {report.failed} still failing")
        return report

    def reschedule_for_reservation(self, reservation: Reservation) -> list[EmailSchedule]:
        """
        Follow a moved reservation: unclaimed reminders get a fire time derived
        from the new datetime. One that is now overdue goes out on the next sweep.
        """
        moved = []
        for schedule in self.repo.pending_for_reservation(self.db, reservation.id):
            template = schedule.template
            if template.type == "confirmation":
                continue
            fire_at = calculate_scheduled_time(reservation.datetime, template.timing_value, template.timing_unit)
            if self.repo.reschedule(self.db, schedule.id, fire_at):
                moved.append(schedule)

        for schedule in moved:
            self.db.refresh(schedule)
        if moved:
            logger.info(f"📅 Rescheduled {len(moved)} email(s) for reservation {reservation.id}")
        return moved

    def get_schedule_status(self, template_id: int, reservation_id: str) -> Optional[EmailSchedule]:
        return self.repo.latest_schedule(self.db, template_id, reservation_id)

    async def _run_claimed(self, schedule_id: int, claimed: bool, report: SweepReport) -> None:
        if not claimed:
            # Another sweep or retry got there first
            report.skipped += 1
            return

        report.claimed += 1
        report.schedule_ids.append(schedule_id)
        schedule = self.repo.get_schedule(self.db, schedule_id)
        if await self._deliver_isolated(schedule):
            report.sent += 1
        else:
            report.failed += 1

    def _claim(self, schedule_id: int, now: datetime, *conditions) -> bool:
        try:
            return self.repo.claim(self.db, schedule_id, now, *conditions)
        except PersistenceError as e:
            logger.error(f"❌ Could not claim email schedule {schedule_id}: {e}")
            return False

    async def _deliver_isolated(self, schedule: EmailSchedule) -> bool:
        """
        Deliver one claimed schedule. Errors stay with that record: it is
        marked failed so retry picks it up, and the caller moves on.
        """
        try:
            return await self._deliver(schedule)
        except Exception as e:
            self.db.rollback()
            error = str(e) or type(e).__name__
            logger.error(f"❌ Unexpected error sending email schedule {schedule.id}: {error}")
            try:
                self._record_failure(schedule, None, None, error)
            except PersistenceError as record_error:
                logger.error(f"❌ Could not mark email schedule {schedule.id} as failed: {record_error}")
            return False

    async def _deliver(self, schedule: EmailSchedule) -> bool:
        """Send a claimed schedule and record the outcome. Returns True when sent."""
        reservation = schedule.reservation
        template = schedule.template
        if reservation is None:
            self._record_failure(schedule, None, None, RESERVATION_MISSING)
            return False

        recipient = (reservation.customer_info or {}).get("email")

        if reservation.status == "cancelled":
            self._record_failure(schedule, recipient, None, RESERVATION_CANCELLED)
            return False

        subject = render(template.subject, reservation, self.tz, escape=False)
        body = render(template.body, reservation, self.tz)

        if not recipient:
            self._record_failure(schedule, recipient, subject, "reservation has no recipient email")
            return False

        result = await self.mail.send(recipient, subject, body)
        if not result.success:
            self._record_failure(schedule, recipient, subject, result.reason or "send failed")
            return False

        sent_at = utcnow()
        self.repo.finish(self.db, schedule, "sent", sent_at=sent_at)
        self.reservations.append_reminder(self.db, reservation, template.type, sent_at)
        self.repo.add_log(
            self.db,
            "success",
            recipient,
            subject=subject,
            template_id=template.id,
            reservation_id=reservation.id,
        )
        logger.info(f"✅ Sent {template.type} email {schedule.id} to {recipient}")
        return True

    def _record_failure(self, schedule: EmailSchedule, recipient, subject, error: str) -> None:
        self.repo.finish(self.db, schedule, "failed", error=error)
        self.repo.add_log(
            self.db,
            "failed",
            recipient,
            subject=subject,
            template_id=schedule.template_id,
            reservation_id=schedule.reservation_id,
            error=error,
        )
        logger.error(f"❌ Failed to send scheduled email {schedule.id}: {error}")
