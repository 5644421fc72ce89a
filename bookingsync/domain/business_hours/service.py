"""Business hours service - defaulting and validated updates"""

import logging
from typing import Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ...exceptions import ValidationError
from ...schemas import (
    BusinessHoursResponse,
    BusinessHoursUpdate,
    DayHoursSchema,
    ExceptionalDay,
    ReservationWindow,
)
from .hours import (
    DEFAULT_MAX_DAYS_AHEAD,
    DEFAULT_MIN_DAYS_AHEAD,
    DEFAULT_SLOT_INTERVAL_MINUTES,
    DEFAULT_WEEKLY_HOURS,
    BusinessHoursConfig,
    WeeklyHours,
)
from .repository import BusinessHoursRepository

logger = logging.getLogger(__name__)


class BusinessHoursService:
    """Service layer for business hours"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BusinessHoursRepository()

    def _get_or_create_row(self, client_id: str):
        row = self.repo.get(self.db, client_id)
        if row is None:
            logger.info(f"Creating default business hours for client {client_id}")
            row = self.repo.create(
                self.db,
                client_id,
                weekly_hours=DEFAULT_WEEKLY_HOURS.to_list(),
                slot_interval_minutes=DEFAULT_SLOT_INTERVAL_MINUTES,
                min_days_ahead=DEFAULT_MIN_DAYS_AHEAD,
                max_days_ahead=DEFAULT_MAX_DAYS_AHEAD,
                exceptional_days=[],
            )
        return row

    def get(self, client_id: str) -> BusinessHoursConfig:
        """Get a tenant's hours, creating the default configuration on first access"""
        return BusinessHoursConfig.from_model(self._get_or_create_row(client_id))

    def update(self, client_id: str, patch: Union[BusinessHoursUpdate, dict]) -> BusinessHoursConfig:
        if isinstance(patch, dict):
            try:
                patch = BusinessHoursUpdate.model_validate(patch)
            except PydanticValidationError as e:
                raise ValidationError(str(e)) from e

        row = self._get_or_create_row(client_id)
        updates = {}

        if patch.weeklyHours is not None:
            weekly = WeeklyHours.from_list(
                [
                    {
                        "is_open": day.isOpen,
                        "start": day.start,
                        "end": day.end,
                        "slot_capacity": day.slotCapacity,
                    }
                    for day in patch.weeklyHours
                ]
            )
            for weekday, day in weekly.items():
                problem = day.validate()
                if problem:
                    raise ValidationError(f"{weekday.name.title()}: {problem}", field="weeklyHours")
            updates["weekly_hours"] = weekly.to_list()

        if patch.slotIntervalMinutes is not None:
            updates["slot_interval_minutes"] = patch.slotIntervalMinutes

        if patch.reservationWindow is not None:
            updates["min_days_ahead"] = patch.reservationWindow.minDaysAhead
            updates["max_days_ahead"] = patch.reservationWindow.maxDaysAhead

        if patch.exceptionalDays is not None:
            updates["exceptional_days"] = [
                {"date": day.date.isoformat(), "is_holiday": day.isHoliday, "note": day.note}
                for day in patch.exceptionalDays
            ]

        row = self.repo.update(self.db, row, **updates)
        logger.info(f"✅ Business hours updated for client {client_id}: {sorted(updates)}")
        return BusinessHoursConfig.from_model(row)

    @staticmethod
    def to_response(config: BusinessHoursConfig) -> BusinessHoursResponse:
        return BusinessHoursResponse(
            clientId=config.client_id,
            weeklyHours=[
                DayHoursSchema(
                    isOpen=day.is_open,
                    start=day.start.strftime("%H:%M"),
                    end=day.end.strftime("%H:%M"),
                    slotCapacity=day.slot_capacity,
                )
                for day in config.weekly.days
            ],
            slotIntervalMinutes=config.slot_interval_minutes,
            reservationWindow=ReservationWindow(
                minDaysAhead=config.min_days_ahead, maxDaysAhead=config.max_days_ahead
            ),
            exceptionalDays=[
                ExceptionalDay(date=entry["date"], isHoliday=entry.get("is_holiday", True), note=entry.get("note"))
                for entry in config.exceptional_days
            ],
        )
