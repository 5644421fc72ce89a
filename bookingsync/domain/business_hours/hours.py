"""
Weekly business hours as plain values.

Stored rows keep the week as a seven-entry JSON list (Monday first); this
module turns that list into a structure indexed by Weekday.
"""

from dataclasses import dataclass, field
from datetime import date, time
from enum import IntEnum
from typing import Optional

from ...shared.validators import parse_time_of_day


class Weekday(IntEnum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def from_date(cls, day: date) -> "Weekday":
        return cls(day.weekday())


@dataclass(frozen=True)
class DayHours:
    is_open: bool
    start: time
    end: time
    slot_capacity: int

    @classmethod
    def from_dict(cls, data: dict) -> "DayHours":
        return cls(
            is_open=bool(data.get("is_open", False)),
            start=parse_time_of_day(data.get("start", "09:00")),
            end=parse_time_of_day(data.get("end", "17:00")),
            slot_capacity=int(data.get("slot_capacity", 1)),
        )

    def to_dict(self) -> dict:
        return {
            "is_open": self.is_open,
            "start": self.start.strftime("%H:%M"),
            "end": self.end.strftime("%H:%M"),
            "slot_capacity": self.slot_capacity,
        }

    def validate(self) -> Optional[str]:
        """Return a problem description, or None when the entry is consistent"""
        if not self.is_open:
            return None
        if self.start >= self.end:
            return "start must be before end on an open day"
        if self.slot_capacity < 1:
            return "slot capacity must be at least 1 on an open day"
        return None


@dataclass(frozen=True)
class WeeklyHours:
    days: tuple[DayHours, ...]

    def __post_init__(self):
        if len(self.days) != len(Weekday):
            raise ValueError(f"Weekly hours need {len(Weekday)} entries, got {len(self.days)}")

    def __getitem__(self, weekday: Weekday) -> DayHours:
        return self.days[Weekday(weekday)]

    def items(self):
        return zip(Weekday, self.days)

    @classmethod
    def from_list(cls, entries: list[dict]) -> "WeeklyHours":
        return cls(days=tuple(DayHours.from_dict(entry) for entry in entries))

    def to_list(self) -> list[dict]:
        return [day.to_dict() for day in self.days]


def _default_week() -> WeeklyHours:
    weekday = DayHours(is_open=True, start=time(12, 0), end=time(18, 0), slot_capacity=1)
    weekend = DayHours(is_open=False, start=time(12, 0), end=time(18, 0), slot_capacity=1)
    return WeeklyHours(days=(weekday,) * 5 + (weekend,) * 2)


DEFAULT_WEEKLY_HOURS = _default_week()
DEFAULT_SLOT_INTERVAL_MINUTES = 60
DEFAULT_MIN_DAYS_AHEAD = 1
DEFAULT_MAX_DAYS_AHEAD = 30


@dataclass(frozen=True)
class BusinessHoursConfig:
    client_id: str
    weekly: WeeklyHours = DEFAULT_WEEKLY_HOURS
    slot_interval_minutes: int = DEFAULT_SLOT_INTERVAL_MINUTES
    min_days_ahead: int = DEFAULT_MIN_DAYS_AHEAD
    max_days_ahead: int = DEFAULT_MAX_DAYS_AHEAD
    exceptional_days: tuple[dict, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, row) -> "BusinessHoursConfig":
        return cls(
            client_id=row.client_id,
            weekly=WeeklyHours.from_list(row.weekly_hours),
            slot_interval_minutes=row.slot_interval_minutes,
            min_days_ahead=row.min_days_ahead,
            max_days_ahead=row.max_days_ahead,
            exceptional_days=tuple(row.exceptional_days or ()),
        )

    def is_holiday(self, day: date) -> bool:
        iso = day.isoformat()
        return any(entry.get("date") == iso and entry.get("is_holiday", True) for entry in self.exceptional_days)

    def hours_for(self, day: date) -> Optional[DayHours]:
        """Hours in effect on ``day``, or None when the business is closed"""
        if self.is_holiday(day):
            return None
        hours = self.weekly[Weekday.from_date(day)]
        return hours if hours.is_open else None
