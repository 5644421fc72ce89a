"""Business hours domain - weekly opening configuration per tenant"""

from .hours import BusinessHoursConfig, DayHours, Weekday, WeeklyHours

__all__ = ["BusinessHoursConfig", "DayHours", "Weekday", "WeeklyHours"]
