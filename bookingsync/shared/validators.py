"""Shared validation utilities"""

import re
from datetime import time
from typing import Optional

EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
TIME_OF_DAY_PATTERN = r"^([01]\d|2[0-3]):([0-5]\d)$"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    if not re.match(EMAIL_PATTERN, email):
        raise ValueError("Invalid email format")

    return email


def validate_time_of_day(value: str) -> str:
    """Validate a 24h "HH:MM" local time string"""
    value = (value or "").strip()
    if not re.match(TIME_OF_DAY_PATTERN, value):
        raise ValueError(f"Invalid time of day (expected HH:MM): {value!r}")
    return value


def parse_time_of_day(value: str) -> time:
    hours, minutes = validate_time_of_day(value).split(":")
    return time(int(hours), int(minutes))
