"""Template placeholder substitution"""

import html
import re
from typing import Optional
from zoneinfo import ZoneInfo

from ...shared.timeutils import get_zone, to_local

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")
PLACEHOLDERS = ("name", "email", "company", "date", "time", "phone", "message")


def placeholder_values(reservation, tz: Optional[ZoneInfo] = None) -> dict[str, str]:
    tz = tz or get_zone()
    info = reservation.customer_info or {}
    local = to_local(reservation.datetime, tz)

    values = {key: str(info.get(key) or "") for key in ("name", "email", "company", "phone", "message")}
    values["date"] = local.strftime("%Y-%m-%d")
    values["time"] = local.strftime("%H:%M")
    return values


def render(text: str, reservation, tz: Optional[ZoneInfo] = None, escape: bool = True) -> str:
    """
    Fill ``{{placeholder}}`` markers from the reservation. Values are HTML
    escaped unless ``escape`` is False (subject lines); unknown placeholders
    are left as written.
    """
    values = placeholder_values(reservation, tz)

    def substitute(match: re.Match) -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        return html.escape(values[key]) if escape else values[key]

    return PLACEHOLDER_PATTERN.sub(substitute, text or "")
