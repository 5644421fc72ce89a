"""Shared FastAPI dependencies"""

import hmac
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ..config import ADMIN_API_KEY
from ..database import get_db
from ..domain.reservations.service import ReservationService
from ..email_service import MailGateway, build_mail_gateway
from ..services.google_calendar_service import CalendarGateway, GoogleCalendarGateway

logger = logging.getLogger(__name__)


@lru_cache
def get_calendar_gateway() -> CalendarGateway:
    return GoogleCalendarGateway()


@lru_cache
def get_mail_gateway() -> MailGateway:
    return build_mail_gateway()


def get_admin_api_key() -> Optional[str]:
    return ADMIN_API_KEY


def require_admin(
    x_admin_key: Optional[str] = Header(None),
    expected: Optional[str] = Depends(get_admin_api_key),
) -> None:
    """Admin routes are closed unless ADMIN_API_KEY is set and matches X-Admin-Key"""
    if not expected:
        logger.warning("⚠️ Admin request rejected: ADMIN_API_KEY is not configured")
        raise HTTPException(status_code=503, detail="Admin API not configured")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=401, detail="Invalid admin key")


def get_reservation_service(
    db: Session = Depends(get_db),
    gateway: CalendarGateway = Depends(get_calendar_gateway),
    mail: MailGateway = Depends(get_mail_gateway),
) -> ReservationService:
    """Dependency injection for ReservationService"""
    return ReservationService(db, gateway=gateway, mail=mail)
