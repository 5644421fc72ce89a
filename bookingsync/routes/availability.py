"""Availability routes - public slot and time lookups for the booking widget"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..config import DEFAULT_CLIENT_ID
from ..database import get_db
from ..domain.availability import AvailabilityEngine
from ..schemas import SlotResponse
from ..services.google_calendar_service import CalendarGateway
from .deps import get_calendar_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["Availability"])


def get_availability_engine(
    db: Session = Depends(get_db), gateway: CalendarGateway = Depends(get_calendar_gateway)
) -> AvailabilityEngine:
    return AvailabilityEngine(db, gateway)


@router.get("/slots", response_model=list[SlotResponse])
async def get_slots(
    start_date: date = Query(..., alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    client_id: str = Query(DEFAULT_CLIENT_ID, alias="clientId"),
    engine: AvailabilityEngine = Depends(get_availability_engine),
):
    """Slots for a date or an inclusive date range"""
    slots = await engine.compute_slots(client_id, start_date, end_date)
    return [slot.to_response() for slot in slots]


@router.get("/times")
async def get_available_times(
    day: date = Query(..., alias="date"),
    client_id: str = Query(DEFAULT_CLIENT_ID, alias="clientId"),
    engine: AvailabilityEngine = Depends(get_availability_engine),
):
    """Bookable start times of one day, honoring the reservation window"""
    return {"date": day, "times": await engine.available_times(client_id, day)}
