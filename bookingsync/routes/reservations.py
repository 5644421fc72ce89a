"""Reservation routes - public booking and admin management"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..domain.reservations.service import BookingResult, ReservationService
from ..schemas import ReservationCreate, ReservationResponse, ReservationStatus, ReservationUpdate
from .deps import get_reservation_service, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reservations", tags=["Reservations"])


def _booking_response(result: BookingResult) -> dict:
    return {
        "reservation": ReservationResponse.from_model(result.reservation),
        "calendarSync": {"status": result.mirror.status, "error": result.mirror.error},
        "scheduledEmails": len(result.notifications),
    }


@router.post("", status_code=201)
async def create_reservation(
    data: ReservationCreate,
    service: ReservationService = Depends(get_reservation_service),
):
    """Public widget booking; the reservation window applies"""
    result = await service.create(data, enforce_window=True)
    return _booking_response(result)


@router.get("", response_model=list[ReservationResponse], dependencies=[Depends(require_admin)])
async def list_reservations(
    client_id: Optional[str] = Query(None, alias="clientId"),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    status: Optional[ReservationStatus] = Query(None),
    service: ReservationService = Depends(get_reservation_service),
):
    reservations = service.list_by_filters(client_id=client_id, date_from=date_from, date_to=date_to, status=status)
    return [ReservationResponse.from_model(r) for r in reservations]


@router.get("/{reservation_id}", response_model=ReservationResponse, dependencies=[Depends(require_admin)])
async def get_reservation(reservation_id: str, service: ReservationService = Depends(get_reservation_service)):
    return ReservationResponse.from_model(service.get_by_id(reservation_id))


@router.put("/{reservation_id}", dependencies=[Depends(require_admin)])
async def update_reservation(
    reservation_id: str,
    data: ReservationUpdate,
    service: ReservationService = Depends(get_reservation_service),
):
    result = await service.update(reservation_id, data)
    return _booking_response(result)


@router.post("/{reservation_id}/cancel", dependencies=[Depends(require_admin)])
async def cancel_reservation(reservation_id: str, service: ReservationService = Depends(get_reservation_service)):
    """Cancel a reservation. Email history is kept."""
    result = await service.cancel(reservation_id)
    return _booking_response(result)
