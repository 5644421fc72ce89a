"""
Google Calendar Sync Routes
Connection status, OAuth initiation/completion and disconnect per tenant
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..config import DEFAULT_CLIENT_ID
from ..database import get_db
from ..domain.calendar_sync.service import CalendarSyncService
from ..schemas import CalendarCallbackRequest, CalendarSyncStatusResponse
from ..services.google_calendar_service import CalendarGateway
from .deps import get_calendar_gateway, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar-sync", tags=["Calendar Sync"], dependencies=[Depends(require_admin)])


def get_calendar_sync_service(
    db: Session = Depends(get_db), gateway: CalendarGateway = Depends(get_calendar_gateway)
) -> CalendarSyncService:
    return CalendarSyncService(db, gateway)


@router.get("/status", response_model=CalendarSyncStatusResponse)
async def get_sync_status(
    client_id: str = Query(DEFAULT_CLIENT_ID, alias="clientId"),
    service: CalendarSyncService = Depends(get_calendar_sync_service),
):
    return service.get_status(client_id)


@router.get("/connect")
async def initiate_calendar_oauth(client_id: str = Query(DEFAULT_CLIENT_ID, alias="clientId")):
    """Initiate Google Calendar OAuth flow"""
    auth_url = CalendarSyncService.build_authorization_url(client_id)
    logger.info(f"Google Calendar OAuth initiated for client: {client_id}")
    return {"authorization_url": auth_url}


@router.post("/callback", response_model=CalendarSyncStatusResponse)
async def handle_calendar_callback(
    data: CalendarCallbackRequest,
    service: CalendarSyncService = Depends(get_calendar_sync_service),
):
    """Handle Google Calendar OAuth callback"""
    await service.complete_authorization(data.clientId, data.code)
    return service.get_status(data.clientId)


@router.post("/disconnect", response_model=CalendarSyncStatusResponse)
async def disconnect_calendar(
    client_id: str = Query(DEFAULT_CLIENT_ID, alias="clientId"),
    service: CalendarSyncService = Depends(get_calendar_sync_service),
):
    await service.disconnect(client_id)
    return service.get_status(client_id)
