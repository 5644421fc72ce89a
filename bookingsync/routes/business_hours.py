"""Business hours routes"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..config import DEFAULT_CLIENT_ID
from ..database import get_db
from ..domain.business_hours.service import BusinessHoursService
from ..schemas import BusinessHoursResponse, BusinessHoursUpdate
from .deps import require_admin

router = APIRouter(prefix="/business-hours", tags=["Business Hours"])


def get_business_hours_service(db: Session = Depends(get_db)) -> BusinessHoursService:
    return BusinessHoursService(db)


@router.get("", response_model=BusinessHoursResponse)
async def get_business_hours(
    client_id: str = Query(DEFAULT_CLIENT_ID, alias="clientId"),
    service: BusinessHoursService = Depends(get_business_hours_service),
):
    """Hours of a tenant; defaults are created on first access"""
    return service.to_response(service.get(client_id))


@router.put("", response_model=BusinessHoursResponse, dependencies=[Depends(require_admin)])
async def update_business_hours(
    data: BusinessHoursUpdate,
    client_id: str = Query(DEFAULT_CLIENT_ID, alias="clientId"),
    service: BusinessHoursService = Depends(get_business_hours_service),
):
    return service.to_response(service.update(client_id, data))
