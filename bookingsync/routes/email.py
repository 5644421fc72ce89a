"""Email routes - template management, send logs and test sends"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..config import DEFAULT_CLIENT_ID
from ..database import get_db
from ..domain.email.service import EmailService
from ..email_service import MailGateway
from ..schemas import (
    EmailLogResponse,
    EmailTemplateCreate,
    EmailTemplateResponse,
    EmailTemplateUpdate,
    TestEmailRequest,
)
from .deps import get_mail_gateway, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/email", tags=["Email"], dependencies=[Depends(require_admin)])


def get_email_service(
    db: Session = Depends(get_db), mail: MailGateway = Depends(get_mail_gateway)
) -> EmailService:
    return EmailService(db, mail)


@router.get("/templates", response_model=list[EmailTemplateResponse])
async def list_templates(
    client_id: str = Query(DEFAULT_CLIENT_ID, alias="clientId"),
    service: EmailService = Depends(get_email_service),
):
    return [EmailTemplateResponse.from_model(t) for t in service.list_templates(client_id)]


@router.post("/templates", response_model=EmailTemplateResponse, status_code=201)
async def create_template(data: EmailTemplateCreate, service: EmailService = Depends(get_email_service)):
    return EmailTemplateResponse.from_model(service.create_template(data))


@router.get("/templates/{template_id}", response_model=EmailTemplateResponse)
async def get_template(template_id: int, service: EmailService = Depends(get_email_service)):
    return EmailTemplateResponse.from_model(service.get_template(template_id))


@router.put("/templates/{template_id}", response_model=EmailTemplateResponse)
async def update_template(
    template_id: int, data: EmailTemplateUpdate, service: EmailService = Depends(get_email_service)
):
    return EmailTemplateResponse.from_model(service.update_template(template_id, data))


@router.delete("/templates/{template_id}", response_model=EmailTemplateResponse)
async def delete_template(template_id: int, service: EmailService = Depends(get_email_service)):
    """Deactivate a template; its schedules and logs stay"""
    return EmailTemplateResponse.from_model(service.delete_template(template_id))


@router.get("/logs", response_model=list[EmailLogResponse])
async def get_logs(
    client_id: Optional[str] = Query(None, alias="clientId"),
    template_id: Optional[int] = Query(None, alias="templateId"),
    reservation_id: Optional[str] = Query(None, alias="reservationId"),
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    service: EmailService = Depends(get_email_service),
):
    logs = service.get_logs(
        client_id=client_id, template_id=template_id, reservation_id=reservation_id, status=status, limit=limit
    )
    return [
        EmailLogResponse(
            id=log.id,
            templateId=log.template_id,
            reservationId=log.reservation_id,
            recipient=log.recipient,
            status=log.status,
            error=log.error,
            sentAt=log.sent_at,
        )
        for log in logs
    ]


@router.post("/test")
async def send_test_email(data: TestEmailRequest, service: EmailService = Depends(get_email_service)):
    result = await service.send_test_email(data.templateId, data.email)
    return {"success": result.success, "error": result.reason}
