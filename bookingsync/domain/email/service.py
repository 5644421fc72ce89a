"""Email service - template management, send logs and test sends"""

import logging
from types import SimpleNamespace
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ...email_service import MailGateway, MailResult
from ...exceptions import NotFoundError, ValidationError
from ...models import EmailLog, EmailTemplate
from ...schemas import EmailTemplateCreate, EmailTemplateUpdate
from ...shared.timeutils import utcnow
from .rendering import render
from .repository import EmailRepository

logger = logging.getLogger(__name__)


def sample_reservation(email: str) -> SimpleNamespace:
    """Stand-in reservation used to preview a template"""
    return SimpleNamespace(
        id=None,
        datetime=utcnow(),
        customer_info={
            "name": "Test User",
            "email": email,
            "company": "Test Company",
            "phone": "000-0000-0000",
            "message": "This is a test email.",
        },
    )


class EmailService:
    """Service layer for email templates and logs"""

    def __init__(self, db: Session, mail: Optional[MailGateway] = None):
        self.db = db
        self.mail = mail
        self.repo = EmailRepository()

    def list_templates(self, client_id: str) -> list[EmailTemplate]:
        return self.repo.list_templates(self.db, client_id)

    def get_template(self, template_id: int) -> EmailTemplate:
        template = self.repo.get_template(self.db, template_id)
        if not template:
            raise NotFoundError("EmailTemplate", template_id)
        return template

    def create_template(self, data: Union[EmailTemplateCreate, dict]) -> EmailTemplate:
        if isinstance(data, dict):
            try:
                data = EmailTemplateCreate.model_validate(data)
            except PydanticValidationError as e:
                raise ValidationError(str(e)) from e

        template = self.repo.create_template(
            self.db,
            client_id=data.clientId,
            name=data.name,
            type=data.type,
            subject=data.subject,
            body=data.body,
            timing_value=data.timing.value,
            timing_unit=data.timing.unit,
            is_active=data.isActive,
        )
        logger.info(f"✅ Email template {template.id} ({template.type}) created for client {template.client_id}")
        return template

    def update_template(self, template_id: int, data: EmailTemplateUpdate) -> EmailTemplate:
        template = self.get_template(template_id)
        updates = {
            "name": data.name,
            "type": data.type,
            "subject": data.subject,
            "body": data.body,
            "is_active": data.isActive,
        }
        if data.timing is not None:
            updates["timing_value"] = data.timing.value
            updates["timing_unit"] = data.timing.unit
        return self.repo.update_template(self.db, template, **updates)

    def delete_template(self, template_id: int) -> EmailTemplate:
        """Templates are deactivated rather than removed so history stays intact"""
        return self.repo.deactivate_template(self.db, self.get_template(template_id))

    def get_logs(
        self,
        client_id: Optional[str] = None,
        template_id: Optional[int] = None,
        reservation_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> list[EmailLog]:
        return self.repo.list_logs(
            self.db,
            client_id=client_id,
            template_id=template_id,
            reservation_id=reservation_id,
            status=status,
            limit=limit,
        )

    async def send_test_email(self, template_id: int, to: str) -> MailResult:
        template = self.get_template(template_id)
        preview = sample_reservation(to)
        subject = f"[TEST] {render(template.subject, preview, escape=False)}"
        body = render(template.body, preview)

        result = await self.mail.send(to, subject, body)
        self.repo.add_log(
            self.db,
            "success" if result.success else "failed",
            to,
            subject=subject,
            template_id=template.id,
            error=result.reason,
        )
        if result.success:
            logger.info(f"✅ Test email for template {template.id} sent to {to}")
        return result
