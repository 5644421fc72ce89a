"""Tests for mail gateways and template management."""

import time

import pytest

from bookingsync import email_service
from bookingsync.domain.email.service import EmailService
from bookingsync.email_service import (
    MailGateway,
    ResendMailGateway,
    SmtpMailGateway,
    build_mail_gateway,
)
from bookingsync.exceptions import NotFoundError, ValidationError
from bookingsync.models import EmailLog
from bookingsync.schemas import EmailTemplateUpdate
from tests.conftest import CLIENT_ID, FakeMailGateway, add_template


class SlowMailGateway(MailGateway):
    def _deliver(self, to, subject, html):
        time.sleep(0.5)
        return "late"


class TestMailGateway:
    @pytest.mark.asyncio
    async def test_success_returns_message_id(self):
        result = await FakeMailGateway().send("a@example.com", "Hi", "<p>Hi</p>")
        assert result.success
        assert result.message_id == "msg-1"

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self):
        result = await FakeMailGateway(always_fail="mailbox full").send("a@example.com", "Hi", "<p>Hi</p>")
        assert not result.success
        assert result.reason == "mailbox full"

    @pytest.mark.asyncio
    async def test_timeout_is_reported(self):
        result = await SlowMailGateway(timeout=0.05).send("a@example.com", "Hi", "<p>Hi</p>")
        assert not result.success
        assert "timed out" in result.reason

    @pytest.mark.asyncio
    async def test_resend_without_api_key_fails_cleanly(self, monkeypatch):
        monkeypatch.setattr(email_service, "RESEND_API_KEY", None)
        result = await ResendMailGateway(api_key="").send("a@example.com", "Hi", "<p>Hi</p>")
        assert not result.success

    def test_builder_prefers_smtp(self, monkeypatch):
        monkeypatch.setattr(email_service, "SMTP_HOST", "smtp.example.com")
        assert isinstance(build_mail_gateway(), SmtpMailGateway)

    def test_builder_falls_back_to_resend(self, monkeypatch):
        monkeypatch.setattr(email_service, "SMTP_HOST", None)
        assert isinstance(build_mail_gateway(), ResendMailGateway)


class TestTemplates:
    def test_create_from_payload(self, db):
        template = EmailService(db).create_template(
            {
                "clientId": CLIENT_ID,
                "name": "Day before",
                "type": "reminder",
                "subject": "See you tomorrow",
                "body": "<p>{{name}}</p>",
                "timing": {"value": 1, "unit": "days"},
            }
        )
        assert template.id
        assert (template.timing_value, template.timing_unit) == (1, "days")
        assert template.is_active

    def test_create_rejects_unknown_type(self, db):
        with pytest.raises(ValidationError):
            EmailService(db).create_template(
                {"clientId": CLIENT_ID, "name": "x", "type": "newsletter", "subject": "s", "body": "b"}
            )

    def test_update_and_deactivate(self, db):
        service = EmailService(db)
        template = add_template(db)

        updated = service.update_template(template.id, EmailTemplateUpdate(subject="New subject"))
        assert updated.subject == "New subject"
        assert updated.name == "reminder template"

        service.delete_template(template.id)
        assert not service.get_template(template.id).is_active
        assert service.list_templates(CLIENT_ID)[0].id == template.id

    def test_unknown_template(self, db):
        with pytest.raises(NotFoundError):
            EmailService(db).get_template(999)

    @pytest.mark.asyncio
    async def test_send_test_email_logs_result(self, db, mail_gateway):
        template = add_template(db, subject="Hello {{name}}")
        result = await EmailService(db, mail_gateway).send_test_email(template.id, "owner@example.com")

        assert result.success
        assert mail_gateway.sent[0]["subject"] == "[TEST] Hello Test User"
        log = db.query(EmailLog).one()
        assert log.status == "success"
        assert log.reservation_id is None

        logs = EmailService(db).get_logs(client_id=CLIENT_ID)
        assert [entry.id for entry in logs] == [log.id]
        assert EmailService(db).get_logs(client_id="someone-else") == []
