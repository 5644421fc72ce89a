"""
Email Service
Outbound mail via custom SMTP (when configured) or Resend.

Gateways never raise for delivery problems; the outcome comes back as a
MailResult so the scheduler can record it.
"""

import asyncio
import logging
import smtplib
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import parseaddr
from typing import Optional

import resend

from .config import (
    EMAIL_FROM_ADDRESS,
    MAIL_SEND_TIMEOUT,
    RESEND_API_KEY,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USE_TLS,
    SMTP_USERNAME,
)
from .shared.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailResult:
    success: bool
    reason: Optional[str] = None
    message_id: Optional[str] = None


class MailGateway(ABC):
    """Sends one HTML email; blocking delivery runs in a worker thread under a timeout"""

    def __init__(self, from_address: Optional[str] = None, timeout: float = MAIL_SEND_TIMEOUT):
        self.from_address = from_address or EMAIL_FROM_ADDRESS
        self.timeout = timeout

    @abstractmethod
    def _deliver(self, to: str, subject: str, html: str) -> Optional[str]:
        """Deliver synchronously; return a message id, raise on failure"""
        raise NotImplementedError

    async def send(self, to: str, subject: str, html: str) -> MailResult:
        try:
            message_id = await asyncio.wait_for(
                asyncio.to_thread(self._deliver, to, subject, html), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"❌ Email to {to} timed out after {self.timeout}s")
            return MailResult(success=False, reason=f"send timed out after {self.timeout}s")
        except Exception as e:
            logger.error(f"❌ Email send error to {to}: {e}")
            return MailResult(success=False, reason=str(e))

        return MailResult(success=True, message_id=message_id)


class ResendMailGateway(MailGateway):
    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key or RESEND_API_KEY

    def _deliver(self, to: str, subject: str, html: str) -> Optional[str]:
        if not self.api_key:
            raise RuntimeError("Email service not configured - RESEND_API_KEY missing")

        resend.api_key = self.api_key
        logger.info(f"📧 Sending email via Resend to: {to}")
        response = resend.Emails.send({"from": self.from_address, "to": [to], "subject": subject, "html": html})
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response.get("id") if isinstance(response, dict) else None


class SmtpMailGateway(MailGateway):
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.host = host or SMTP_HOST
        self.port = port or SMTP_PORT
        self.username = username if username is not None else SMTP_USERNAME
        self.password = password if password is not None else SMTP_PASSWORD
        self.use_tls = SMTP_USE_TLS if use_tls is None else use_tls

    def _connect(self) -> smtplib.SMTP:
        if self.port == 465:
            return smtplib.SMTP_SSL(self.host, self.port, context=ssl.create_default_context(), timeout=self.timeout)

        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        if self.use_tls:
            server.starttls(context=ssl.create_default_context())
        return server

    def _deliver(self, to: str, subject: str, html: str) -> Optional[str]:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_address
        msg["To"] = to
        msg.attach(MIMEText(html, "html"))

        logger.info(f"📧 Sending email via SMTP {self.host} to: {to}")
        server = self._connect()
        try:
            if self.username:
                server.login(self.username, self.password or "")
            server.sendmail(parseaddr(self.from_address)[1], [to], msg.as_string())
        finally:
            server.quit()

        logger.info(f"✅ SMTP email sent successfully via {self.host}")
        return f"smtp-{utcnow().timestamp()}"


def build_mail_gateway() -> MailGateway:
    """Custom SMTP when SMTP_HOST is configured, Resend otherwise"""
    if SMTP_HOST:
        return SmtpMailGateway()
    if not RESEND_API_KEY:
        logger.warning("⚠️ No email service configured - RESEND_API_KEY missing and no SMTP_HOST")
    return ResendMailGateway()
