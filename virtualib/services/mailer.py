"""Outbound mail over SMTP or the Gmail API."""
import base64
import logging
import smtplib
from dataclasses import dataclass
from datetime import timedelta
from email.mime.text import MIMEText
from typing import Optional

import httpx
from starlette.concurrency import run_in_threadpool

from virtualib.config import settings
from virtualib.errors import ExternalServiceError
from virtualib.schemas.settings import TestEmailRequest
from virtualib.utils.timezone import now_local

logger = logging.getLogger(__name__)

DEFAULT_TEST_SUBJECT = "Test Email from Virtualib"

# Values substituted into templates when rendering a test message
SAMPLE_VALUES = {
    "user": "Test User",
    "book": "The Great Gatsby",
    "author": "F. Scott Fitzgerald",
    "publisher": "Scribner",
    "days_late": "2",
}


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str


@dataclass
class ProviderConfig:
    provider: str = "smtp"
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: Optional[str] = None
    gmail_user: Optional[str] = None
    gmail_client_id: Optional[str] = None
    gmail_client_secret: Optional[str] = None
    gmail_refresh_token: Optional[str] = None

    @classmethod
    def from_test_request(cls, payload: TestEmailRequest) -> "ProviderConfig":
        return cls(
            provider=payload.email_provider,
            smtp_host=payload.smtp_host,
            smtp_port=payload.smtp_port,
            smtp_user=payload.smtp_user,
            smtp_password=payload.smtp_pass,
            smtp_from=payload.smtp_from,
            gmail_user=payload.gmail_user,
            gmail_client_id=payload.gmail_client_id,
            gmail_client_secret=payload.gmail_client_secret,
            gmail_refresh_token=payload.gmail_refresh_token,
        )


def _fill(text: str, values: dict) -> str:
    for key, value in values.items():
        text = text.replace("{" + key + "}", value)
    return text


def render_test_message(to_email: str, templates: Optional[dict], provider: str = "smtp") -> EmailMessage:
    """Build the test message, rendering the overdue template with sample values when one is given."""
    today = now_local()
    values = dict(SAMPLE_VALUES)
    values["date"] = today.strftime("%Y-%m-%d")
    values["borrow_date"] = (today - timedelta(days=5)).strftime("%Y-%m-%d")

    subject = DEFAULT_TEST_SUBJECT
    html = (
        '<div style="font-family: sans-serif; padding: 20px; border: 1px solid #eee; border-radius: 8px;">'
        "<h2>It works!</h2>"
        "<p>This is a test email to verify your settings in Virtualib.</p>"
        f"<p><strong>Provider:</strong> {provider.upper()}</p>"
        f"<p><strong>Time:</strong> {today.strftime('%Y-%m-%d %H:%M:%S %Z')}</p>"
        "</div>"
    )

    overdue = (templates or {}).get("overdue") or {}
    if overdue.get("subject"):
        subject = _fill(overdue["subject"], values)
    if overdue.get("body"):
        body = _fill(overdue["body"], values).replace("\n", "<br/>")
        html = (
            '<div style="font-family: sans-serif; padding: 20px; border: 1px solid #eee; border-radius: 8px;">'
            f"{body}"
            '<hr style="margin: 20px 0; border: 0; border-top: 1px solid #eee;" />'
            '<p style="font-size: 12px; color: #666;">This is a test render of your "Overdue Warning" template.</p>'
            "</div>"
        )
    return EmailMessage(to=to_email, subject=subject, html=html)


class EmailService:
    """Sends one message through the configured provider.

    Provider errors surface as ExternalServiceError carrying the provider's
    own message.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or settings.email_timeout

    async def send(self, config: ProviderConfig, message: EmailMessage) -> None:
        if config.provider == "gmail":
            await self._send_gmail(config, message)
        else:
            await run_in_threadpool(self._send_smtp, config, message)
        logger.info(f"Email sent to {message.to} via {config.provider}")

    def _send_smtp(self, config: ProviderConfig, message: EmailMessage) -> None:
        if not config.smtp_host or not config.smtp_user or not config.smtp_password:
            raise ExternalServiceError("Missing SMTP credentials")
        port = config.smtp_port or 587
        sender = config.smtp_from or config.smtp_user

        mime = MIMEText(message.html, "html", "utf-8")
        mime["From"] = sender
        mime["To"] = message.to
        mime["Subject"] = message.subject

        try:
            if port == 465:
                server = smtplib.SMTP_SSL(config.smtp_host, port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(config.smtp_host, port, timeout=self.timeout)
            with server:
                if port != 465:
                    server.starttls()
                server.login(config.smtp_user, config.smtp_password)
                server.sendmail(sender, [message.to], mime.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"SMTP delivery to {message.to} failed: {e}")
            raise ExternalServiceError(f"Failed to send test email: {e}")

    async def _send_gmail(self, config: ProviderConfig, message: EmailMessage) -> None:
        if not (config.gmail_user and config.gmail_client_id and config.gmail_client_secret
                and config.gmail_refresh_token):
            raise ExternalServiceError("Missing Gmail credentials")

        raw = "\n".join([
            f"To: {message.to}",
            f"From: {config.gmail_user}",
            f"Subject: {message.subject}",
            "MIME-Version: 1.0",
            "Content-Type: text/html; charset=utf-8",
            "",
            message.html,
        ])
        encoded = base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                token_response = await client.post(settings.google_token_url, data={
                    "client_id": config.gmail_client_id,
                    "client_secret": config.gmail_client_secret,
                    "refresh_token": config.gmail_refresh_token,
                    "grant_type": "refresh_token",
                })
                token_response.raise_for_status()
                access_token = token_response.json()["access_token"]

                send_response = await client.post(
                    f"{settings.gmail_api_base_url}/gmail/v1/users/me/messages/send",
                    headers={"Authorization": f"Bearer {access_token}"},
                    json={"raw": encoded},
                )
                send_response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Gmail API rejected the message to {message.to}: {e.response.status_code}")
            raise ExternalServiceError(f"Failed to send test email: {e.response.text or e}")
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning(f"Gmail delivery to {message.to} failed: {e}")
            raise ExternalServiceError(f"Failed to send test email: {e}")


async def send_test_email(service: EmailService, payload: TestEmailRequest) -> EmailMessage:
    message = render_test_message(payload.to_email, payload.email_templates, payload.email_provider)
    await service.send(ProviderConfig.from_test_request(payload), message)
    return message


email_service = EmailService()


def get_email_service() -> EmailService:
    return email_service
