"""Email providers behind a common async interface."""
import logging
from abc import ABC, abstractmethod
from email.message import EmailMessage as MIMEEmail
from email.utils import make_msgid
from typing import Any, Optional

import aiosmtplib
import httpx
from pydantic import BaseModel, Field

from parkingdirekt.services.encryption import hash_value

logger = logging.getLogger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailMessage(BaseModel):
    """Outgoing email."""

    to: list[str] = Field(..., min_length=1)
    subject: str
    html: Optional[str] = None
    text: Optional[str] = None
    from_address: Optional[str] = Field(default=None, alias="from")
    reply_to: Optional[str] = None
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    def recipient_hashes(self) -> list[str]:
        """Log-safe identifiers for the recipients."""
        return [hash_value(address.lower())[:16] for address in self.to]


class EmailResult(BaseModel):
    """Outcome of a single send attempt."""

    success: bool
    provider: str
    message_id: Optional[str] = None
    error: Optional[str] = None


class EmailProvider(ABC):
    """Base class for email providers."""

    name: str = "base"

    @abstractmethod
    async def send(self, message: EmailMessage) -> EmailResult:
        """
        Deliver a message.

        Provider errors are reported in the result, not raised.
        """
        pass

    @abstractmethod
    async def test(self) -> bool:
        """Check that the provider can be reached with its credentials."""
        pass


class SMTPProvider(EmailProvider):
    """Send through an SMTP relay with aiosmtplib."""

    name = "smtp"

    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        default_from: str = "noreply@parkingdirekt.com",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.default_from = default_from
        self.timeout = timeout

    def _client(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            timeout=self.timeout,
            use_tls=self.port == 465,
            start_tls=self.port == 587,
        )

    def _build(self, message: EmailMessage) -> MIMEEmail:
        mime = MIMEEmail()
        mime["From"] = message.from_address or self.default_from
        mime["To"] = ", ".join(message.to)
        mime["Subject"] = message.subject
        mime["Message-ID"] = make_msgid(domain="parkingdirekt.com")
        if message.cc:
            mime["Cc"] = ", ".join(message.cc)
        if message.reply_to:
            mime["Reply-To"] = message.reply_to

        mime.set_content(message.text or "")
        if message.html:
            mime.add_alternative(message.html, subtype="html")
        return mime

    async def send(self, message: EmailMessage) -> EmailResult:
        if not self.host:
            return EmailResult(success=False, provider=self.name, error="SMTP host not configured")

        mime = self._build(message)
        recipients = message.to + message.cc + message.bcc
        smtp = self._client()
        try:
            await smtp.connect()
            if self.username and self.password:
                await smtp.login(self.username, self.password)
            await smtp.send_message(mime, recipients=recipients)
            await smtp.quit()
        except aiosmtplib.SMTPResponseException as e:
            logger.warning(
                "SMTP server rejected message",
                extra={"smtp_code": e.code, "recipients": message.recipient_hashes()},
            )
            return EmailResult(success=False, provider=self.name, error=f"{e.code} {e.message}")
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.warning(
                "SMTP send failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return EmailResult(success=False, provider=self.name, error=str(e))
        finally:
            if smtp.is_connected:
                smtp.close()

        return EmailResult(success=True, provider=self.name, message_id=mime.get("Message-ID"))

    async def test(self) -> bool:
        if not self.host:
            return False
        smtp = self._client()
        try:
            await smtp.connect()
            if self.username and self.password:
                await smtp.login(self.username, self.password)
            await smtp.quit()
            return True
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.warning(
                "SMTP connection test failed",
                extra={"host": self.host, "port": self.port, "error": str(e)},
            )
            return False


class SendGridProvider(EmailProvider):
    """Send through the SendGrid v3 HTTP API."""

    name = "sendgrid"

    def __init__(
        self,
        api_key: str,
        default_from: str = "noreply@parkingdirekt.com",
        timeout: float = 30.0,
        api_url: str = SENDGRID_API_URL,
    ):
        self.api_key = api_key
        self.default_from = default_from
        self.timeout = timeout
        self.api_url = api_url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, message: EmailMessage) -> dict[str, Any]:
        personalization: dict[str, Any] = {"to": [{"email": address} for address in message.to]}
        if message.cc:
            personalization["cc"] = [{"email": address} for address in message.cc]
        if message.bcc:
            personalization["bcc"] = [{"email": address} for address in message.bcc]

        content = []
        if message.text:
            content.append({"type": "text/plain", "value": message.text})
        if message.html:
            content.append({"type": "text/html", "value": message.html})
        if not content:
            content.append({"type": "text/plain", "value": ""})

        payload: dict[str, Any] = {
            "personalizations": [personalization],
            "from": {"email": message.from_address or self.default_from},
            "subject": message.subject,
            "content": content,
        }
        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}
        return payload

    async def send(self, message: EmailMessage) -> EmailResult:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url,
                    headers=self._headers(),
                    json=self._payload(message),
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "SendGrid rejected message",
                extra={"status_code": e.response.status_code, "recipients": message.recipient_hashes()},
            )
            return EmailResult(
                success=False,
                provider=self.name,
                error=f"SendGrid API error: {e.response.status_code}",
            )
        except httpx.TimeoutException:
            return EmailResult(success=False, provider=self.name, error="SendGrid request timed out")
        except httpx.RequestError as e:
            logger.warning(
                "SendGrid request failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return EmailResult(success=False, provider=self.name, error=str(e))

        return EmailResult(
            success=True,
            provider=self.name,
            message_id=response.headers.get("X-Message-Id"),
        )

    async def test(self) -> bool:
        # Scope listing is the cheapest authenticated call
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    "https://api.sendgrid.com/v3/scopes",
                    headers=self._headers(),
                )
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("SendGrid connection test failed", extra={"error": str(e)})
            return False


class LoggingProvider(EmailProvider):
    """Development provider that records messages instead of sending them."""

    name = "log"

    def __init__(self):
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> EmailResult:
        self.sent.append(message)
        logger.info(
            "Email captured",
            extra={"subject": message.subject, "recipients": message.recipient_hashes()},
        )
        return EmailResult(success=True, provider=self.name, message_id=f"log-{len(self.sent)}")

    async def test(self) -> bool:
        return True
