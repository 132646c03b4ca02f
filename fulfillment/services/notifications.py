"""
Outbound notification channels: transactional email over SMTP, WhatsApp text
messages over the YCloud API, and in-app notifications stored for a user.

Senders raise on failure; callers decide whether the failure is fatal.
"""
import re
import smtplib
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Optional

import httpx
import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fulfillment.core.config import settings
from fulfillment.core.errors import ConfigurationError, DownstreamServiceError
from fulfillment.db.models import Notification, PlatformSettings

log = structlog.get_logger(__name__)


# --- Email ---

class SmtpMailer:
    def __init__(self, host: str, port: int, from_email: str,
                 user: str = "", password: str = "", timeout: float = 10.0):
        self.host = host
        self.port = port
        self.from_email = from_email
        self.user = user
        self.password = password
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "SmtpMailer":
        return cls(settings.SMTP_HOST, settings.SMTP_PORT, settings.FROM_EMAIL,
                   settings.SMTP_USER, settings.SMTP_PASS, settings.HTTP_TIMEOUT_SECONDS * 2)

    def send_email(self, to: str, subject: str, html: str) -> None:
        if not self.host:
            raise ConfigurationError("SMTP host not configured")
        msg = MIMEText(html, "html", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as s:
                if self.user and self.password:
                    s.starttls()
                    s.login(self.user, self.password)
                s.sendmail(self.from_email, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise DownstreamServiceError(f"Email to {to} failed: {e}") from e
        log.info("email_sent", to=to, subject=subject)


# --- WhatsApp ---

def normalize_number(number: str) -> str:
    return re.sub(r"\D", "", number or "")


@dataclass(frozen=True)
class WhatsAppConfig:
    sender_number: str
    api_url: Optional[str]
    template_customer: Optional[str] = None
    template_seller: Optional[str] = None


def load_whatsapp_config(db: Session) -> WhatsAppConfig:
    row = db.get(PlatformSettings, settings.PLATFORM_SETTINGS_ID)
    if row is None or not row.whatsapp_sender_number:
        raise ConfigurationError("WhatsApp not configured")
    return WhatsAppConfig(
        sender_number=row.whatsapp_sender_number,
        api_url=row.whatsapp_api_url,
        template_customer=row.whatsapp_template_customer,
        template_seller=row.whatsapp_template_seller,
    )


class WhatsAppClient:
    def __init__(self, api_url: str, sender_number: str, api_key: str,
                 transport: Optional[httpx.BaseTransport] = None,
                 timeout: float = settings.HTTP_TIMEOUT_SECONDS):
        if not sender_number or not api_url:
            raise ConfigurationError("WhatsApp not configured")
        if not api_key:
            raise ConfigurationError("YCloud API key not configured")
        self.api_url = api_url.rstrip("/")
        self.sender_number = sender_number
        self.api_key = api_key
        self.transport = transport
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: WhatsAppConfig,
                    transport: Optional[httpx.BaseTransport] = None) -> "WhatsAppClient":
        return cls(config.api_url or "", config.sender_number, settings.YCLOUD_API_KEY, transport=transport)

    def send_message(self, to: str, body: str) -> Optional[str]:
        """Send a text message and return the provider's message id."""
        recipient = normalize_number(to)
        if not recipient:
            raise DownstreamServiceError("WhatsApp recipient number is empty")
        payload = {
            "from": self.sender_number,
            "to": recipient,
            "type": "text",
            "text": {"body": body},
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(
                    f"{self.api_url}/whatsapp/messages",
                    json=payload,
                    headers={"X-API-Key": self.api_key},
                )
        except httpx.HTTPError as e:
            raise DownstreamServiceError(f"YCloud API unavailable: {e}") from e
        try:
            result = resp.json()
        except ValueError:
            result = {}
        if resp.status_code >= 400:
            raise DownstreamServiceError(f"YCloud API error: {result.get('message') or 'Unknown error'}")
        log.info("whatsapp_sent", to=recipient, message_id=result.get("id"))
        return result.get("id")


# --- In-app ---

def create_notification(db: Session, user_id: str, title: str, message: str,
                        link: Optional[str] = None, dedupe_key: Optional[str] = None) -> bool:
    """Store an in-app notification. Returns False when dedupe_key was already used."""
    try:
        db.add(Notification(user_id=user_id, title=title, message=message,
                            link=link, dedupe_key=dedupe_key))
        db.commit()
    except IntegrityError:
        db.rollback()
        log.info("notification_already_sent", user_id=user_id, dedupe_key=dedupe_key)
        return False
    except SQLAlchemyError as e:
        db.rollback()
        raise DownstreamServiceError(f"Notification insert failed: {e}") from e
    return True
