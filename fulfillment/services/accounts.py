"""
Account provisioning for buyers of digital products.

ensure_account is idempotent on the (normalized) email address: an existing
account is returned as-is and no credential is issued. A new account gets a
random temporary password, sent in a welcome email.
"""
import secrets
import string
from dataclasses import dataclass
from html import escape
from typing import Optional

import structlog
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fulfillment.core.config import settings
from fulfillment.core.errors import DownstreamServiceError, FulfillmentError, MalformedWebhook
from fulfillment.db.models import Account

log = structlog.get_logger(__name__)

pwd_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_SYMBOLS = "!@#$%&*?-_"
_ALPHABET = string.ascii_letters + string.digits + _SYMBOLS


@dataclass(frozen=True)
class AccountResult:
    account_id: str
    created: bool
    temporary_password: Optional[str] = None


def hash_password(p: str) -> str: return pwd_ctx.hash(p)

def verify_password(p: str, h: str) -> bool: return pwd_ctx.verify(p, h)

def normalize_email(email: str) -> str: return (email or "").strip().lower()


def generate_temporary_password(length: int = 16) -> str:
    """At least one lowercase, uppercase, digit and symbol, from the OS CSPRNG."""
    if length < 8:
        raise ValueError("temporary password must be at least 8 characters")
    chars = [
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.digits),
        secrets.choice(_SYMBOLS),
    ]
    chars += [secrets.choice(_ALPHABET) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def welcome_email_html(name: str, email: str, temporary_password: str) -> str:
    base = settings.SITE_BASE_URL
    return f"""
      <h1>Bienvenue sur PayLiv !</h1>
      <p>Bonjour {escape(name)},</p>
      <p>Merci pour votre achat ! Un compte a été créé automatiquement pour vous permettre d'accéder à vos produits digitaux.</p>
      <p><strong>Vos informations de connexion :</strong></p>
      <ul>
        <li>Email : {escape(email)}</li>
        <li>Mot de passe temporaire : {escape(temporary_password)}</li>
      </ul>
      <p>Vous pouvez vous connecter et changer votre mot de passe à l'adresse : <a href="{base}/login">{base}/login</a></p>
      <p>Accédez à vos achats : <a href="{base}/my-purchases">{base}/my-purchases</a></p>
      <p>L'équipe PayLiv</p>
    """


def _find(db: Session, email: str) -> Optional[Account]:
    return db.execute(select(Account).where(Account.email == email)).scalar_one_or_none()


def ensure_account(db: Session, email: str, name: str, order_id: str, mailer) -> AccountResult:
    email = normalize_email(email)
    if not email or not name or not order_id:
        raise MalformedWebhook("Missing required fields: customerEmail, customerName, orderId")

    try:
        existing = _find(db, email)
        if existing is not None:
            log.info("account_exists", account_id=existing.id, order_id=order_id)
            return AccountResult(existing.id, created=False)

        temporary_password = generate_temporary_password()
        account = Account(
            email=email,
            name=name,
            password_hash=hash_password(temporary_password),
            created_from_order=order_id,
        )
        db.add(account)
        db.commit()
    except IntegrityError:
        # created concurrently by another request for the same email
        db.rollback()
        existing = _find(db, email)
        if existing is None:
            raise DownstreamServiceError(f"Account creation failed for {email}")
        return AccountResult(existing.id, created=False)
    except SQLAlchemyError as e:
        db.rollback()
        raise DownstreamServiceError(f"Account creation failed: {e}") from e

    log.info("account_created", account_id=account.id, order_id=order_id)
    try:
        mailer.send_email(
            email,
            "Votre compte PayLiv a été créé - Accédez à vos produits",
            welcome_email_html(name, email, temporary_password),
        )
    except FulfillmentError as e:
        log.warning("welcome_email_failed", account_id=account.id, error=e.message)
    return AccountResult(account.id, created=True, temporary_password=temporary_password)
