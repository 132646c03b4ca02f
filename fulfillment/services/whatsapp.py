"""WhatsApp order notifications: pick the recipient and render the message."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx
import structlog
from sqlalchemy.orm import Session

from fulfillment.core.config import settings
from fulfillment.services import orders
from fulfillment.services.notifications import WhatsAppClient, WhatsAppConfig, load_whatsapp_config

log = structlog.get_logger(__name__)

DEFAULT_CUSTOMER_TEMPLATE = (
    "Bonjour {customer_name}, votre commande #{order_ref} sur {store_name} a été confirmée. "
    "Montant: {total} {currency}. Merci !"
)
DEFAULT_SELLER_TEMPLATE = (
    "Nouvelle commande ! Client: {customer_name}, Montant: {total} {currency}. "
    "Consultez votre tableau de bord: {dashboard_url}"
)


class RecipientType(str, Enum):
    CUSTOMER = "customer"
    SELLER = "seller"


@dataclass(frozen=True)
class OutboundMessage:
    to: str
    body: str


@dataclass(frozen=True)
class SentMessage:
    to: str
    message_id: Optional[str]


class _Fields(dict):
    # unknown placeholders in an admin-edited template are left as-is
    def __missing__(self, key):
        return "{" + key + "}"


def render_order_message(order: orders.OrderSnapshot, recipient_type: RecipientType,
                         config: WhatsAppConfig) -> Optional[OutboundMessage]:
    """Return the message to send, or None when the recipient has no number."""
    if recipient_type is RecipientType.CUSTOMER:
        number, template = order.customer.phone, config.template_customer or DEFAULT_CUSTOMER_TEMPLATE
    else:
        number, template = order.store_whatsapp, config.template_seller or DEFAULT_SELLER_TEMPLATE
    if not number:
        return None

    fields = _Fields(
        customer_name=order.customer.name,
        order_ref=order.reference,
        store_name=order.store_name,
        total=orders.format_amount(order.total),
        currency=order.currency,
        dashboard_url=f"{settings.SITE_BASE_URL}/orders",
    )
    return OutboundMessage(to=number, body=template.format_map(fields))


def send_order_notification(db: Session, order_id: str, recipient_type: RecipientType,
                            transport: Optional[httpx.BaseTransport] = None) -> Optional[SentMessage]:
    """Send the order confirmation to the customer or the seller.

    Returns the sent message, or None when no recipient number is
    configured (not an error).
    """
    order = orders.get_order(db, order_id)
    config = load_whatsapp_config(db)
    message = render_order_message(order, recipient_type, config)
    if message is None:
        log.info("whatsapp_no_recipient", order_id=order_id, recipient_type=recipient_type.value)
        return None
    client = WhatsAppClient.from_config(config, transport=transport)
    return SentMessage(message.to, client.send_message(message.to, message.body))
