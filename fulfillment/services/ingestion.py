"""
Payment webhook ingestion.

Every inbound webhook is written to the audit log before anything else, then
parsed into a PaymentNotice. Paid notices are routed to the digital finalizer
or, for physical orders, straight to the ledger. The audit entry is amended
exactly once with the outcome.

Replays are safe: the ledger deduplicates on (provider, transaction id), the
delivered transition is a no-op for the same transaction, and the seller
notification is keyed on the transaction.
"""
from dataclasses import dataclass
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.orm import Session

from fulfillment.core.config import settings
from fulfillment.core.errors import DownstreamServiceError, FulfillmentError, MalformedWebhook, OrderNotFound
from fulfillment.kafka import producer
from fulfillment.services import audit, orders
from fulfillment.services.ledger import finalize_order_payment
from fulfillment.services.pipeline import Step, run_steps

log = structlog.get_logger(__name__)

PAID_STATUS = "paid"


def _to_str(v):
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class PersonalInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")
    order_id: Optional[str] = Field(default=None, alias="orderId")

    @field_validator("order_id", mode="before")
    @classmethod
    def coerce_numbers(cls, v):
        return _to_str(v)


class ProviderPayload(BaseModel):
    """Wire shape sent by the payment provider."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")
    personal_info: list[PersonalInfo] = Field(default_factory=list, alias="personal_Info")
    statut: Optional[str] = None
    transaction_id: Optional[str] = None

    @field_validator("statut", "transaction_id", mode="before")
    @classmethod
    def coerce_numbers(cls, v):
        return _to_str(v)


@dataclass(frozen=True)
class PaymentNotice:
    order_id: str
    payment_status: Optional[str]
    transaction_id: Optional[str]

    @property
    def paid(self) -> bool:
        return (self.payment_status or "").lower() == PAID_STATUS


@dataclass(frozen=True)
class WebhookOutcome:
    webhook_log_id: int
    order_id: Optional[str]
    processed: bool
    digital: bool = False


def parse_payment_notice(payload: Any) -> PaymentNotice:
    if not isinstance(payload, dict):
        raise MalformedWebhook("Webhook payload must be a JSON object")
    try:
        raw = ProviderPayload.model_validate(payload)
    except ValidationError as e:
        raise MalformedWebhook(f"Invalid webhook payload: {e.errors()[0].get('msg')}") from e
    order_id = raw.personal_info[0].order_id if raw.personal_info else None
    if not order_id:
        raise MalformedWebhook("Order ID not found in webhook data")
    return PaymentNotice(order_id=order_id, payment_status=raw.statut, transaction_id=raw.transaction_id)


def peek(payload: Any, key: str) -> Optional[str]:
    """Lenient top-level lookup used to index the audit entry before parsing."""
    if isinstance(payload, dict):
        v = _to_str(payload.get(key))
        if isinstance(v, str) and v:
            return v
    return None


class WebhookController:
    def __init__(self, db: Session, finalizer, *, ledger=finalize_order_payment,
                 publish=producer.send, provider: str = settings.PAYMENT_PROVIDER):
        self.db = db
        self.finalizer = finalizer
        self.ledger = ledger
        self.publish = publish
        self.provider = provider

    def handle(self, payload: Any) -> WebhookOutcome:
        db = self.db
        entry_id = audit.record_received(
            db, self.provider, payload,
            transaction_id=peek(payload, "transaction_id"),
            payment_status=peek(payload, "statut"),
        )
        bound = log.bind(webhook_log_id=entry_id, provider=self.provider)
        order_id = None
        try:
            notice = parse_payment_notice(payload)
            bound = bound.bind(order_id=notice.order_id, transaction_id=notice.transaction_id)

            if not notice.paid:
                bound.info("webhook_ignored", payment_status=notice.payment_status)
                audit.mark_processed(db, entry_id, None)
                return WebhookOutcome(entry_id, notice.order_id, processed=False)

            if not notice.transaction_id:
                raise MalformedWebhook("Transaction ID not found in webhook data")

            order = orders.get_order(db, notice.order_id)
            order_id = order.id
            if order.has_digital:
                self.finalizer.finalize(order.id, notice.transaction_id, self.provider)
            else:
                self._finalize_physical(order, notice.transaction_id, bound)

            audit.mark_processed(db, entry_id, order.id)
            bound.info("webhook_processed", digital=order.has_digital)
            return WebhookOutcome(entry_id, order.id, processed=True, digital=order.has_digital)

        except OrderNotFound as e:
            bound.error("webhook_order_not_found", order_id=e.order_id)
            audit.mark_error(db, entry_id, e.message)
            raise
        except FulfillmentError as e:
            bound.warning("webhook_failed", error=e.message)
            audit.mark_error(db, entry_id, e.message, order_id)
            raise
        except Exception as e:
            bound.exception("webhook_crashed")
            audit.mark_error(db, entry_id, str(e), order_id)
            raise DownstreamServiceError(str(e)) from e

    def _finalize_physical(self, order: orders.OrderSnapshot, transaction_id: str, bound) -> None:
        db = self.db

        def publish_event(ctx):
            self.publish(settings.TOPIC_PAYMENT_EVENTS, key=order.id, value={
                "type": "payment.succeeded",
                "order_id": order.id,
                "user_email": order.customer.email,
                "amount": str(order.total),
                "currency": order.currency,
                "provider_transaction_id": transaction_id,
            })

        run_steps([
            Step("finalize_ledger", lambda ctx: self.ledger(db, order.id, transaction_id, self.provider)),
            Step("publish_event", publish_event, required=False),
        ], log=bound)
