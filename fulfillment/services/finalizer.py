"""
Digital order finalizer.

Runs every effect needed once a digital order is paid. Loading the order,
persisting the delivered transition and the seller notification are
required; account provisioning, ledger bookkeeping, the delivery email and
the domain event are best-effort, so a customer who already paid is never
told the payment failed because of them.
"""
from dataclasses import dataclass
from html import escape

import structlog
from sqlalchemy.orm import Session

from fulfillment.core.config import settings
from fulfillment.kafka import producer
from fulfillment.services import orders
from fulfillment.services.accounts import ensure_account
from fulfillment.services.ledger import finalize_order_payment
from fulfillment.services.notifications import create_notification
from fulfillment.services.pipeline import Step, PipelineResult, run_steps

log = structlog.get_logger(__name__)

SELLER_SALE_TITLE = "Vente digitale confirmée ! 💰"


@dataclass(frozen=True)
class FinalizeResult:
    order_id: str
    pipeline: PipelineResult

    @property
    def warnings(self) -> list[str]:
        return [s.name for s in self.pipeline.warnings]


def delivery_email_html(order: orders.OrderSnapshot) -> str:
    base = settings.SITE_BASE_URL
    return f"""
      <h1>Votre achat est disponible</h1>
      <p>Bonjour {escape(order.customer.name)},</p>
      <p>Votre paiement de {orders.format_amount(order.total)} {order.currency} pour la commande #{order.reference} sur {escape(order.store_name)} a bien été reçu.</p>
      <p>Vos produits digitaux sont accessibles dès maintenant : <a href="{base}/my-purchases">{base}/my-purchases</a></p>
      <p>L'équipe PayLiv</p>
    """


class DigitalOrderFinalizer:
    def __init__(self, db: Session, mailer, *, ledger=finalize_order_payment,
                 accounts=ensure_account, publish=producer.send):
        self.db = db
        self.mailer = mailer
        self.ledger = ledger
        self.accounts = accounts
        self.publish = publish

    def finalize(self, order_id: str, provider_transaction_id: str, payment_provider: str) -> FinalizeResult:
        db = self.db
        bound = log.bind(order_id=order_id, transaction_id=provider_transaction_id)

        def order_of(ctx) -> orders.OrderSnapshot:
            return ctx["load_order"]

        def has_email(ctx) -> bool:
            return bool(order_of(ctx).customer.email)

        def provision_account(ctx):
            order = order_of(ctx)
            return self.accounts(db, order.customer.email, order.customer.name, order.id, self.mailer)

        def send_delivery_email(ctx):
            order = order_of(ctx)
            self.mailer.send_email(
                order.customer.email,
                f"Vos produits digitaux - commande #{order.reference}",
                delivery_email_html(order),
            )

        def notify_seller(ctx):
            order = order_of(ctx)
            return create_notification(
                db,
                user_id=order.store_user_id,
                title=SELLER_SALE_TITLE,
                message=f"Paiement de {orders.format_amount(order.total)} {order.currency} reçu pour votre produit digital.",
                link="/orders",
                dedupe_key=f"sale:{order.id}:{provider_transaction_id}",
            )

        def publish_event(ctx):
            order = order_of(ctx)
            self.publish(settings.TOPIC_ORDER_EVENTS, key=order.id, value={
                "type": "order.delivered",
                "order_id": order.id,
                "store_id": order.store_id,
                "user_email": order.customer.email,
                "amount": str(order.total),
                "currency": order.currency,
                "provider_transaction_id": provider_transaction_id,
            })

        steps = [
            Step("load_order", lambda ctx: orders.get_order(db, order_id)),
            Step("mark_delivered", lambda ctx: orders.mark_digital_delivered(
                db, order_id, provider_transaction_id, payment_provider)),
            Step("provision_account", provision_account, required=False, when=has_email),
            Step("finalize_ledger", lambda ctx: self.ledger(
                db, order_id, provider_transaction_id, payment_provider),
                required=False, severity="error"),
            Step("send_delivery_email", send_delivery_email, required=False, when=has_email),
            Step("notify_seller", notify_seller),
            Step("publish_event", publish_event, required=False),
        ]
        result = run_steps(steps, log=bound)
        bound.info("digital_order_finalized", warnings=[s.name for s in result.warnings])
        return FinalizeResult(order_id, result)
