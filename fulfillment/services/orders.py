"""
Order repository: reads orders with their store, and applies the digital
delivery transition as a single conditional UPDATE.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import select, update, or_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from fulfillment.core.errors import OrderNotFound, DownstreamServiceError
from fulfillment.db.models import Order, OrderStatus, now_utc

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Customer:
    name: str
    email: Optional[str]
    phone: Optional[str]


@dataclass(frozen=True)
class OrderSnapshot:
    id: str
    status: str
    total: Decimal
    currency: str
    has_digital: bool
    customer: Customer
    store_id: str
    store_name: str
    store_user_id: str
    store_whatsapp: Optional[str]
    provider_transaction_id: Optional[str]

    @property
    def reference(self) -> str:
        return self.id[:8]


def format_amount(amount: Decimal) -> str:
    """15000.00 -> '15000', 12.50 -> '12.5'."""
    return format(Decimal(amount).normalize(), "f")


def snapshot(order: Order) -> OrderSnapshot:
    cust = order.customer or {}
    store = order.store
    return OrderSnapshot(
        id=order.id,
        status=order.status,
        total=order.total,
        currency=order.currency,
        has_digital=bool(order.has_digital),
        customer=Customer(
            name=str(cust.get("name") or ""),
            email=cust.get("email") or None,
            phone=cust.get("phone") or None,
        ),
        store_id=order.store_id,
        store_name=store.name if store else "",
        store_user_id=store.user_id if store else "",
        store_whatsapp=store.whatsapp_number if store else None,
        provider_transaction_id=order.provider_transaction_id,
    )


def get_order(db: Session, order_id: str) -> OrderSnapshot:
    try:
        order = db.execute(
            select(Order).options(joinedload(Order.store)).where(Order.id == order_id)
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        db.rollback()
        raise DownstreamServiceError(f"Order lookup failed: {e}") from e
    if order is None:
        raise OrderNotFound(order_id)
    return snapshot(order)


def mark_digital_delivered(db: Session, order_id: str, provider_transaction_id: str, payment_provider: str) -> None:
    """Set the order to delivered and bind the provider transaction.

    A replay with the same transaction keeps the original paid/delivered
    timestamps. An order already bound to a different transaction is left
    untouched.
    """
    now = now_utc()
    stmt = (
        update(Order)
        .where(Order.id == order_id)
        .where(or_(Order.provider_transaction_id.is_(None),
                   Order.provider_transaction_id == provider_transaction_id))
        .values(
            status=OrderStatus.DELIVERED.value,
            provider_transaction_id=provider_transaction_id,
            payment_provider=payment_provider,
            paid_at=func.coalesce(Order.paid_at, now),
            delivered_at=func.coalesce(Order.delivered_at, now),
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    try:
        res = db.execute(stmt)
        if res.rowcount == 0:
            db.rollback()
            raise DownstreamServiceError(
                f"Order {order_id} is already bound to another provider transaction"
            )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise DownstreamServiceError(f"Order status update failed: {e}") from e
    log.info("order_marked_delivered", order_id=order_id, transaction_id=provider_transaction_id)
